"""Application configuration using Pydantic settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Providers
    default_provider: str = Field(
        "claude", alias="DEFAULT_PROVIDER",
        description="Provider used when a chat request does not name one.",
    )
    providers_config_path: str = Field(
        "", alias="PROVIDERS_CONFIG_PATH",
        description="Optional YAML file overriding or adding CLI providers. Empty = built-in table only.",
    )

    # CLI subprocess sessions
    cli_timeout: float = Field(
        300.0, alias="CLI_TIMEOUT",
        description="Max seconds a CLI session may run before it is terminated. Set to 0 to disable.",
    )
    cli_terminate_grace: float = Field(
        5.0, alias="CLI_TERMINATE_GRACE",
        description="Seconds to wait after SIGTERM before the CLI process is killed.",
    )
    cli_queue_size: int = Field(
        256, alias="CLI_QUEUE_SIZE",
        description="Max buffered events between a CLI output reader and the client writer.",
    )
    cli_read_chunk_size: int = Field(
        65536, alias="CLI_READ_CHUNK_SIZE",
        description="Bytes requested per read from the CLI stdout pipe.",
    )

    # Server
    host: str = Field(
        "0.0.0.0", alias="HOST",
        description="Host address to bind the aiohttp server to.",
    )
    port: int = Field(
        3456, alias="PORT",
        description="Port number for the aiohttp server.",
    )
    max_body_bytes: int = Field(
        1_048_576, alias="MAX_BODY_BYTES",
        description="Max request body size in bytes accepted by the server. Default: 1 MB.",
    )
    cors_allow_origin: str = Field(
        "*", alias="CORS_ALLOW_ORIGIN",
        description="Value of the Access-Control-Allow-Origin header on every response.",
    )

    # Logging
    log_level: str = Field(
        "INFO", alias="LOG_LEVEL",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, or CRITICAL.",
    )
    log_file: str = Field(
        "", alias="LOG_FILE",
        description="Path to log file for file-based logging with rotation. Empty = console only.",
    )
    log_file_max_bytes: int = Field(
        10_485_760, alias="LOG_FILE_MAX_BYTES",
        description="Max size in bytes per log file before rotation. Default: 10 MB.",
    )
    log_file_backup_count: int = Field(
        5, alias="LOG_FILE_BACKUP_COUNT",
        description="Number of rotated backup log files to keep.",
    )


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
