"""Application entrypoint - aiohttp server bridging chat requests to CLI tools."""

import logging

import structlog
from aiohttp.web import Application, run_app

from cli_bridge.api import add_cors_headers, cors_middleware, setup_routes
from cli_bridge.config import Settings, get_settings
from cli_bridge.providers import build_registry


def configure_logging(
    log_level: str = "INFO",
    log_file: str = "",
    log_file_max_bytes: int = 10_485_760,
    log_file_backup_count: int = 5,
) -> None:
    """Configure structlog and standard library logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file. Empty string = console only.
        log_file_max_bytes: Max size per log file before rotation (default: 10 MB)
        log_file_backup_count: Number of rotated backup files to keep (default: 5)
    """
    from logging.handlers import RotatingFileHandler
    from pathlib import Path

    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.root
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            filename=log_file,
            maxBytes=log_file_max_bytes,
            backupCount=log_file_backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        root_logger.addHandler(file_handler)

    structlog.configure(
        processors=[
            # Per-request context (request_id) bound by the chat handler
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            # Use JSONRenderer for file, ConsoleRenderer for console
            structlog.processors.JSONRenderer() if log_file else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger()


def create_app(settings: Settings | None = None) -> Application:
    """Create and configure the aiohttp application."""
    settings = settings or get_settings()
    registry = build_registry(settings.providers_config_path)

    app = Application(
        middlewares=[cors_middleware],
        client_max_size=settings.max_body_bytes,
    )
    app["settings"] = settings
    app["registry"] = registry
    app.on_response_prepare.append(add_cors_headers)
    setup_routes(app)

    return app


def main() -> None:
    """Run the bridge server."""
    settings = get_settings()
    configure_logging(
        log_level=settings.log_level,
        log_file=settings.log_file,
        log_file_max_bytes=settings.log_file_max_bytes,
        log_file_backup_count=settings.log_file_backup_count,
    )

    app = create_app(settings)
    logger.info(
        "starting_bridge_server",
        host=settings.host,
        port=settings.port,
        providers=app["registry"].names,
        log_level=settings.log_level,
    )
    # Cancel the chat handler when the client disconnects so its CLI is stopped
    run_app(app, host=settings.host, port=settings.port, handler_cancellation=True)


if __name__ == "__main__":
    main()
