"""HTTP layer."""

from cli_bridge.api.handlers import chat, health, setup_routes
from cli_bridge.api.middleware import add_cors_headers, cors_middleware

__all__ = ["add_cors_headers", "chat", "cors_middleware", "health", "setup_routes"]
