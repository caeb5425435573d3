"""CLI provider strategies and registry."""

from cli_bridge.providers.models import FlagArgs, InputMode, ParseResult, ProviderSpec
from cli_bridge.providers.registry import (
    ProviderNotFoundError,
    ProviderRegistry,
    build_registry,
)

__all__ = [
    "FlagArgs",
    "InputMode",
    "ParseResult",
    "ProviderNotFoundError",
    "ProviderRegistry",
    "ProviderSpec",
    "build_registry",
]
