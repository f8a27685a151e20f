"""Core module initialization."""

from .config_manager import (
    ConfigManager,
    AzSignerConfig,
    AccountConfig,
    RelayConfig,
    DEFAULT_API_VERSION,
)
from .logging_config import setup_logging, request_context

__all__ = [
    "ConfigManager",
    "AzSignerConfig",
    "AccountConfig",
    "RelayConfig",
    "DEFAULT_API_VERSION",
    "setup_logging",
    "request_context",
]
