"""
Configuration management for azsigner.

Loads the storage account used for signing, relay settings, server and
logging options.
"""

import os
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional
from enum import Enum

import yaml
from pydantic import BaseModel, Field, field_validator, ValidationError, ConfigDict

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "2024-08-04"


class LogLevel(str, Enum):
    """Valid log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AccountConfig(BaseModel):
    """Storage account used to sign relayed requests."""
    name: Optional[str] = None
    shared_key: Optional[str] = Field(
        default=None,
        description="Base64-encoded account key"
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.name) and self.shared_key is not None


class RelayConfig(BaseModel):
    """Outbound relay configuration."""
    route_prefix: str = "/azure"
    endpoint_suffix: str = "core.windows.net"
    api_version: str = DEFAULT_API_VERSION
    timeout: float = Field(default=30.0, gt=0.0, description="Outbound request timeout in seconds")

    @field_validator("route_prefix")
    @classmethod
    def validate_route_prefix(cls, v: str) -> str:
        """Route prefix must start with '/' and carry no trailing slash."""
        if not v.startswith("/"):
            raise ValueError("Route prefix must start with '/'")
        return v.rstrip("/") or "/"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: LogLevel = LogLevel.INFO
    format: str = "json"
    file: Optional[str] = None
    rotation_size: str = "10MB"
    rotation_count: int = 5
    module_levels: Optional[Dict[str, str]] = Field(
        default=None,
        description="Per-module log levels, e.g., {'azsigner.auth': 'DEBUG'}"
    )


class ServerConfig(BaseModel):
    """HTTP server configuration."""
    host: str = "127.0.0.1"
    port: int = 3000


class AzSignerConfig(BaseModel):
    """Main azsigner configuration schema."""

    account: AccountConfig = Field(default_factory=AccountConfig)

    relay: RelayConfig = Field(default_factory=RelayConfig)

    server: ServerConfig = Field(default_factory=ServerConfig)

    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(use_enum_values=True)


class ConfigManager:
    """
    Manages azsigner configuration loading and validation.

    Configuration precedence (highest to lowest):
    1. CLI arguments
    2. Environment variables (AZSIGNER_*, AZ_ACCOUNT_NAME, AZ_SHARED_KEY)
    3. Configuration file (YAML/JSON)
    4. Defaults
    """

    def __init__(self):
        self._config: Optional[AzSignerConfig] = None

    def load(
        self,
        config_file: Optional[str] = None,
        cli_overrides: Optional[Dict[str, Any]] = None
    ) -> AzSignerConfig:
        """
        Load and validate configuration from multiple sources.

        Args:
            config_file: Path to configuration file (YAML or JSON)
            cli_overrides: Dictionary of CLI argument overrides

        Returns:
            Validated AzSignerConfig instance

        Raises:
            ValidationError: If configuration is invalid
            FileNotFoundError: If specified config file doesn't exist
        """
        logger.info("Loading azsigner configuration")

        config_dict: Dict[str, Any] = {}

        if config_file:
            config_dict = self._load_from_file(config_file)
            logger.info(f"Loaded configuration from file: {config_file}")

        env_config = self._load_from_env()
        config_dict = self._merge_configs(config_dict, env_config)
        if env_config:
            logger.info(f"Applied {len(env_config)} environment variable overrides")

        if cli_overrides:
            config_dict = self._merge_configs(config_dict, cli_overrides)
            logger.info(f"Applied {len(cli_overrides)} CLI argument overrides")

        try:
            self._config = AzSignerConfig(**config_dict)
            logger.info("Configuration validated successfully")
            self._log_configuration()
            return self._config
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        """Load configuration from YAML or JSON file."""
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        with open(path, 'r') as f:
            if path.suffix in ['.yaml', '.yml']:
                return yaml.safe_load(f) or {}
            elif path.suffix == '.json':
                return json.load(f)
            else:
                raise ValueError(f"Unsupported config file format: {path.suffix}")

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        config: Dict[str, Any] = {}

        # Account (AZ_* names are kept for compatibility with existing deployments)
        if name := os.getenv("AZSIGNER_ACCOUNT_NAME") or os.getenv("AZ_ACCOUNT_NAME"):
            config.setdefault("account", {})["name"] = name
        if key := os.getenv("AZSIGNER_SHARED_KEY") or os.getenv("AZ_SHARED_KEY"):
            config.setdefault("account", {})["shared_key"] = key

        # Relay
        if prefix := os.getenv("AZSIGNER_ROUTE_PREFIX"):
            config.setdefault("relay", {})["route_prefix"] = prefix
        if api_version := os.getenv("AZSIGNER_API_VERSION"):
            config.setdefault("relay", {})["api_version"] = api_version
        if suffix := os.getenv("AZSIGNER_ENDPOINT_SUFFIX"):
            config.setdefault("relay", {})["endpoint_suffix"] = suffix

        # Server
        if host := os.getenv("AZSIGNER_HOST"):
            config.setdefault("server", {})["host"] = host
        if port := os.getenv("AZSIGNER_PORT"):
            config.setdefault("server", {})["port"] = int(port)

        # Logging
        if log_level := os.getenv("AZSIGNER_LOG_LEVEL"):
            config.setdefault("logging", {})["level"] = log_level.upper()
        if log_file := os.getenv("AZSIGNER_LOG_FILE"):
            config.setdefault("logging", {})["file"] = log_file

        return config

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two configuration dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def _log_configuration(self) -> None:
        """Log the loaded configuration with the shared key redacted."""
        if not self._config:
            return

        config_dict = self._config.model_dump()

        if config_dict["account"].get("shared_key"):
            config_dict["account"]["shared_key"] = "***REDACTED***"

        logger.info(f"Active configuration: {json.dumps(config_dict, indent=2)}")
