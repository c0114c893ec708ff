"""Configuration management for tlsfetch.

Provides centralized configuration with TOML support, validation and
hierarchical loading from defaults → config file → environment → CLI.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import toml

from tlsfetch.models import Config
from tlsfetch.utils.exceptions import ConfigurationError
from tlsfetch.utils.logging_config import setup_logging

CONFIG_FILE_NAME = "tlsfetch.toml"

# Mapping of environment variables to config paths
ENV_MAPPINGS: dict[str, str] = {
    # Target
    "TLSFETCH_HOST": "target.host",
    "TLSFETCH_PORT": "target.port",
    "TLSFETCH_SERVER_HOSTNAME": "target.server_hostname",
    "TLSFETCH_REQUEST_LINE": "target.request_line",
    # TLS
    "TLSFETCH_CA_CERTIFICATES": "tls.ca_certificates",
    "TLSFETCH_VERIFY_CERTIFICATES": "tls.verify_certificates",
    "TLSFETCH_CHECK_HOSTNAME": "tls.check_hostname",
    "TLSFETCH_MIN_PROTOCOL_VERSION": "tls.min_protocol_version",
    "TLSFETCH_MAX_PROTOCOL_VERSION": "tls.max_protocol_version",
    "TLSFETCH_CIPHER_SUITES": "tls.cipher_suites",
    "TLSFETCH_DISABLE_RENEGOTIATION": "tls.disable_renegotiation",
    # Network
    "TLSFETCH_CONNECT_TIMEOUT": "network.connect_timeout",
    "TLSFETCH_IO_TIMEOUT": "network.io_timeout",
    "TLSFETCH_CLOSE_TIMEOUT": "network.close_timeout",
    # Drain loop
    "TLSFETCH_READ_TIMEOUT_MS": "drain.read_timeout_ms",
    "TLSFETCH_IDLE_RETRY_DELAY_MS": "drain.idle_retry_delay_ms",
    "TLSFETCH_MAX_IDLE_RETRIES": "drain.max_idle_retries",
    "TLSFETCH_CHUNK_SIZE": "drain.chunk_size",
    "TLSFETCH_MAX_HEADER_BYTES": "drain.max_header_bytes",
    # Output
    "TLSFETCH_OUTPUT": "output.path",
    # Observability
    "TLSFETCH_LOG_LEVEL": "observability.log_level",
    "TLSFETCH_LOG_FILE": "observability.log_file",
    "TLSFETCH_STRUCTURED_LOGGING": "observability.structured_logging",
    "TLSFETCH_LOG_CORRELATION_ID": "observability.log_correlation_id",
}

_BOOL_PATHS = frozenset(
    {
        "tls.verify_certificates",
        "tls.check_hostname",
        "tls.disable_renegotiation",
        "observability.structured_logging",
        "observability.log_correlation_id",
    }
)
_LIST_PATHS = frozenset({"tls.cipher_suites"})

# Global configuration instance
_config_manager: ConfigManager | None = None


def _parse_env_value(raw: str, path: str) -> bool | str | list[str] | None:
    """Convert an environment string for the given config path.

    Numbers are left as strings; pydantic coerces them during validation.
    """
    if path in _LIST_PATHS:
        return [item.strip() for item in raw.replace(":", ",").split(",") if item.strip()]
    if path in _BOOL_PATHS:
        low = raw.strip().lower()
        if low in {"true", "1", "yes", "on"}:
            return True
        if low in {"false", "0", "no", "off"}:
            return False
        msg = f"Invalid boolean for {path}: {raw!r}"
        raise ConfigurationError(msg)
    if raw.strip().lower() in {"", "none"} and path in {
        "tls.max_protocol_version",
        "drain.max_header_bytes",
        "target.server_hostname",
        "observability.log_file",
    }:
        return None
    return raw


def _set_nested(d: dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    cur = d
    for p in parts[:-1]:
        cur = cur.setdefault(p, {})
    cur[parts[-1]] = value


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_file: str | Path | None = None):
        """Initialize configuration manager.

        Args:
            config_file: Path to TOML config file. If None, searches for tlsfetch.toml

        """
        self.config_file = self._find_config_file(config_file)
        self.config = self._load_config()
        self._setup_logging()

    def _find_config_file(
        self,
        config_file: str | Path | None,
    ) -> Path | None:
        """Find configuration file in standard locations."""
        if config_file:
            return Path(config_file)

        # Search in current directory, then home directory
        search_paths = [
            Path.cwd() / CONFIG_FILE_NAME,
            Path.home() / ".config" / "tlsfetch" / CONFIG_FILE_NAME,
            Path.home() / f".{CONFIG_FILE_NAME}",
        ]

        for path in search_paths:
            if path.exists():
                return path

        return None

    def _load_config(self) -> Config:
        """Load configuration from file and environment."""
        config_data: dict[str, Any] = {}

        if self.config_file is not None:
            if not self.config_file.exists():
                msg = f"Config file does not exist: {self.config_file}"
                raise ConfigurationError(msg)
            try:
                with open(self.config_file, encoding="utf-8") as f:
                    config_data.update(toml.load(f))
            except (OSError, toml.TomlDecodeError) as e:
                msg = f"Failed to load config file {self.config_file}: {e}"
                raise ConfigurationError(msg) from e

            # Accept "A:B:C" cipher strings as well as TOML arrays
            tls_data = config_data.get("tls", {})
            if isinstance(tls_data.get("cipher_suites"), str):
                tls_data["cipher_suites"] = _parse_env_value(
                    tls_data["cipher_suites"], "tls.cipher_suites"
                )

        env_config = self._get_env_config()
        config_data = self._merge_config(config_data, env_config)

        try:
            return Config(**config_data)
        except Exception as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg) from e

    def _get_env_config(self) -> dict[str, Any]:
        """Get configuration from environment variables."""
        env_config: dict[str, Any] = {}
        for env_name, cfg_path in ENV_MAPPINGS.items():
            raw = os.getenv(env_name)
            if raw is None:
                continue
            _set_nested(env_config, cfg_path, _parse_env_value(raw, cfg_path))
        return env_config

    def _merge_config(
        self,
        base: dict[str, Any],
        override: dict[str, Any],
    ) -> dict[str, Any]:
        """Merge configuration dictionaries recursively."""
        result = base.copy()

        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value

        return result

    def apply_overrides(self, overrides: dict[str, Any]) -> Config:
        """Apply dotted-path overrides (e.g. from CLI flags) and revalidate.

        Args:
            overrides: Mapping of ``section.field`` to value; ``None`` values are skipped

        Returns:
            The new validated configuration

        """
        nested: dict[str, Any] = {}
        for path, value in overrides.items():
            if value is not None:
                _set_nested(nested, path, value)
        if not nested:
            return self.config

        data = self._merge_config(self.config.model_dump(mode="json"), nested)
        try:
            self.config = Config(**data)
        except Exception as e:
            msg = f"Invalid configuration override: {e}"
            raise ConfigurationError(msg) from e
        self._setup_logging()
        return self.config

    def export(self) -> str:
        """Export current configuration as TOML."""
        data = self.config.model_dump(mode="json", exclude_none=True)
        return toml.dumps(data)

    def _setup_logging(self) -> None:
        """Set up logging configuration."""
        setup_logging(self.config.observability)
        logging.getLogger(__name__).debug(
            "Configuration loaded from %s", self.config_file or "defaults"
        )


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager.config


def init_config(config_file: str | Path | None = None) -> ConfigManager:
    """Initialize the global configuration manager."""
    global _config_manager
    _config_manager = ConfigManager(config_file)
    return _config_manager


def set_config(new_config: Config) -> None:
    """Replace the global configuration at runtime."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(None)
    _config_manager.config = new_config
    _config_manager._setup_logging()  # noqa: SLF001


def reset_config() -> None:
    """Drop the global configuration so the next access reloads it."""
    global _config_manager
    _config_manager = None
