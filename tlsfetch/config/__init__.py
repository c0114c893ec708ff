"""Configuration management.

This module handles configuration loading and validation.
"""

from __future__ import annotations

from tlsfetch.config.config import (
    Config,
    ConfigManager,
    get_config,
    init_config,
    reset_config,
    set_config,
)

__all__ = [
    "Config",
    "ConfigManager",
    "get_config",
    "init_config",
    "reset_config",
    "set_config",
]
