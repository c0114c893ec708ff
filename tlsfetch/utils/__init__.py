"""Shared utilities and infrastructure.

This module contains the exception hierarchy and logging setup.
"""

from __future__ import annotations

from tlsfetch.utils.exceptions import (
    ConfigurationError,
    NetworkError,
    SecurityError,
    TLSFetchError,
    ValidationError,
)
from tlsfetch.utils.logging_config import get_logger, setup_logging

__all__ = [
    "ConfigurationError",
    "NetworkError",
    "SecurityError",
    "TLSFetchError",
    "ValidationError",
    "get_logger",
    "setup_logging",
]
