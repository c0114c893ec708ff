"""TLS context policy and the secure session wrapper."""

from __future__ import annotations

from tlsfetch.security.session import SecureSession
from tlsfetch.security.ssl_context import SSLContextBuilder

__all__ = [
    "SSLContextBuilder",
    "SecureSession",
]
