"""TCP transport, name resolution and readiness monitoring."""

from __future__ import annotations

from tlsfetch.transport.readiness import ReadinessMonitor, bytes_available
from tlsfetch.transport.resolver import resolve
from tlsfetch.transport.tcp import TcpTransport

__all__ = [
    "ReadinessMonitor",
    "TcpTransport",
    "bytes_available",
    "resolve",
]
