"""Socket read-readiness monitoring.

Readiness alone does not prove that bytes are queued: a descriptor can be
reported readable with nothing to read. Callers that drive a stateful
decoder check :func:`bytes_available` before reading.
"""

from __future__ import annotations

import fcntl
import logging
import selectors
import struct
import termios
from typing import Protocol

from tlsfetch.models import ReadinessResult

logger = logging.getLogger(__name__)

_INT = struct.Struct("i")


class HasFileno(Protocol):
    """Anything exposing a descriptor."""

    def fileno(self) -> int: ...


def bytes_available(handle: HasFileno | int) -> int:
    """Return the number of raw bytes queued on a descriptor without consuming them.

    Args:
        handle: Transport, socket or raw descriptor

    Returns:
        Queued byte count, 0 if the query fails

    """
    fd = handle if isinstance(handle, int) else handle.fileno()
    try:
        raw = fcntl.ioctl(fd, termios.FIONREAD, _INT.pack(0))
    except OSError as e:
        logger.debug("FIONREAD failed on fd %s: %s", fd, e)
        return 0
    return max(0, _INT.unpack(raw)[0])


class ReadinessMonitor:
    """Wait for read-readiness on one descriptor."""

    def __init__(self, handle: HasFileno | int):
        """Register the descriptor for read events.

        Args:
            handle: Transport, socket or raw descriptor to watch

        """
        self.fd = handle if isinstance(handle, int) else handle.fileno()
        self._selector = selectors.DefaultSelector()
        self._selector.register(self.fd, selectors.EVENT_READ)

    def wait(self, timeout_ms: int) -> ReadinessResult:
        """Block up to ``timeout_ms`` milliseconds for the descriptor to become readable.

        Args:
            timeout_ms: Wait bound in milliseconds

        Returns:
            ``DATA_READY`` if readable, ``TIMED_OUT`` if nothing happened,
            ``ERROR`` if the wait itself failed

        """
        try:
            events = self._selector.select(timeout_ms / 1000.0)
        except (OSError, ValueError) as e:
            logger.warning("Readiness wait on fd %s failed: %s", self.fd, e)
            return ReadinessResult.ERROR

        for _key, mask in events:
            if mask & selectors.EVENT_READ:
                return ReadinessResult.DATA_READY
        return ReadinessResult.TIMED_OUT

    def close(self) -> None:
        """Release the selector."""
        self._selector.close()

    def __enter__(self) -> ReadinessMonitor:
        """Enter the context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Release the selector on exit."""
        self.close()
