"""Drain loop: the record-reading state machine.

A stateful TLS session cannot be checked by calling read and seeing what
happens; reading with nothing queued blocks or desynchronizes the record
layer. The loop therefore only reads when one of two facts holds:

* the session already buffers decrypted plaintext, or
* the readiness monitor reported the socket readable *and* the kernel reports
  a nonzero number of queued bytes.

A read that consumes only protocol records (a TLS 1.3 session ticket, a
partial record) yields no plaintext; it is not counted and the loop returns to
polling with its normal timeout.

A readable socket with nothing queued counts as an idle retry. Retries are
bounded and never reset, so repeated false wakeups end the transfer instead of
spinning.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from tlsfetch.fetch.demux import StreamDemultiplexer
from tlsfetch.models import DrainConfig, DrainState, ReadinessResult, TerminationReason
from tlsfetch.transport.readiness import HasFileno, bytes_available
from tlsfetch.utils.exceptions import (
    HeaderOverflowError,
    PrematureTerminationError,
    SessionError,
    SessionReadError,
)

logger = logging.getLogger(__name__)

# The session is unusable after these; no close_notify is attempted
_NO_CLOSE_REASONS = frozenset(
    {TerminationReason.SESSION_ERROR, TerminationReason.PEER_CLOSED}
)


class DrainSession(Protocol):
    """Session operations used by the drain loop."""

    def has_buffered_plaintext(self) -> bool: ...

    def read(self, max_bytes: int) -> bytes | None: ...

    def close(self) -> None: ...


class DrainMonitor(Protocol):
    """Readiness operations used by the drain loop."""

    def wait(self, timeout_ms: int) -> ReadinessResult: ...


@dataclass
class DrainOutcome:
    """Result of one drain loop run."""

    reason: TerminationReason
    error_kind: str | None = None
    reads: int = 0
    bytes_read: int = 0
    content_bytes: int = 0
    idle_retries: int = 0
    session_closed: bool = False

    @property
    def is_fatal(self) -> bool:
        """Return True if the transfer failed rather than ended."""
        return self.reason.is_fatal


class DrainLoop:
    """Interleave readiness polling with session reads until the transfer ends."""

    def __init__(
        self,
        session: DrainSession,
        monitor: DrainMonitor,
        demux: StreamDemultiplexer,
        handle: HasFileno | int,
        config: DrainConfig | None = None,
        *,
        available: Callable[[HasFileno | int], int] = bytes_available,
        sleep: Callable[[float], None] = time.sleep,
        cancel_event: threading.Event | None = None,
    ):
        """Initialize drain loop.

        Args:
            session: Established secure session; owned by the loop until it returns
            monitor: Readiness monitor watching the session's descriptor
            demux: Receiver of decrypted bytes
            handle: Descriptor queried for queued byte counts
            config: Loop parameters
            available: Queued-bytes query
            sleep: Backoff sleep
            cancel_event: Optional cooperative cancellation token

        """
        self.session = session
        self.monitor = monitor
        self.demux = demux
        self.handle = handle
        self.config = config or DrainConfig()
        self.available = available
        self.sleep = sleep
        self.cancel_event = cancel_event

        self.state = DrainState.POLLING
        self.idle_retries = 0
        self.reads = 0
        self.bytes_read = 0

    def run(self) -> DrainOutcome:
        """Drain the session, close it if still usable, and report why it ended."""
        if self.state is DrainState.FINISHED:
            msg = "Drain loop has already finished"
            raise RuntimeError(msg)

        outcome = self._drain()
        self.state = DrainState.FINISHED
        if outcome.reason not in _NO_CLOSE_REASONS:
            outcome.session_closed = self._close_session()

        log = logger.warning if outcome.is_fatal else logger.info
        log(
            "Drain finished: %s after %d reads (%d bytes, %d content bytes, %d idle retries)",
            outcome.reason.name,
            outcome.reads,
            outcome.bytes_read,
            outcome.content_bytes,
            outcome.idle_retries,
        )
        return outcome

    def _drain(self) -> DrainOutcome:
        cfg = self.config
        while True:
            if self.cancel_event is not None and self.cancel_event.is_set():
                return self._finish(TerminationReason.CANCELLED)

            if self.session.has_buffered_plaintext():
                self.state = DrainState.CONSUMING_BUFFERED
            else:
                self.state = DrainState.POLLING
                result = self.monitor.wait(cfg.read_timeout_ms)
                if result is ReadinessResult.ERROR:
                    return self._finish(TerminationReason.READINESS_ERROR)
                if result is ReadinessResult.TIMED_OUT:
                    return self._finish(TerminationReason.IDLE)

                if self.available(self.handle) == 0:
                    # Readable but nothing queued: never touch the session here
                    self.idle_retries += 1
                    logger.debug(
                        "Readable with no queued bytes (%d/%d)",
                        self.idle_retries,
                        cfg.max_idle_retries,
                    )
                    if self.idle_retries >= cfg.max_idle_retries:
                        return self._finish(TerminationReason.EXHAUSTED_RETRIES)
                    self.sleep(cfg.idle_retry_delay_ms / 1000.0)
                    continue

            try:
                data = self.session.read(cfg.chunk_size)
            except PrematureTerminationError as e:
                logger.debug("%s", e)
                return self._finish(TerminationReason.PEER_CLOSED)
            except SessionReadError as e:
                logger.error("%s", e.message)
                return self._finish(TerminationReason.SESSION_ERROR, e.kind)

            if data is None:
                # Only protocol records were consumed; back to polling
                logger.debug("Read returned no application data")
                continue

            if not data:
                return self._finish(TerminationReason.PEER_CLOSED)

            self.reads += 1
            self.bytes_read += len(data)
            try:
                self.demux.feed(data)
            except HeaderOverflowError as e:
                logger.error("%s", e)
                return self._finish(TerminationReason.HEADER_OVERFLOW, "header_overflow")

    def _finish(
        self, reason: TerminationReason, error_kind: str | None = None
    ) -> DrainOutcome:
        return DrainOutcome(
            reason=reason,
            error_kind=error_kind,
            reads=self.reads,
            bytes_read=self.bytes_read,
            content_bytes=self.demux.content_bytes,
            idle_retries=self.idle_retries,
        )

    def _close_session(self) -> bool:
        """Send close_notify; failures are logged, never raised."""
        try:
            self.session.close()
        except SessionError as e:
            logger.debug("Best-effort session close failed: %s", e)
            return False
        return True
