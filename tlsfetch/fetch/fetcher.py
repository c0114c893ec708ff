"""One-shot TLS fetch: connect, send a single request and drain the response."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from tlsfetch.config.config import get_config
from tlsfetch.fetch.demux import ResponseHead, StreamDemultiplexer
from tlsfetch.fetch.drain import DrainLoop, DrainOutcome
from tlsfetch.fetch.sink import FileSink
from tlsfetch.models import Config
from tlsfetch.security.session import SecureSession
from tlsfetch.transport.readiness import ReadinessMonitor
from tlsfetch.transport.resolver import resolve
from tlsfetch.transport.tcp import TcpTransport
from tlsfetch.utils.exceptions import ResolutionError
from tlsfetch.utils.logging_config import LoggingContext, set_correlation_id

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


@dataclass
class FetchResult:
    """Summary of a completed fetch."""

    host: str
    address: str
    port: int
    tls_version: str | None
    cipher: str | None
    response_head: ResponseHead | None
    outcome: DrainOutcome
    output_path: Path

    @property
    def ok(self) -> bool:
        """Return True if the transfer ended without a fatal termination."""
        return not self.outcome.is_fatal


class Fetcher:
    """Perform a single request over TLS and write the response body to a file."""

    def __init__(
        self,
        config: Config | None = None,
        progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize fetcher.

        Args:
            config: Configuration; defaults to the global configuration
            progress: Receives one human-readable line per lifecycle step
            cancel_event: Set to stop the drain loop at the next iteration
            sleep: Backoff sleep used between idle retries

        """
        self.config = config if config is not None else get_config()
        self.progress = progress
        self.cancel_event = cancel_event
        self.sleep = sleep

    def _report(self, message: str) -> None:
        logger.info(message)
        if self.progress is not None:
            self.progress(message)

    def fetch(self) -> FetchResult:
        """Run the fetch.

        Returns:
            Result with the drain outcome; fatal drain outcomes are reported
            here rather than raised, and partial output is kept

        Raises:
            TrustStoreError: CA bundle could not be loaded (before any connection)
            ResolutionError: Host name did not resolve
            ConnectError: TCP connection failed
            HandshakeFailedError: TLS negotiation failed
            SessionWriteError: Request could not be sent
            OutputError: Output file could not be created

        """
        cfg = self.config
        target = cfg.target
        set_correlation_id()

        session = SecureSession(close_timeout=cfg.network.close_timeout)
        session.configure(policy=cfg.tls)

        address = resolve(target.host)
        if not address:
            msg = f"Could not resolve host {target.host}"
            raise ResolutionError(msg, {"host": target.host})

        transport = TcpTransport.connect(
            address,
            target.port,
            connect_timeout=cfg.network.connect_timeout,
            io_timeout=cfg.network.io_timeout,
        )
        monitor: ReadinessMonitor | None = None
        sink: FileSink | None = None
        try:
            with LoggingContext("handshake", logger, host=target.host, port=target.port):
                session.bind(transport, target.tls_hostname)
                session.handshake()
            self._report("Handshake completed")

            self._report("Sending HTTP request")
            session.write(target.request_bytes)

            sink = FileSink(cfg.output.path)
            monitor = ReadinessMonitor(transport)
            demux = StreamDemultiplexer(
                sink,
                max_header_bytes=cfg.drain.max_header_bytes,
                on_headers=self._on_headers,
            )
            loop = DrainLoop(
                session,
                monitor,
                demux,
                transport,
                cfg.drain,
                sleep=self.sleep,
                cancel_event=self.cancel_event,
            )

            self._report("Reading response")
            outcome = loop.run()
            self._report("Finished")

            return FetchResult(
                host=target.host,
                address=address,
                port=target.port,
                tls_version=session.negotiated_version,
                cipher=session.negotiated_cipher,
                response_head=demux.response_head,
                outcome=outcome,
                output_path=sink.path,
            )
        finally:
            if monitor is not None:
                monitor.close()
            if sink is not None:
                sink.close()
            transport.close()

    def _on_headers(self, head: ResponseHead | None) -> None:
        if head is None:
            logger.warning("Response header block is not a valid HTTP status line")
        else:
            logger.debug("Status %s %s", head.status_code, head.reason)
        self._report("Headers received")
        self._report("Reading content")
