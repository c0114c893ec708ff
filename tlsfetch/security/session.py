"""Stateful TLS client session over a TcpTransport.

The session is a protocol object that must be driven in order. Reads are only
legal once established, and a failed session refuses every further
operation. Callers must also avoid reading speculatively: a read is only
issued when plaintext is already buffered or bytes are confirmed queued on
the socket (see :mod:`tlsfetch.fetch.drain`).
"""

from __future__ import annotations

import logging
import ssl

from tlsfetch.models import SessionState, TLSConfig
from tlsfetch.security.ssl_context import SSLContextBuilder
from tlsfetch.transport.tcp import TcpTransport
from tlsfetch.utils.exceptions import (
    HandshakeFailedError,
    PrematureTerminationError,
    SessionCloseError,
    SessionReadError,
    SessionStateError,
    SessionWriteError,
)

logger = logging.getLogger(__name__)


def _error_kind(exc: OSError) -> str:
    """Return a short, stable label for a session failure."""
    if isinstance(exc, ssl.SSLError):
        return getattr(exc, "reason", None) or type(exc).__name__
    if isinstance(exc, TimeoutError):
        return "timeout"
    return type(exc).__name__


class SecureSession:
    """TLS client session with runtime-checked state transitions.

    ``UNINITIALIZED → CONFIGURED → BOUND → HANDSHAKING → ESTABLISHED`` and
    from there to ``PEER_CLOSED`` (peer ended the stream), ``CLOSED`` (we sent
    close_notify) or ``FAILED``.
    """

    def __init__(self, close_timeout: float = 5.0):
        """Initialize an unconfigured session.

        Args:
            close_timeout: Seconds to wait while exchanging close_notify

        """
        self.close_timeout = close_timeout
        self.server_hostname: str | None = None
        self._state = SessionState.UNINITIALIZED
        self._context: ssl.SSLContext | None = None
        self._transport: TcpTransport | None = None
        self._sock: ssl.SSLSocket | None = None
        self._version: str | None = None
        self._cipher: str | None = None
        self._nonblocking = False

    @property
    def state(self) -> SessionState:
        """Return the current session state."""
        return self._state

    @property
    def negotiated_version(self) -> str | None:
        """Return the protocol version recorded when the handshake completed."""
        return self._version

    @property
    def negotiated_cipher(self) -> str | None:
        """Return the cipher name recorded when the handshake completed."""
        return self._cipher

    def _require(self, operation: str, *allowed: SessionState) -> ssl.SSLSocket:
        if self._state not in allowed:
            msg = f"Cannot {operation} in state {self._state.name}"
            raise SessionStateError(msg, {"state": self._state.value})
        assert self._sock is not None
        return self._sock

    def configure(
        self,
        trust_anchors: str | None = None,
        policy: TLSConfig | None = None,
    ) -> None:
        """Load trust material and the cipher/version policy.

        Args:
            trust_anchors: PEM bundle path overriding ``policy.ca_certificates``
            policy: TLS policy; defaults to the global configuration

        Raises:
            TrustStoreError: If the trust anchors cannot be loaded

        """
        if self._state is not SessionState.UNINITIALIZED:
            msg = f"Cannot configure in state {self._state.name}"
            raise SessionStateError(msg)

        builder = SSLContextBuilder(policy)
        if trust_anchors is not None:
            builder.config = builder.config.model_copy(
                update={"ca_certificates": trust_anchors}
            )
        self._context = builder.create_client_context()
        self._state = SessionState.CONFIGURED

    def bind(self, transport: TcpTransport, server_hostname: str) -> None:
        """Associate the session with a connected transport.

        Args:
            transport: Connected transport; it keeps ownership of the descriptor
            server_hostname: Name sent as SNI and checked against the certificate

        """
        if self._state is not SessionState.CONFIGURED:
            msg = f"Cannot bind in state {self._state.name}"
            raise SessionStateError(msg)
        assert self._context is not None

        self._sock = self._context.wrap_socket(
            transport.socket,
            server_hostname=server_hostname,
            do_handshake_on_connect=False,
            suppress_ragged_eofs=False,
        )
        transport.adopt(self._sock)
        self._transport = transport
        self.server_hostname = server_hostname
        self._state = SessionState.BOUND

    def handshake(self) -> None:
        """Perform the TLS handshake.

        Raises:
            HandshakeFailedError: If negotiation fails; the session is then FAILED

        """
        sock = self._require("handshake", SessionState.BOUND)
        self._state = SessionState.HANDSHAKING
        try:
            sock.do_handshake()
        except OSError as e:
            self._state = SessionState.FAILED
            code = getattr(e, "reason", None) if isinstance(e, ssl.SSLError) else e.errno
            msg = f"Handshake failed, error {code or _error_kind(e)}: {e}"
            raise HandshakeFailedError(
                msg,
                code=code,
                details={"server_hostname": self.server_hostname},
            ) from e

        # Recorded now: unwrap() drops the SSL object
        self._version = sock.version()
        cipher = sock.cipher()
        self._cipher = cipher[0] if cipher else None
        self._state = SessionState.ESTABLISHED
        logger.debug(
            "Handshake with %s complete: %s %s",
            self.server_hostname,
            self.negotiated_version,
            self.negotiated_cipher,
        )

    def has_buffered_plaintext(self) -> bool:
        """Return True if decrypted data can be read without touching the network."""
        if self._state is not SessionState.ESTABLISHED or self._sock is None:
            return False
        return self._sock.pending() > 0

    def read(self, max_bytes: int) -> bytes | None:
        """Decrypt and return up to ``max_bytes`` of application data.

        The socket is switched to non-blocking mode on the first read. Queued
        bytes may hold only post-handshake records (TLS 1.3 session tickets,
        key updates) or part of a record, and a blocking read would then wait
        for the socket timeout instead of returning to the caller.

        Returns:
            Plaintext bytes; ``b""`` when the peer cleanly ended the session;
            None when the records consumed carried no application data yet

        Raises:
            PrematureTerminationError: The connection dropped without close_notify
            SessionReadError: Any other decode failure; the session is then FAILED
            SessionStateError: The session is not established

        """
        sock = self._require("read", SessionState.ESTABLISHED)
        if not self._nonblocking:
            sock.setblocking(False)
            self._nonblocking = True
        try:
            data = sock.recv(max_bytes)
        except (ssl.SSLWantReadError, ssl.SSLWantWriteError):
            return None
        except ssl.SSLZeroReturnError:
            data = b""
        except (ssl.SSLEOFError, ConnectionResetError) as e:
            self._state = SessionState.PEER_CLOSED
            msg = f"Peer terminated the connection without close_notify: {e}"
            raise PrematureTerminationError(msg) from e
        except OSError as e:
            self._state = SessionState.FAILED
            kind = _error_kind(e)
            msg = f"Read error: {kind}: {e}"
            raise SessionReadError(msg, kind=kind) from e

        if not data:
            self._state = SessionState.PEER_CLOSED
        return data

    def write(self, data: bytes) -> None:
        """Encrypt and send ``data``.

        Raises:
            SessionWriteError: If sending fails; the session is then FAILED

        """
        sock = self._require("write", SessionState.ESTABLISHED)
        try:
            sock.sendall(data)
        except OSError as e:
            self._state = SessionState.FAILED
            msg = f"Write error: {_error_kind(e)}: {e}"
            raise SessionWriteError(msg) from e

    def close(self) -> None:
        """Send close_notify and mark the session closed.

        Raises:
            SessionStateError: If the session is not established
            SessionCloseError: If the closing exchange fails

        """
        sock = self._require("close", SessionState.ESTABLISHED)
        self._state = SessionState.CLOSED
        try:
            sock.settimeout(self.close_timeout)
            sock.unwrap()
        except OSError as e:
            msg = f"Failed to close TLS session: {_error_kind(e)}: {e}"
            raise SessionCloseError(msg) from e
