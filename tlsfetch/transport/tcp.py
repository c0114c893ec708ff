"""TCP transport owning a single connected socket."""

from __future__ import annotations

import logging
import socket

from tlsfetch.utils.exceptions import ConnectError, TransportClosedError

logger = logging.getLogger(__name__)


class TcpTransport:
    """Connected TCP stream with a close-once lifecycle.

    The transport is the single owner of its socket. The secure session wraps
    that socket but never closes it; teardown always goes through
    :meth:`close`.
    """

    def __init__(self, sock: socket.socket, address: str, port: int):
        """Take ownership of an already connected socket."""
        self._sock: socket.socket | None = sock
        self.address = address
        self.port = port

    @classmethod
    def connect(
        cls,
        address: str,
        port: int,
        connect_timeout: float | None = None,
        io_timeout: float | None = None,
    ) -> TcpTransport:
        """Open a TCP connection.

        Args:
            address: IPv4 address to connect to
            port: TCP port
            connect_timeout: Seconds to wait for the connection (None blocks)
            io_timeout: Per-operation socket timeout applied after connecting

        Returns:
            Connected transport

        Raises:
            ConnectError: If the socket cannot be created or connected

        """
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as e:
            msg = f"Failed to create socket: {e}"
            raise ConnectError(msg) from e

        try:
            sock.settimeout(connect_timeout)
            sock.connect((address, port))
            sock.settimeout(io_timeout)
        except (OSError, OverflowError) as e:
            sock.close()
            msg = f"Connect error to {address}:{port}: {e}"
            raise ConnectError(msg, {"address": address, "port": port}) from e

        logger.debug("Connected to %s:%s", address, port)
        return cls(sock, address, port)

    @property
    def closed(self) -> bool:
        """Return True once :meth:`close` has run."""
        return self._sock is None

    @property
    def socket(self) -> socket.socket:
        """Return the owned socket."""
        if self._sock is None:
            msg = "Transport is closed"
            raise TransportClosedError(msg)
        return self._sock

    def adopt(self, sock: socket.socket) -> None:
        """Take ownership of a wrapper around the owned descriptor.

        Wrapping a socket in TLS detaches the original object, so the wrapper
        becomes the object this transport shuts down and closes.
        """
        if self._sock is None:
            msg = "Transport is closed"
            raise TransportClosedError(msg)
        self._sock = sock

    def fileno(self) -> int:
        """Return the socket descriptor."""
        return self.socket.fileno()

    def close(self) -> None:
        """Shut down both directions and release the descriptor."""
        sock, self._sock = self._sock, None
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            # Peer may already have reset the connection
            logger.debug("Shutdown of %s:%s failed: %s", self.address, self.port, e)
        finally:
            sock.close()
        logger.debug("Closed connection to %s:%s", self.address, self.port)

    def __enter__(self) -> TcpTransport:
        """Enter the context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Close the transport on exit."""
        self.close()
