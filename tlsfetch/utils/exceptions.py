"""Exception hierarchy for tlsfetch.

Provides a small exception hierarchy so that setup failures, session
failures and benign terminations can be told apart by the caller.
"""

from __future__ import annotations

from typing import Any


class TLSFetchError(Exception):
    """Base exception for all tlsfetch errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize tlsfetch error."""
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class NetworkError(TLSFetchError):
    """Network-related errors."""


class ResolutionError(NetworkError):
    """Host name could not be resolved."""


class ConnectError(NetworkError):
    """TCP connection could not be established."""


class TransportClosedError(NetworkError):
    """Operation attempted on a transport that was already closed."""


class SecurityError(TLSFetchError):
    """Security-related errors."""


class TrustStoreError(SecurityError):
    """Trust anchors could not be loaded."""


class HandshakeFailedError(SecurityError):
    """TLS handshake failed."""

    def __init__(
        self,
        message: str,
        code: int | str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """Initialize handshake error with the library error code."""
        super().__init__(message, details)
        self.code = code


class SessionError(SecurityError):
    """Secure session errors."""


class SessionStateError(SessionError):
    """Session operation is not legal in the current session state."""


class SessionReadError(SessionError):
    """Decrypting application data failed; the session is unusable."""

    def __init__(
        self,
        message: str,
        kind: str = "unknown",
        details: dict[str, Any] | None = None,
    ):
        """Initialize read error with a short failure kind."""
        super().__init__(message, details)
        self.kind = kind


class PrematureTerminationError(SessionError):
    """Peer dropped the connection without sending close_notify.

    Expected at the end of many HTTP/1.0 responses and treated like a clean
    end of stream.
    """


class SessionWriteError(SessionError):
    """Encrypting or sending application data failed."""


class SessionCloseError(SessionError):
    """Sending close_notify failed."""


class ProtocolError(TLSFetchError):
    """Response framing errors."""


class HeaderOverflowError(ProtocolError):
    """Response header grew past the configured cap without a terminator."""


class ValidationError(TLSFetchError):
    """Data validation errors."""


class ConfigurationError(ValidationError):
    """Configuration validation errors."""


class OutputError(TLSFetchError):
    """Output file errors."""
