"""Pydantic models for tlsfetch.

Provides validated configuration models and the enumerations shared by the
transport, session and drain loop.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

_PROTOCOL_VERSIONS = {"TLSv1.2", "TLSv1.3"}


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ReadinessResult(str, Enum):
    """Outcome of one readiness wait."""

    ERROR = "error"
    DATA_READY = "data_ready"
    TIMED_OUT = "timed_out"


class SessionState(str, Enum):
    """Secure session lifecycle states."""

    UNINITIALIZED = "uninitialized"
    CONFIGURED = "configured"
    BOUND = "bound"
    HANDSHAKING = "handshaking"
    ESTABLISHED = "established"
    PEER_CLOSED = "peer_closed"
    CLOSED = "closed"
    FAILED = "failed"


class DrainState(str, Enum):
    """Drain loop states."""

    POLLING = "polling"
    CONSUMING_BUFFERED = "consuming_buffered"
    FINISHED = "finished"


class TerminationReason(str, Enum):
    """Why a drain loop finished."""

    PEER_CLOSED = "peer_closed"
    IDLE = "idle"
    EXHAUSTED_RETRIES = "exhausted_retries"
    CANCELLED = "cancelled"
    READINESS_ERROR = "readiness_error"
    SESSION_ERROR = "session_error"
    HEADER_OVERFLOW = "header_overflow"

    @property
    def is_fatal(self) -> bool:
        """Return True for reasons that must surface as a failed transfer."""
        return self in _FATAL_REASONS


_FATAL_REASONS = frozenset(
    {
        TerminationReason.READINESS_ERROR,
        TerminationReason.SESSION_ERROR,
        TerminationReason.HEADER_OVERFLOW,
    }
)


class TargetConfig(BaseModel):
    """Fetch target configuration."""

    host: str = Field(default="google.com", min_length=1, description="Host to fetch from")
    port: int = Field(default=443, ge=1, le=65535, description="TCP port")
    server_hostname: str | None = Field(
        default=None,
        description="Name used for SNI and certificate checks (defaults to host)",
    )
    request_line: str = Field(
        default="GET / HTTP/1.0",
        min_length=1,
        description="Request line sent once after the handshake",
    )

    @field_validator("request_line")
    @classmethod
    def validate_request_line(cls, v: str) -> str:
        """Reject embedded line breaks; the terminator is appended on send."""
        if "\r" in v or "\n" in v:
            msg = "request_line must not contain CR or LF characters"
            raise ValueError(msg)
        return v

    @property
    def tls_hostname(self) -> str:
        """Return the name presented for SNI and hostname verification."""
        return self.server_hostname or self.host

    @property
    def request_bytes(self) -> bytes:
        """Return the exact bytes written on the wire."""
        return f"{self.request_line}\r\n\r\n".encode("ascii")


class TLSConfig(BaseModel):
    """TLS trust and cipher policy."""

    ca_certificates: str = Field(
        default="/etc/ssl/certs/ca-certificates.crt",
        description="Path to PEM CA bundle file or directory",
    )
    verify_certificates: bool = Field(
        default=True,
        description="Verify the server certificate chain",
    )
    check_hostname: bool = Field(
        default=True,
        description="Verify the certificate matches the server hostname",
    )
    min_protocol_version: str = Field(
        default="TLSv1.2",
        description="Minimum TLS protocol version (TLSv1.2, TLSv1.3)",
    )
    max_protocol_version: str | None = Field(
        default=None,
        description="Optional maximum TLS protocol version",
    )
    cipher_suites: list[str] = Field(
        default_factory=lambda: [
            "ECDHE+AESGCM",
            "ECDHE+CHACHA20",
            "!aNULL",
            "!eNULL",
            "!MD5",
            "!DSS",
        ],
        description="OpenSSL cipher string components for TLS 1.2",
    )
    disable_renegotiation: bool = Field(
        default=True,
        description="Refuse TLS renegotiation",
    )

    @field_validator("min_protocol_version", "max_protocol_version")
    @classmethod
    def validate_protocol_version(cls, v: str | None) -> str | None:
        """Validate protocol version."""
        if v is not None and v not in _PROTOCOL_VERSIONS:
            msg = f"protocol version must be one of {sorted(_PROTOCOL_VERSIONS)}, got {v}"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def validate_version_range(self) -> TLSConfig:
        """Validate that the maximum version is not below the minimum."""
        if (
            self.max_protocol_version is not None
            and self.max_protocol_version < self.min_protocol_version
        ):
            msg = "max_protocol_version must not be lower than min_protocol_version"
            raise ValueError(msg)
        if self.check_hostname and not self.verify_certificates:
            msg = "check_hostname requires verify_certificates"
            raise ValueError(msg)
        return self


class NetworkConfig(BaseModel):
    """Socket timeouts."""

    connect_timeout: float = Field(
        default=10.0,
        gt=0.0,
        le=300.0,
        description="TCP connect timeout in seconds",
    )
    io_timeout: float = Field(
        default=30.0,
        gt=0.0,
        le=600.0,
        description="Upper bound for a single blocking socket operation in seconds",
    )
    close_timeout: float = Field(
        default=5.0,
        gt=0.0,
        le=60.0,
        description="Seconds allowed for the close_notify exchange",
    )


class DrainConfig(BaseModel):
    """Drain loop parameters."""

    read_timeout_ms: int = Field(
        default=2000,
        ge=1,
        le=600_000,
        description="Readiness wait before the peer is considered idle",
    )
    idle_retry_delay_ms: int = Field(
        default=10,
        ge=0,
        le=10_000,
        description="Sleep after a readiness wakeup with no queued bytes",
    )
    max_idle_retries: int = Field(
        default=10,
        ge=1,
        le=10_000,
        description="Wakeups with no queued bytes before giving up",
    )
    chunk_size: int = Field(
        default=4096,
        ge=1,
        le=16 * 1024 * 1024,
        description="Maximum plaintext bytes per session read",
    )
    max_header_bytes: int | None = Field(
        default=64 * 1024,
        ge=4,
        description="Cap on buffered response header bytes (None = unbounded)",
    )


class OutputConfig(BaseModel):
    """Output file configuration."""

    path: str = Field(default="output.html", min_length=1, description="Output file path")


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: LogLevel = Field(default=LogLevel.WARNING, description="Log level")
    log_file: str | None = Field(None, description="Log file path")
    structured_logging: bool = Field(
        default=False,
        description="Use structured JSON logging",
    )
    log_correlation_id: bool = Field(
        default=True,
        description="Include correlation IDs",
    )


class Config(BaseModel):
    """Main configuration model."""

    target: TargetConfig = Field(
        default_factory=TargetConfig,
        description="Fetch target configuration",
    )
    tls: TLSConfig = Field(
        default_factory=TLSConfig,
        description="TLS configuration",
    )
    network: NetworkConfig = Field(
        default_factory=NetworkConfig,
        description="Network configuration",
    )
    drain: DrainConfig = Field(
        default_factory=DrainConfig,
        description="Drain loop configuration",
    )
    output: OutputConfig = Field(
        default_factory=OutputConfig,
        description="Output configuration",
    )
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig,
        description="Observability configuration",
    )
