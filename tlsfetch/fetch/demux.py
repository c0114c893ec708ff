"""Header/content demultiplexing of a decrypted response stream."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from tlsfetch.utils.exceptions import HeaderOverflowError

logger = logging.getLogger(__name__)

HEADER_TERMINATOR = b"\r\n\r\n"


class ByteSink(Protocol):
    """Append-only byte receiver."""

    def write(self, data: bytes, /) -> Any: ...


@dataclass(frozen=True)
class ResponseHead:
    """Parsed HTTP status line and header fields.

    Header names are lower-cased; repeated fields are joined with ``", "``.
    """

    version: str
    status_code: int
    reason: str
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def parse(cls, raw: bytes) -> ResponseHead | None:
        """Parse a raw header block, returning None if it is not an HTTP response."""
        lines = raw.decode("iso-8859-1").split("\r\n")
        parts = lines[0].split(" ", 2)
        if len(parts) < 2 or not parts[0].startswith("HTTP/"):
            return None
        try:
            status_code = int(parts[1])
        except ValueError:
            return None

        headers: dict[str, str] = {}
        last: str | None = None
        for line in lines[1:]:
            if not line:
                continue
            if line[0] in " \t" and last is not None:
                # obsolete line folding
                headers[last] = f"{headers[last]} {line.strip()}"
                continue
            name, sep, value = line.partition(":")
            if not sep:
                continue
            key = name.strip().lower()
            value = value.strip()
            headers[key] = f"{headers[key]}, {value}" if key in headers else value
            last = key

        return cls(
            version=parts[0],
            status_code=status_code,
            reason=parts[2] if len(parts) > 2 else "",
            headers=headers,
        )

    def get(self, name: str, default: str | None = None) -> str | None:
        """Return a header value by case-insensitive name."""
        return self.headers.get(name.lower(), default)


class StreamDemultiplexer:
    """Split a byte stream into a header region and a content region.

    Bytes are buffered until the first ``CRLFCRLF``; everything after it,
    including the remainder of the feed that completed the header, is written
    to the sink. The switch to content mode happens once and is permanent.
    """

    def __init__(
        self,
        sink: ByteSink,
        max_header_bytes: int | None = None,
        on_headers: Callable[[ResponseHead | None], None] | None = None,
    ):
        """Initialize demultiplexer.

        Args:
            sink: Receiver of content bytes
            max_header_bytes: Cap on the header region including its terminator
            on_headers: Called once when the header region is complete

        """
        self.sink = sink
        self.max_header_bytes = max_header_bytes
        self.on_headers = on_headers
        self.content_bytes = 0
        self._header = bytearray()
        self._in_headers = True
        self._head: ResponseHead | None = None

    @property
    def in_headers(self) -> bool:
        """Return True until the header terminator has been seen."""
        return self._in_headers

    @property
    def header_bytes(self) -> bytes:
        """Return the header bytes seen so far (including the terminator once found)."""
        return bytes(self._header)

    @property
    def response_head(self) -> ResponseHead | None:
        """Return the parsed header block, or None while still in headers or if malformed."""
        return self._head

    def feed(self, data: bytes) -> None:
        """Consume the next chunk of the stream.

        Raises:
            HeaderOverflowError: If the header region exceeds ``max_header_bytes``

        """
        if not data:
            return
        if not self._in_headers:
            self._emit(data)
            return

        # The terminator may straddle the previous feed
        search_from = max(0, len(self._header) - (len(HEADER_TERMINATOR) - 1))
        self._header += data
        index = self._header.find(HEADER_TERMINATOR, search_from)

        if index < 0:
            if (
                self.max_header_bytes is not None
                and len(self._header) > self.max_header_bytes
            ):
                self._raise_overflow()
            return

        end = index + len(HEADER_TERMINATOR)
        if self.max_header_bytes is not None and end > self.max_header_bytes:
            self._raise_overflow()

        remainder = bytes(self._header[end:])
        del self._header[end:]
        self._in_headers = False
        self._head = ResponseHead.parse(bytes(self._header[:index]))
        logger.debug("Header region complete after %d bytes", end)

        if self.on_headers is not None:
            self.on_headers(self._head)
        if remainder:
            self._emit(remainder)

    def _emit(self, data: bytes) -> None:
        self.sink.write(data)
        self.content_bytes += len(data)

    def _raise_overflow(self) -> None:
        msg = f"Response header exceeds {self.max_header_bytes} bytes"
        raise HeaderOverflowError(msg, {"buffered": len(self._header)})
