"""File output for response content."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import BinaryIO

from tlsfetch.utils.exceptions import OutputError

logger = logging.getLogger(__name__)


class FileSink:
    """Truncate-on-open, append-only binary file."""

    def __init__(self, path: str | Path):
        """Open (and truncate) the output file.

        Raises:
            OutputError: If the file cannot be created

        """
        self.path = Path(path).expanduser()
        self.bytes_written = 0
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file: BinaryIO | None = open(self.path, "wb")  # noqa: SIM115
        except OSError as e:
            msg = f"Failed to open output file {self.path}: {e}"
            raise OutputError(msg) from e

    def write(self, data: bytes) -> int:
        """Append ``data`` unchanged."""
        if self._file is None:
            msg = f"Output file {self.path} is closed"
            raise OutputError(msg)
        try:
            self._file.write(data)
        except OSError as e:
            msg = f"Failed to write to {self.path}: {e}"
            raise OutputError(msg) from e
        self.bytes_written += len(data)
        return len(data)

    def close(self) -> None:
        """Flush and close the file."""
        if self._file is not None:
            self._file.close()
            self._file = None
            logger.debug("Wrote %d bytes to %s", self.bytes_written, self.path)

    def __enter__(self) -> FileSink:
        """Enter the context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Close the file on exit."""
        self.close()
