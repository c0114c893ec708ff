"""Rich logging integration for tlsfetch.

Provides a Rich-based console handler that tags messages with the current
correlation ID and highlights state names.
"""

from __future__ import annotations

import logging
import re
import sys
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

NO_CORRELATION_ID = "no-correlation-id"


class CorrelationRichHandler(RichHandler):
    """RichHandler with correlation ID tagging and state highlighting.

    Each message is prefixed with the first eight characters of the record's
    correlation ID, so log lines from one fetch can be matched with its JSON
    log file entries. Termination reasons and session states (``PEER_CLOSED``,
    ``ESTABLISHED``) are logged in capitals and rendered in orange.
    """

    _ALL_CAPS = re.compile(r"\b[A-Z][A-Z_]*[A-Z]\b")

    def __init__(
        self,
        *args: Any,
        console: Console | None = None,
        show_colors: bool = True,
        show_correlation_id: bool = True,
        **kwargs: Any,
    ) -> None:
        """Initialize RichHandler with markup enabled.

        Args:
            *args: Positional arguments for RichHandler
            console: Optional Rich Console instance
            show_colors: Whether to colorize ALL_CAPS state names
            show_correlation_id: Whether to prefix messages with the correlation ID
            **kwargs: Keyword arguments for RichHandler

        """
        if console is None:
            # stdout carries progress lines, diagnostics go to stderr
            console = Console(file=sys.stderr, markup=True)
        self.show_colors = show_colors
        self.show_correlation_id = show_correlation_id
        kwargs.setdefault("markup", True)
        super().__init__(*args, console=console, **kwargs)

    def emit(self, record: logging.LogRecord) -> None:
        """Emit a log record, attaching the correlation ID if no filter did."""
        if not hasattr(record, "correlation_id"):
            # Lazy import, logging_config imports this module
            from tlsfetch.utils.logging_config import get_correlation_id

            record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        super().emit(record)

    def _colorize(self, message: str) -> str:
        """Escape the message and color ALL_CAPS words in orange."""
        message = escape(message)
        if not self.show_colors:
            return message
        return self._ALL_CAPS.sub(
            lambda m: f"[orange1]{m.group(0)}[/orange1]",
            message,
        )

    def _tag(self, record: logging.LogRecord, message: str) -> str:
        corr_id = getattr(record, "correlation_id", None)
        if not self.show_correlation_id or not corr_id or corr_id == NO_CORRELATION_ID:
            return message
        return f"[{corr_id[:8]}] {message}"

    def render_message(self, record: logging.LogRecord, message: str) -> Any:
        """Render the message with its correlation tag and ALL_CAPS words colorized."""
        return super().render_message(record, self._colorize(self._tag(record, message)))


def create_rich_handler(
    console: Console | None = None,
    level: int | str = logging.INFO,
    show_path: bool = False,
    rich_tracebacks: bool = True,
    show_colors: bool = True,
    show_correlation_id: bool = True,
) -> logging.Handler:
    """Create a RichHandler for console diagnostics.

    Args:
        console: Optional Rich Console instance (defaults to stderr)
        level: Log level
        show_path: Whether to show file paths in log output
        rich_tracebacks: Whether to use rich tracebacks
        show_colors: Whether to colorize ALL_CAPS state names
        show_correlation_id: Whether to prefix messages with the correlation ID

    Returns:
        Configured RichHandler instance

    """
    return CorrelationRichHandler(
        console=console,
        level=level,
        show_path=show_path,
        rich_tracebacks=rich_tracebacks,
        show_colors=show_colors,
        show_correlation_id=show_correlation_id,
    )
