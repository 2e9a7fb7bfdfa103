"""Rich logging integration for dhtcrawl.

Provides the Rich console handler used by :func:`setup_logging` and a file
formatter that strips Rich markup.
"""

from __future__ import annotations

import copy
import logging
import re
import sys
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

# Matches [tag], [tag=value] and [/tag]
_MARKUP_PATTERN = re.compile(r"\[/?[^\]]+\]")


class CorrelationRichHandler(RichHandler):
    """RichHandler that tags each record with the active correlation id.

    Crawl job log lines carry the info hash they belong to, so the
    correlation id is rendered in front of the message to keep concurrent
    jobs apart on the console.
    """

    LEVEL_COLORS: dict[str, str] = {
        "DEBUG": "dim",
        "INFO": "cyan",
        "WARNING": "yellow",
        "ERROR": "red",
        "CRITICAL": "bold red",
    }

    def __init__(
        self,
        *args: Any,
        console: Console | None = None,
        show_correlation_id: bool = True,
        **kwargs: Any,
    ) -> None:
        """Initialize RichHandler with correlation ID support.

        Args:
            *args: Positional arguments for RichHandler
            console: Optional Rich Console instance
            show_correlation_id: Prefix messages with the correlation id
            **kwargs: Keyword arguments for RichHandler

        """
        if console is None:
            console = Console(file=sys.stderr, markup=False)
        self.show_correlation_id = show_correlation_id
        super().__init__(*args, console=console, **kwargs)

    def emit(self, record: logging.LogRecord) -> None:
        """Emit a log record with its correlation ID.

        The record is shared with the other handlers, so the prefixed
        message goes into a copy.
        """
        # Lazy import, logging_config imports this module
        from dhtcrawl.utils.logging_config import get_correlation_id

        corr_id = getattr(record, "correlation_id", None) or get_correlation_id()
        if self.show_correlation_id and corr_id:
            record = copy.copy(record)
            record.msg = f"[{corr_id}] {record.getMessage()}"
            record.args = ()
        super().emit(record)


def strip_rich_markup(text: str) -> str:
    """Strip Rich markup from text for file logging.

    Args:
        text: Text with Rich markup

    Returns:
        Text without Rich markup

    """
    return _MARKUP_PATTERN.sub("", text)


class FileFormatter(logging.Formatter):
    """Formatter for file output that strips Rich markup."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record, stripping Rich markup for file output."""
        return strip_rich_markup(super().format(record))


def create_rich_handler(
    console: Console | None = None,
    level: int | str = logging.INFO,
    show_path: bool = False,
    rich_tracebacks: bool = True,
    show_correlation_id: bool = True,
) -> logging.Handler:
    """Create a RichHandler with correlation ID support.

    Args:
        console: Optional Rich Console instance
        level: Log level
        show_path: Whether to show file paths in log output
        rich_tracebacks: Whether to use rich tracebacks
        show_correlation_id: Prefix messages with the correlation id

    Returns:
        Configured RichHandler instance

    """
    return CorrelationRichHandler(
        console=console,
        level=level,
        show_path=show_path,
        rich_tracebacks=rich_tracebacks,
        show_correlation_id=show_correlation_id,
    )
