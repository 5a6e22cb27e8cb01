"""Shared logging utilities for the notes CLI, store, and servers.

Provides consistent logging behavior across entry points:
- Stderr for all diagnostics (stdout stays clean for command output)
- Optional debug logging via --verbose flag
- Colored output for better readability (when terminal supports it)
"""

import sys
import traceback
from typing import Any


class Logger:
    """Simple stderr logger.

    Attributes:
        verbose: If True, DEBUG messages are printed
        use_colors: If True, use ANSI color codes
    """

    def __init__(self, verbose: bool = False, use_colors: bool = True) -> None:
        self.verbose = verbose
        self.use_colors = use_colors and sys.stderr.isatty()

    def _colorize(self, text: str, color_code: str) -> str:
        if not self.use_colors:
            return text
        return f"\033[{color_code}m{text}\033[0m"

    def _emit(self, text: str) -> None:
        print(text, file=sys.stderr)

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log debug message (only if verbose enabled).

        Args:
            message: Message to log
            **kwargs: Additional key-value pairs to include
        """
        if not self.verbose:
            return

        formatted = self._colorize(f"DEBUG: {message}", "36")  # Cyan
        if kwargs:
            details = " ".join(f"{k}={v!r}" for k, v in kwargs.items())
            formatted += f" ({details})"
        self._emit(formatted)

    def info(self, message: str) -> None:
        self._emit(self._colorize(message, "37"))  # White

    def warning(self, message: str) -> None:
        self._emit(self._colorize(f"Warning: {message}", "33"))  # Yellow

    def error(self, message: str, suggestion: str | None = None) -> None:
        """Log error message with optional suggestion.

        Args:
            message: Error message to log
            suggestion: Optional suggestion for fixing the error
        """
        self._emit(self._colorize(f"✗ {message}", "31"))  # Red
        if suggestion:
            self._emit(self._colorize(f"  → {suggestion}", "33"))

    def exception(self, message: str, exc: BaseException) -> None:
        """Log exception, with traceback in verbose mode only."""
        self.error(f"{message}: {exc}")

        if self.verbose:
            tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
            self._emit(self._colorize(tb, "90"))  # Gray


_logger: Logger | None = None


def init_logger(verbose: bool = False, use_colors: bool = True) -> Logger:
    """Initialize the process-wide logger.

    Args:
        verbose: Enable debug output
        use_colors: Enable ANSI color codes

    Returns:
        Logger instance
    """
    global _logger
    _logger = Logger(verbose=verbose, use_colors=use_colors)
    return _logger


def get_logger() -> Logger:
    """Get the process-wide logger, creating a quiet one if none was initialized."""
    global _logger
    if _logger is None:
        _logger = Logger()
    return _logger
