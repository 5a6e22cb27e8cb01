"""Tests for shared logging utilities."""

import pytest

from agentnotes.utils import logging as notes_logging
from agentnotes.utils.logging import Logger, get_logger, init_logger


class TestLogger:
    """Tests for Logger class."""

    def test_error_message(self, capsys):
        logger = Logger(verbose=False, use_colors=False)
        logger.error("Note not found: x.md")

        captured = capsys.readouterr()
        assert "✗ Note not found: x.md" in captured.err
        assert captured.out == ""

    def test_error_with_suggestion(self, capsys):
        """Test error logging with suggestion."""
        logger = Logger(verbose=False, use_colors=False)
        logger.error("Notes directory not found", suggestion="Pass --dir")

        captured = capsys.readouterr()
        assert "→ Pass --dir" in captured.err

    def test_warning_message(self, capsys):
        Logger(use_colors=False).warning("Ignoring malformed sidecar")

        assert "Warning: Ignoring malformed sidecar" in capsys.readouterr().err

    def test_info_message(self, capsys):
        Logger(use_colors=False).info("Watching notes")

        assert "Watching notes" in capsys.readouterr().err

    def test_debug_verbose_disabled(self, capsys):
        Logger(verbose=False, use_colors=False).debug("Debug details")

        assert capsys.readouterr().err == ""

    def test_debug_with_kwargs(self, capsys):
        """Test debug logging with key-value pairs."""
        logger = Logger(verbose=True, use_colors=False)
        logger.debug("Remapped comments", note="a.md", rev=3)

        captured = capsys.readouterr()
        assert "DEBUG: Remapped comments" in captured.err
        assert "note='a.md'" in captured.err
        assert "rev=3" in captured.err

    def test_exception_basic(self, capsys):
        """Test exception logging without traceback."""
        logger = Logger(verbose=False, use_colors=False)
        logger.exception("Failed to parse", ValueError("bad offset"))

        captured = capsys.readouterr()
        assert "✗ Failed to parse: bad offset" in captured.err
        assert "Traceback" not in captured.err

    def test_exception_with_traceback(self, capsys):
        """Test exception logging with traceback in verbose mode."""
        logger = Logger(verbose=True, use_colors=False)

        try:
            raise ValueError("Test error")
        except ValueError as e:
            logger.exception("Caught exception", e)

        captured = capsys.readouterr()
        assert "Traceback" in captured.err
        assert "ValueError: Test error" in captured.err

    def test_colorize(self):
        logger = Logger(use_colors=True)
        logger.use_colors = True  # Override TTY check

        assert logger._colorize("text", "31") == "\033[31mtext\033[0m"
        assert Logger(use_colors=False)._colorize("text", "31") == "text"


class TestGlobalLogger:
    """Tests for process-wide logger initialization."""

    @pytest.fixture(autouse=True)
    def restore_logger(self):
        saved = notes_logging._logger
        yield
        notes_logging._logger = saved

    def test_init_logger(self):
        logger = init_logger(verbose=True, use_colors=False)

        assert logger.verbose is True
        assert logger.use_colors is False
        assert get_logger() is logger

    def test_get_logger_before_init_is_quiet(self):
        notes_logging._logger = None

        logger = get_logger()

        assert logger.verbose is False
        assert get_logger() is logger
