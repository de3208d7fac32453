# tests/test_logging_config.py

"""Tests for the per-run logging configuration."""

import logging
import tempfile
import unittest
from pathlib import Path

from src.config.logging_config import ROOT_LOGGER, setup_logging


class TestLoggingConfig(unittest.TestCase):
    """Verify logging setup behaviour."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.logs_dir = Path(self._tmp.name) / "logs"
        self._reset()

    def tearDown(self) -> None:
        self._reset()
        self._tmp.cleanup()

    def _reset(self) -> None:
        root_logger = logging.getLogger(ROOT_LOGGER)
        for handler in list(root_logger.handlers):
            handler.close()
            root_logger.removeHandler(handler)

    def _handlers(self) -> tuple[list[logging.Handler], list[logging.Handler]]:
        handlers = logging.getLogger(ROOT_LOGGER).handlers
        files = [h for h in handlers if isinstance(h, logging.FileHandler)]
        streams = [h for h in handlers if h not in files]
        return files, streams

    def test_creates_named_log_file(self) -> None:
        """The run log exists and is named run_YYYYMMDD_HHMMSS.log."""
        log_path = setup_logging(self.logs_dir)
        self.assertTrue(log_path.exists())
        self.assertEqual(log_path.parent, self.logs_dir)
        self.assertRegex(log_path.name, r"^run_\d{8}_\d{6}\.log$")

    def test_handler_levels(self) -> None:
        """File captures DEBUG, stderr defaults to WARNING."""
        setup_logging(self.logs_dir)
        files, streams = self._handlers()
        self.assertEqual(len(files), 1)
        self.assertEqual(len(streams), 1)
        self.assertEqual(files[0].level, logging.DEBUG)
        self.assertEqual(streams[0].level, logging.WARNING)
        self.assertEqual(
            logging.getLogger(ROOT_LOGGER).level, logging.DEBUG
        )

    def test_console_level_override(self) -> None:
        setup_logging(self.logs_dir, console_level="info")
        _, streams = self._handlers()
        self.assertEqual(streams[0].level, logging.INFO)

    def test_repeated_calls_no_duplicate_handlers(self) -> None:
        setup_logging(self.logs_dir)
        count_before = len(logging.getLogger(ROOT_LOGGER).handlers)
        setup_logging(self.logs_dir)
        self.assertEqual(
            len(logging.getLogger(ROOT_LOGGER).handlers), count_before
        )

    def test_child_loggers_reach_run_file(self) -> None:
        """Connector loggers propagate into the run file."""
        log_path = setup_logging(self.logs_dir)
        logging.getLogger("sourcing.cj-dropshipping").debug(
            "[%s] token refreshed", "cj-dropshipping"
        )
        files, _ = self._handlers()
        files[0].flush()
        content = log_path.read_text(encoding="utf-8")
        self.assertIn("[cj-dropshipping] token refreshed", content)
        self.assertIn("sourcing.cj-dropshipping", content)


if __name__ == "__main__":
    unittest.main()
