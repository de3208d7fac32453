# src/config/logging_config.py

"""Per-run timestamped logging for the sourcing search CLI.

Every launch writes ``logs/run_YYYYMMDD_HHMMSS.log``.  The ``sourcing``
logger owns the handlers; connector loggers (``sourcing.alibaba``,
``sourcing.cj-dropshipping`` ...) and service loggers
(``sourcing.retry``, ``sourcing.credentials``, ``sourcing.aggregator``)
propagate into it, so one file holds the attempts, token refreshes and
timings of a run.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from src.config.settings import Settings

ROOT_LOGGER = "sourcing"

_FILE_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | "
    "%(module)s:%(funcName)s:%(lineno)d | %(message)s"
)
_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.WARNING


def setup_logging(
    logs_dir: Path | None = None,
    console_level: str | int | None = None,
) -> Path:
    """Attach the run-file and stderr handlers to the ``sourcing`` logger.

    Args:
        logs_dir: Directory for the run log, ``Settings.LOGS_DIR`` if
            omitted.
        console_level: Threshold for stderr output; falls back to
            ``Settings.CONSOLE_LOG_LEVEL``.

    Returns:
        Path of this run's log file.  A second call in the same process
        keeps the existing handlers and returns the new path unused.
    """
    target_dir = logs_dir or Settings.LOGS_DIR
    target_dir.mkdir(parents=True, exist_ok=True)
    log_file = target_dir / f"run_{datetime.now():%Y%m%d_%H%M%S}.log"

    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(logging.DEBUG)
    if root_logger.handlers:
        return log_file

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT)
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(
        _resolve_level(console_level or Settings.CONSOLE_LOG_LEVEL)
    )
    console_handler.setFormatter(
        logging.Formatter(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT)
    )

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)
    root_logger.info("Run log: %s", log_file)
    return log_file
