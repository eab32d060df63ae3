from __future__ import annotations

import logging
import sys
from datetime import UTC, datetime
from pathlib import Path

"""Logging initialization with labeled prefixes.

- Console: "<LABEL> message" on stdout (INFO|WARN|ERROR|SUMMARY)
- File: "[<ISO timestamp>] [<LABEL>] message" appended to
  <log_dir>/upload-YYYY-MM-DD.log, switching file when the UTC date changes
- Module loggers live under the "salesdrop" namespace and propagate to it
"""

__all__ = [
    "setup_logging",
    "get_logger",
    "log_summary",
    "reset_logging",
    "LOGGER_NAME",
    "SUMMARY_LEVEL",
]

LOGGER_NAME = "salesdrop"

# Custom SUMMARY level (between INFO=20 and WARNING=30)
SUMMARY_LEVEL = 25

_logger: logging.Logger | None = None


class LabeledFormatter(logging.Formatter):
    """Formats records as "<LABEL> message"."""

    LEVEL_LABELS = {
        logging.DEBUG: "DEBUG",
        logging.INFO: "INFO",
        logging.WARNING: "WARN",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
        SUMMARY_LEVEL: "SUMMARY",
    }

    def label(self, record: logging.LogRecord) -> str:
        return self.LEVEL_LABELS.get(record.levelno, record.levelname)

    def format(self, record: logging.LogRecord) -> str:
        message = f"{self.label(record)} {record.getMessage()}"
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return message


class TimestampedLabeledFormatter(LabeledFormatter):
    """Formats records as "[<ISO timestamp>] [<LABEL>] message" for the log file."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        message = f"[{ts}] [{self.label(record)}] {record.getMessage()}"
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return message


class DatedFileHandler(logging.FileHandler):
    """Append to upload-YYYY-MM-DD.log, reopening when the date rolls over."""

    def __init__(self, log_dir: Path) -> None:
        self.log_dir = log_dir
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self._current_date = self._today()
        super().__init__(self._path_for(self._current_date), mode="a", encoding="utf-8", delay=True)

    @staticmethod
    def _today() -> str:
        return datetime.now(UTC).strftime("%Y-%m-%d")

    def _path_for(self, day: str) -> Path:
        return self.log_dir / f"upload-{day}.log"

    def emit(self, record: logging.LogRecord) -> None:
        today = self._today()
        if today != self._current_date:
            self.acquire()
            try:
                self.close()
                self._current_date = today
                self.baseFilename = str(self._path_for(today).resolve())
            finally:
                self.release()
        super().emit(record)


def setup_logging(log_dir: Path | None = None) -> logging.Logger:
    """Configure the application logger (idempotent).

    Args:
        log_dir: when given, also append to the dated log file in this directory

    Returns:
        The configured "salesdrop" logger
    """
    global _logger

    if _logger is not None:
        if log_dir is not None and not any(isinstance(h, DatedFileHandler) for h in _logger.handlers):
            _add_file_handler(_logger, log_dir)
        return _logger

    logging.addLevelName(SUMMARY_LEVEL, "SUMMARY")

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.INFO)

    # Clear any existing handlers to avoid duplication
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.INFO)
    handler.setFormatter(LabeledFormatter())
    logger.addHandler(handler)

    if log_dir is not None:
        _add_file_handler(logger, log_dir)

    # Prevent propagation to root logger to avoid duplicate output
    logger.propagate = False

    _logger = logger
    return logger


def _add_file_handler(logger: logging.Logger, log_dir: Path) -> None:
    file_handler = DatedFileHandler(log_dir)
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(TimestampedLabeledFormatter())
    logger.addHandler(file_handler)


def set_debug(logger: logging.Logger) -> None:
    for h in logger.handlers:
        h.setLevel(logging.DEBUG)
    logger.setLevel(logging.DEBUG)


def get_logger() -> logging.Logger:
    if _logger is None:
        return setup_logging()
    return _logger


def log_summary(message: str) -> None:
    """Log a message at SUMMARY level."""
    get_logger().log(SUMMARY_LEVEL, message)


def reset_logging() -> None:
    """Reset the global logger state. Mainly for testing purposes."""
    global _logger
    if _logger is not None:
        for handler in _logger.handlers[:]:
            handler.close()
            _logger.removeHandler(handler)
        _logger.setLevel(logging.NOTSET)
        _logger.propagate = True
    _logger = None
