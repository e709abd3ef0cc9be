import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional

from opsmate.config import Config

AUDIT_LOGGER_NAME = "opsmate.audit"

# Attributes every LogRecord carries; anything else was passed via `extra=`
_RESERVED_FIELDS = {
    "name",
    "msg",
    "args",
    "created",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "stack_info",
    "exc_info",
    "exc_text",
    "thread",
    "threadName",
    "taskName",
    "message",
}


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as one JSON object."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_FIELDS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data, default=str)


def _ensure_parent_dir(path: str) -> None:
    directory = os.path.dirname(path)
    if directory and not os.path.exists(directory):
        try:
            os.makedirs(directory)
        except OSError:
            # Fallback if we can't create the directory (e.g. permission issues)
            pass


def setup_logger(name: str) -> logging.Logger:
    """
    Configures and returns a logger with rotating file handler.
    """
    _ensure_parent_dir(Config.LOG_FILE)

    logger = logging.getLogger(name)

    # If logger already has handlers, assume it's configured to avoid duplicates
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO))

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    try:
        # Rotating File Handler: 5MB max, 3 backups
        file_handler = RotatingFileHandler(
            Config.LOG_FILE, maxBytes=5 * 1024 * 1024, backupCount=3
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except (IOError, PermissionError):
        logger.addHandler(logging.NullHandler())

    # No StreamHandler: the CLI view owns stdout.

    return logger


def setup_audit_logger(log_file: Optional[str] = None) -> logging.Logger:
    """
    Configures the audit logger to write one JSON object per line.

    Args:
        log_file: Target file. Defaults to Config.AUDIT_LOG_FILE.

    Returns:
        The audit logger.
    """
    path = log_file or Config.AUDIT_LOG_FILE
    logger = logging.getLogger(AUDIT_LOGGER_NAME)
    logger.setLevel(logging.INFO)
    logger.propagate = False

    for handler in logger.handlers:
        if getattr(handler, "baseFilename", None) == os.path.abspath(path):
            return logger

    _ensure_parent_dir(path)
    try:
        handler = RotatingFileHandler(path, maxBytes=5 * 1024 * 1024, backupCount=3)
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
    except (IOError, PermissionError):
        logger.addHandler(logging.NullHandler())

    return logger
