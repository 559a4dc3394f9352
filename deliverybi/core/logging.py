"""
Structured logging for the API and the alert jobs.
Keyword arguments passed to the logger end up as ``key=value`` pairs in the output.
"""

import logging
import sys
from typing import Optional

from deliverybi.core.config import settings

_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "timestamp", "asctime"}


class StructuredLogger:
    """Thin wrapper over ``logging.Logger`` that accepts structured fields."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def debug(self, message: str, **kwargs):
        self.logger.debug(message, extra=kwargs)

    def info(self, message: str, **kwargs):
        self.logger.info(message, extra=kwargs)

    def warning(self, message: str, **kwargs):
        self.logger.warning(message, extra=kwargs)

    def error(self, message: str, exc: Optional[Exception] = None, **kwargs):
        """Log an error, attaching the traceback when ``exc`` is given."""
        if exc:
            self.logger.error(message, exc_info=exc, extra=kwargs)
        else:
            self.logger.error(message, extra=kwargs)

    def critical(self, message: str, exc: Optional[Exception] = None, **kwargs):
        if exc:
            self.logger.critical(message, exc_info=exc, extra=kwargs)
        else:
            self.logger.critical(message, extra=kwargs)


class StructuredFormatter(logging.Formatter):
    """Renders ``[ts] LEVEL name: message | k=v | k=v``."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "timestamp"):
            record.timestamp = self.formatTime(record, self.default_time_format)

        base_format = f"[{record.timestamp}] {record.levelname} {record.name}: {record.getMessage()}"

        extra_fields = [
            f"{key}={value}"
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS
        ]
        if extra_fields:
            base_format = f"{base_format} | {' | '.join(extra_fields)}"

        if record.exc_info:
            base_format = f"{base_format}\n{self.formatException(record.exc_info)}"
        return base_format


def configure_logging(
    level: str = "INFO",
    format_type: str = "structured",
    enable_console: bool = True,
    enable_file: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure application-wide logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: 'structured' or 'simple'
        enable_console: Log to stdout
        enable_file: Log to ``log_file`` as well
        log_file: Log file path (required if enable_file=True)
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(numeric_level)

    if format_type == "structured":
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    if enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if enable_file and log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    return StructuredLogger(name)


app_logger = get_logger("app")
auth_logger = get_logger("auth")
db_logger = get_logger("db")
api_logger = get_logger("api")
alerts_logger = get_logger("alerts")


def init_app_logging():
    """Initialize logging from settings."""
    log_config = {
        "level": settings.LOG_LEVEL,
        "format_type": "structured",
        "enable_console": True,
        "enable_file": settings.LOG_TO_FILE,
        "log_file": settings.LOG_FILE_PATH,
    }

    configure_logging(**log_config)
    app_logger.info("Application logging initialized", **log_config)
