"""Logging helpers shared across the application."""

import logging
import sys
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Attributes present on every LogRecord; anything else came in through ``extra``.
_RESERVED_ATTRS = set(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime"}


class ExtraFieldsFormatter(logging.Formatter):
    """Formatter that appends ``extra={...}`` fields as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }
        if not extras:
            return base
        rendered = " ".join(f"{key}={value!r}" for key, value in sorted(extras.items()))
        return f"{base} | {rendered}"


def _build_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ExtraFieldsFormatter(DEFAULT_FORMAT))
    return handler


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Get a configured logger.

    The root ``app`` logger owns the single stream handler; child loggers
    propagate to it so every module shares one output format.

    Args:
        name: Logger name, usually ``__name__``
        level: Optional log level name (e.g. ``"DEBUG"``)

    Returns:
        logging.Logger: Configured logger instance
    """
    root = logging.getLogger("app")
    if not root.handlers:
        root.addHandler(_build_handler())
        root.setLevel(logging.INFO)
        root.propagate = False

    logger = logging.getLogger(name)
    if level:
        logger.setLevel(level.upper())
    return logger
