"""Logging utilities for repowiki commands and service mode."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict

_LOGGER_NAME = "repowiki"
_CONSOLE_FORMAT = "[repowiki] %(levelname)s %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the repowiki hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Configure the repowiki logger with console output and an optional file sink."""
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # The CLI and the service can both configure logging in one process.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    logger.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


def agent_log_sink(logger: logging.Logger) -> Callable[[str, bool], None]:
    """Adapt ``logger`` to the ``(message, always_show)`` sink providers report through.

    Messages flagged ``always_show`` are logged at INFO, the rest at DEBUG, so
    agent chatter only appears with ``--verbose``.
    """

    def _sink(message: str, always_show: bool) -> None:
        logger.log(logging.INFO if always_show else logging.DEBUG, message)

    return _sink


def service_log_config(*, verbose: bool = False) -> Dict[str, Any]:
    """``dictConfig`` for uvicorn so server lines match the repowiki console format."""
    level = "DEBUG" if verbose else "INFO"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"repowiki": {"format": _CONSOLE_FORMAT}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "repowiki",
                "level": level,
            },
        },
        "loggers": {
            "uvicorn": {"handlers": ["console"], "level": level, "propagate": False},
            "uvicorn.access": {"handlers": ["console"], "level": level, "propagate": False},
        },
    }


__all__ = ["agent_log_sink", "configure_logging", "get_logger", "service_log_config"]
