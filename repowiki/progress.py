"""Progress and notification sinks used by long-running operations."""

from __future__ import annotations

import logging
from typing import Protocol

from .logging import get_logger


class ProgressReporter(Protocol):
    """Receives incremental progress and user-facing notifications."""

    def report(self, message: str, increment: float) -> None:
        ...

    def notify(self, level: str, message: str) -> None:
        ...


class NullProgress:
    """Discards every update."""

    def report(self, message: str, increment: float) -> None:
        return None

    def notify(self, level: str, message: str) -> None:
        return None


class LoggingProgress:
    """Logs a running percentage alongside each progress message."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or get_logger("progress")
        self.percent = 0.0

    def report(self, message: str, increment: float) -> None:
        self.percent = min(100.0, self.percent + increment)
        self.logger.info("[%3.0f%%] %s", self.percent, message)

    def notify(self, level: str, message: str) -> None:
        self.logger.log(_LEVELS.get(level.lower(), logging.INFO), message)


_LEVELS = {
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


__all__ = ["LoggingProgress", "NullProgress", "ProgressReporter"]
