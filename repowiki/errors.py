"""Exception types raised by repowiki components."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from repowiki.models import InvocationResult


class RepoWikiError(RuntimeError):
    """Base class for repowiki failures."""


class ConfigError(RepoWikiError):
    """Raised when the configuration file cannot be parsed or is malformed."""


class AgentUnavailableError(RepoWikiError):
    """Raised when a document must be generated but no agent is active."""


class GenerationError(RepoWikiError):
    """Raised when an agent invocation for a single document fails."""

    def __init__(self, message: str, result: "InvocationResult | None" = None) -> None:
        super().__init__(message)
        self.result = result


__all__ = [
    "AgentUnavailableError",
    "ConfigError",
    "GenerationError",
    "RepoWikiError",
]
