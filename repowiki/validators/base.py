"""Core validation data structures."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Protocol


@dataclass(frozen=True)
class ValidationIssue:
    """Represents a single reason agent output was rejected."""

    code: str
    detail: str


class Validator(Protocol):
    """Protocol implemented by agent output validators."""

    name: str

    def validate(self, content: str) -> List[ValidationIssue]:
        """Run validation and return any issues."""


def describe_issues(issues: List[ValidationIssue]) -> str:
    """Join issue details into a single human readable reason."""
    return "; ".join(issue.detail for issue in issues)
