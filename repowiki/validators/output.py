"""Structural checks applied to documents captured from agent stdout."""

from __future__ import annotations

from typing import List

from .base import ValidationIssue

MIN_CONTENT_LENGTH = 50
HEADING_MARKER = "#"


class OutputValidator:
    """Accepts captured output only when it plausibly is a Markdown document.

    Output is rejected when its trimmed length is below ``MIN_CONTENT_LENGTH``
    characters or when it contains no heading marker at all. Rejected output is
    retryable: callers are expected to try once more with the fallback prompt.
    """

    name = "markdown_output"

    def __init__(
        self,
        *,
        min_length: int = MIN_CONTENT_LENGTH,
        heading_marker: str = HEADING_MARKER,
    ) -> None:
        self.min_length = min_length
        self.heading_marker = heading_marker

    def validate(self, content: str) -> List[ValidationIssue]:
        text = content.strip()
        issues: List[ValidationIssue] = []
        if len(text) < self.min_length:
            issues.append(
                ValidationIssue(
                    code="too_short",
                    detail=f"output has {len(text)} characters, expected at least {self.min_length}",
                )
            )
        if self.heading_marker not in text:
            issues.append(
                ValidationIssue(
                    code="no_heading",
                    detail=f"output contains no '{self.heading_marker}' heading marker",
                )
            )
        return issues

    def is_acceptable(self, content: str) -> bool:
        return not self.validate(content)


__all__ = ["HEADING_MARKER", "MIN_CONTENT_LENGTH", "OutputValidator"]
