"""Validation package for agent-generated documents."""

from .base import ValidationIssue, Validator, describe_issues
from .output import HEADING_MARKER, MIN_CONTENT_LENGTH, OutputValidator

__all__ = [
    "HEADING_MARKER",
    "MIN_CONTENT_LENGTH",
    "OutputValidator",
    "ValidationIssue",
    "Validator",
    "describe_issues",
]
