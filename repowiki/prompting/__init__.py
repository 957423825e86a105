"""Prompt construction for agent invocations."""

from .builder import PromptBuilder
from .constants import FORMATTING_RULES, MAX_EMBEDDED_CHARS

__all__ = ["FORMATTING_RULES", "MAX_EMBEDDED_CHARS", "PromptBuilder"]
