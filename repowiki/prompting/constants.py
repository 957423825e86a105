"""Shared constants for agent prompts."""

from __future__ import annotations

DEFAULT_TEMPLATE = "default.md.j2"
FALLBACK_TEMPLATE = "fallback.md.j2"

# Per-file ceiling for source bodies embedded into a prompt.
MAX_EMBEDDED_CHARS = 20_000
TRUNCATION_NOTICE = "\n... [truncated]"

FORMATTING_RULES: tuple[str, ...] = (
    "Start with a single level-one heading (`# Title`) and organise the body under `##` and `###` sections.",
    "Declare every referenced file with a `<cite>` block at the top of the document.",
    "End every section with a `**Section sources**` list of the files and line ranges it was written from.",
    "Visualise flows, call sequences and class relationships with Mermaid diagrams in ```mermaid fences.",
    "Link to other documents and source files with relative paths only.",
    "Put code examples in fenced blocks with a language tag so they are syntax highlighted.",
    "Keep the content consistent with the current code; do not describe behaviour that is not there.",
)


__all__ = [
    "DEFAULT_TEMPLATE",
    "FALLBACK_TEMPLATE",
    "FORMATTING_RULES",
    "MAX_EMBEDDED_CHARS",
    "TRUNCATION_NOTICE",
]
