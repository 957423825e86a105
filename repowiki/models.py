"""Core data models shared across repowiki components."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Tuple

DEFAULT_DOCS_ROOT = "repowiki"

LogSink = Callable[[str, bool], None]


class AgentType(str, Enum):
    """Supported external agents. Declaration order breaks priority ties."""

    QODER = "qoder"
    CLAUDE = "claude"
    CODEX = "codex"
    CURSOR = "cursor"
    AIDER = "aider"
    CUSTOM = "custom"


class DocStatus(str, Enum):
    """Generation status of a document relative to its source file."""

    MISSING = "missing"
    UP_TO_DATE = "up_to_date"
    OUTDATED = "outdated"


@dataclass(frozen=True)
class GenerationRequest:
    """Everything an agent needs to create or update one document."""

    doc_path: str
    title: str
    source_files: Tuple[str, ...]
    workspace_root: Path
    is_update: bool = False
    log: Optional[LogSink] = field(default=None, compare=False, repr=False)
    docs_root: str = DEFAULT_DOCS_ROOT
    source_contents: Tuple[Tuple[str, str], ...] = ()

    @property
    def output_path(self) -> Path:
        return Path(self.workspace_root) / self.docs_root / self.doc_path

    @property
    def workspace_doc_path(self) -> str:
        return f"{self.docs_root}/{self.doc_path}"

    @property
    def style_guide_path(self) -> str:
        return f"{self.docs_root}/skill.md"


@dataclass(frozen=True)
class InvocationResult:
    """Outcome of a single agent process invocation."""

    success: bool
    stdout: str = ""
    stderr: str = ""
    error: Optional[str] = None
    duration: float = 0.0
    should_retry: bool = False

    @classmethod
    def ok(cls, *, stdout: str = "", stderr: str = "", duration: float = 0.0) -> "InvocationResult":
        return cls(success=True, stdout=stdout, stderr=stderr, duration=duration)

    @classmethod
    def failure(
        cls,
        error: str,
        *,
        stdout: str = "",
        stderr: str = "",
        duration: float = 0.0,
        should_retry: bool = False,
    ) -> "InvocationResult":
        return cls(
            success=False,
            stdout=stdout,
            stderr=stderr,
            error=error,
            duration=duration,
            should_retry=should_retry,
        )


@dataclass(frozen=True)
class AgentDescriptor:
    """Identity and default priority of an agent provider."""

    type: AgentType
    name: str
    executable: str
    priority: int
    command_template: Optional[str] = None


@dataclass(frozen=True)
class AgentAvailability:
    """Detection record for a single provider."""

    type: AgentType
    name: str
    available: bool
    priority: int
    version: Optional[str] = None


@dataclass(frozen=True)
class SourceDocMapping:
    """Pairs a source file (workspace relative) with a document (docs-root relative)."""

    source_path: str
    doc_path: str
    title: str


@dataclass(frozen=True)
class DocRecord:
    """Status of one mapping at the time it was checked."""

    mapping: SourceDocMapping
    status: DocStatus
    doc_mtime: Optional[datetime] = None
    source_mtime: Optional[datetime] = None

    @property
    def title(self) -> str:
        return self.mapping.title

    @property
    def doc_path(self) -> str:
        return self.mapping.doc_path


@dataclass(frozen=True)
class StatusSummary:
    """Counts of records per status."""

    missing: int = 0
    outdated: int = 0
    up_to_date: int = 0

    @property
    def total(self) -> int:
        return self.missing + self.outdated + self.up_to_date


@dataclass
class BatchResult:
    """Aggregate outcome of an init/update/regenerate run."""

    success: int = 0
    failed: int = 0
    skipped: int = 0
    duration: float = 0.0
    errors: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.success + self.failed + self.skipped

    def record_failure(self, title: str, message: str) -> None:
        self.failed += 1
        self.errors.append(f"{title}: {message}")


__all__ = [
    "AgentAvailability",
    "AgentDescriptor",
    "AgentType",
    "BatchResult",
    "DEFAULT_DOCS_ROOT",
    "DocRecord",
    "DocStatus",
    "GenerationRequest",
    "InvocationResult",
    "LogSink",
    "SourceDocMapping",
    "StatusSummary",
]
