"""Concrete agent integrations."""

from __future__ import annotations

import re
import shlex
from typing import List

from ..models import AgentDescriptor, AgentType, GenerationRequest
from .base import AgentProvider

CUSTOM_PLACEHOLDERS = ("{{PROMPT}}", "{{DOC_PATH}}", "{{TITLE}}", "{{SOURCE_FILES}}")
_PLACEHOLDER_PATTERN = re.compile("|".join(re.escape(p) for p in CUSTOM_PLACEHOLDERS))


class QoderProvider(AgentProvider):
    """Qoder CLI through its repo-wiki skill; writes the document itself."""

    DEFAULT_DESCRIPTOR = AgentDescriptor(AgentType.QODER, "Qoder CLI", "qoder", priority=1)

    def build_command(self, request: GenerationRequest) -> str:
        prompt = self.format_prompt(request)
        return " ".join(
            [
                shlex.quote(self.executable),
                "skill",
                "skill-repo-wiki",
                f"--doc={shlex.quote(request.workspace_doc_path)}",
                f"--title={shlex.quote(request.title)}",
                f"--prompt={shlex.quote(prompt)}",
            ]
        )


class ClaudeProvider(AgentProvider):
    """Claude CLI in print mode, prompt on stdin, document on stdout."""

    DEFAULT_DESCRIPTOR = AgentDescriptor(AgentType.CLAUDE, "Claude CLI", "claude", priority=2)
    uses_stdin = True

    def stdin_args(self, request: GenerationRequest) -> List[str]:
        return ["-p", "--output-format", "text"]


class CodexProvider(AgentProvider):
    """Codex CLI ``exec`` reading the prompt from stdin.

    Codex runs sandboxed, so the source files are embedded into the prompt
    instead of being read by the agent.
    """

    DEFAULT_DESCRIPTOR = AgentDescriptor(AgentType.CODEX, "Codex CLI", "codex", priority=3)
    uses_stdin = True
    embeds_sources = True

    def stdin_args(self, request: GenerationRequest) -> List[str]:
        return ["exec", "--skip-git-repo-check", "-"]


class CursorProvider(AgentProvider):
    DEFAULT_DESCRIPTOR = AgentDescriptor(AgentType.CURSOR, "Cursor CLI", "cursor", priority=4)

    def build_command(self, request: GenerationRequest) -> str:
        prompt = self.format_prompt(request)
        return " ".join(
            [
                shlex.quote(self.executable),
                "--task",
                shlex.quote(prompt),
                "--file",
                shlex.quote(request.workspace_doc_path),
            ]
        )


class AiderProvider(AgentProvider):
    DEFAULT_DESCRIPTOR = AgentDescriptor(AgentType.AIDER, "Aider CLI", "aider", priority=5)

    def build_command(self, request: GenerationRequest) -> str:
        prompt = self.format_prompt(request)
        return " ".join(
            [
                shlex.quote(self.executable),
                "--message",
                shlex.quote(prompt),
                "--file",
                shlex.quote(request.workspace_doc_path),
                "--yes",
            ]
        )


class CustomProvider(AgentProvider):
    """User-defined command built from a template.

    The template may reference ``{{PROMPT}}``, ``{{DOC_PATH}}``, ``{{TITLE}}``
    and ``{{SOURCE_FILES}}`` (comma separated). Values are substituted
    verbatim, so quoting is up to the template author.
    """

    def __init__(
        self,
        command: str,
        template: str,
        *,
        priority: int = 100,
        **kwargs: object,
    ) -> None:
        descriptor = AgentDescriptor(
            AgentType.CUSTOM,
            f"Custom Command ({command})",
            command,
            priority=priority,
            command_template=template,
        )
        super().__init__(descriptor, **kwargs)  # type: ignore[arg-type]

    @property
    def template(self) -> str:
        return self.descriptor.command_template or ""

    def build_command(self, request: GenerationRequest) -> str:
        values = {
            "{{PROMPT}}": self.format_prompt(request),
            "{{DOC_PATH}}": request.workspace_doc_path,
            "{{TITLE}}": request.title,
            "{{SOURCE_FILES}}": ",".join(request.source_files),
        }
        # Single pass so substituted text is never scanned for placeholders again.
        return _PLACEHOLDER_PATTERN.sub(lambda match: values[match.group(0)], self.template)


BUILTIN_PROVIDERS: tuple[type[AgentProvider], ...] = (
    QoderProvider,
    ClaudeProvider,
    CodexProvider,
    CursorProvider,
    AiderProvider,
)


__all__ = [
    "AiderProvider",
    "BUILTIN_PROVIDERS",
    "CUSTOM_PLACEHOLDERS",
    "ClaudeProvider",
    "CodexProvider",
    "CursorProvider",
    "CustomProvider",
    "QoderProvider",
]
