"""Shared behaviour for agent providers."""

from __future__ import annotations

import asyncio
import dataclasses
import time
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar, List, Optional

from ..logging import agent_log_sink, get_logger
from ..models import AgentDescriptor, AgentType, GenerationRequest, InvocationResult
from ..prompting import PromptBuilder
from ..validators import OutputValidator
from .process import AgentProcess

# One degraded-prompt retry per document bounds the worst case to two stdin runs.
MAX_FALLBACK_RETRIES = 1


@dataclass(frozen=True)
class StdinInvocation:
    """Argument list and prompt body for a stdin-mode run."""

    args: List[str]
    prompt: str


class AgentProvider:
    """Base class for agent integrations.

    Subclasses set ``DEFAULT_DESCRIPTOR`` and either implement
    :meth:`build_command` (exec mode) or set ``uses_stdin`` and implement
    :meth:`stdin_args`. Prompt rendering, process handling and output
    validation are composed in rather than inherited.
    """

    DEFAULT_DESCRIPTOR: ClassVar[Optional[AgentDescriptor]] = None
    uses_stdin: ClassVar[bool] = False
    embeds_sources: ClassVar[bool] = False

    def __init__(
        self,
        descriptor: AgentDescriptor | None = None,
        *,
        process: AgentProcess | None = None,
        prompt_builder: PromptBuilder | None = None,
        validator: OutputValidator | None = None,
    ) -> None:
        resolved = descriptor or self.DEFAULT_DESCRIPTOR
        if resolved is None:
            raise ValueError(f"{self.__class__.__name__} requires an agent descriptor")
        self.descriptor = resolved
        self.process = process or AgentProcess()
        self.prompts = prompt_builder or PromptBuilder()
        self.validator = validator or OutputValidator()
        self.logger = get_logger(f"agents.{resolved.type.value}")

    @property
    def type(self) -> AgentType:
        return self.descriptor.type

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def executable(self) -> str:
        return self.descriptor.executable

    @property
    def priority(self) -> int:
        return self.descriptor.priority

    async def probe(self) -> bool:
        return await self.process.probe(self.executable)

    async def version(self) -> Optional[str]:
        return await self.process.version(self.executable)

    def format_prompt(self, request: GenerationRequest) -> str:
        return self.prompts.build(request, stdout_only=self.uses_stdin)

    def format_fallback_prompt(self, request: GenerationRequest) -> str:
        return self.prompts.build_fallback(request)

    def build_command(self, request: GenerationRequest) -> str:
        """Shell command line for exec-mode providers."""
        raise NotImplementedError(f"{self.name} does not run in exec mode")

    def stdin_args(self, request: GenerationRequest) -> List[str]:
        """Argument list (without the executable) for stdin-mode providers."""
        raise NotImplementedError(f"{self.name} does not run in stdin mode")

    async def prepare(self, request: GenerationRequest) -> GenerationRequest:
        """Return the request this provider actually renders; never mutates the input."""
        if self.embeds_sources and request.source_files:
            return await self.prompts.embed_sources(request)
        return request

    async def build_stdin_invocation(
        self, request: GenerationRequest, *, fallback: bool = False
    ) -> StdinInvocation:
        prepared = await self.prepare(request)
        prompt = self.format_fallback_prompt(prepared) if fallback else self.format_prompt(prepared)
        return StdinInvocation(args=self.stdin_args(prepared), prompt=prompt)

    async def invoke(self, request: GenerationRequest) -> InvocationResult:
        """Generate one document; failures are returned, not raised."""
        if self.uses_stdin:
            return await self._invoke_stdin(request)
        return await self._invoke_exec(request)

    async def _invoke_exec(self, request: GenerationRequest) -> InvocationResult:
        command = self.build_command(request)
        self._log(request, f"Running {self.name} in exec mode")
        self.logger.debug("Command: %s", command)
        return await self.process.run_shell(command, cwd=Path(request.workspace_root))

    async def _invoke_stdin(self, request: GenerationRequest) -> InvocationResult:
        start = time.monotonic()
        cwd = Path(request.workspace_root)
        invocation = await self.build_stdin_invocation(request)

        self._log(request, f"Running {self.name} in stdin mode")
        result = await self.process.run_stdin(
            self.executable,
            invocation.args,
            invocation.prompt,
            cwd=cwd,
            validator=self.validator,
        )
        retries = 0
        while result.should_retry and retries < MAX_FALLBACK_RETRIES:
            retries += 1
            self._log(
                request,
                f"{self.name} output rejected ({result.error}); retrying with the fallback prompt",
                always_show=True,
            )
            invocation = await self.build_stdin_invocation(request, fallback=True)
            result = await self.process.run_stdin(
                self.executable,
                invocation.args,
                invocation.prompt,
                cwd=cwd,
                validator=self.validator,
            )

        duration = time.monotonic() - start
        if not result.success:
            error = result.error or f"{self.name} invocation failed"
            if result.should_retry:
                error = f"Output failed validation after fallback retry: {error}"
            return dataclasses.replace(result, error=error, should_retry=False, duration=duration)

        target = request.output_path
        try:
            await asyncio.to_thread(_write_document, target, result.stdout)
        except OSError as exc:
            return InvocationResult.failure(
                f"Failed to write {target}: {exc}",
                stdout=result.stdout,
                stderr=result.stderr,
                duration=time.monotonic() - start,
            )
        self._log(request, f"Wrote {request.workspace_doc_path}")
        return dataclasses.replace(result, duration=time.monotonic() - start)

    def _log(self, request: GenerationRequest, message: str, *, always_show: bool = False) -> None:
        sink = request.log or agent_log_sink(self.logger)
        sink(message, always_show)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(type={self.type.value!r}, executable={self.executable!r})"


def _write_document(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content.strip() + "\n", encoding="utf-8")


__all__ = ["AgentProvider", "MAX_FALLBACK_RETRIES", "StdinInvocation"]
