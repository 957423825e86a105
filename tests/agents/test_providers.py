"""Tests for the concrete agent providers."""

from __future__ import annotations

import shlex
from pathlib import Path
from typing import List, Optional, Sequence

import pytest

from repowiki.agents import (
    AiderProvider,
    ClaudeProvider,
    CodexProvider,
    CursorProvider,
    CustomProvider,
    QoderProvider,
)
from repowiki.models import AgentType, GenerationRequest, InvocationResult

VALID_DOC = "# Application\n\n" + "The application module exposes a main entry point. " * 3


class ScriptedProcess:
    """Stands in for AgentProcess and replays queued results."""

    def __init__(self, results: Sequence[InvocationResult] = ()) -> None:
        self.results = list(results)
        self.shell_calls: List[str] = []
        self.stdin_calls: List[dict] = []

    async def run_shell(self, command: str, *, cwd: Path) -> InvocationResult:
        self.shell_calls.append(command)
        return self.results.pop(0) if self.results else InvocationResult.ok()

    async def run_stdin(self, executable, args, prompt, *, cwd, validator=None):
        self.stdin_calls.append(
            {"executable": executable, "args": list(args), "prompt": prompt, "cwd": cwd}
        )
        return self.results.pop(0)

    async def probe(self, executable: str) -> bool:
        return True

    async def version(self, executable: str) -> Optional[str]:
        return None


def _request(workspace: Path, **overrides) -> GenerationRequest:
    values = dict(
        doc_path="zh/content/app.md",
        title="Application",
        source_files=("src/app.py",),
        workspace_root=workspace,
    )
    values.update(overrides)
    return GenerationRequest(**values)


def test_builtin_priorities_and_types() -> None:
    providers = [
        QoderProvider(),
        ClaudeProvider(),
        CodexProvider(),
        CursorProvider(),
        AiderProvider(),
    ]

    assert [p.type for p in providers] == [
        AgentType.QODER,
        AgentType.CLAUDE,
        AgentType.CODEX,
        AgentType.CURSOR,
        AgentType.AIDER,
    ]
    assert [p.priority for p in providers] == [1, 2, 3, 4, 5]
    assert [p.uses_stdin for p in providers] == [False, True, True, False, False]


def test_qoder_command_targets_workspace_doc_path(workspace: Path) -> None:
    command = QoderProvider().build_command(_request(workspace))
    parts = shlex.split(command)

    assert parts[:3] == ["qoder", "skill", "skill-repo-wiki"]
    assert "--doc=repowiki/zh/content/app.md" in parts
    assert "--title=Application" in parts
    prompt = next(part for part in parts if part.startswith("--prompt="))
    assert "src/app.py" in prompt


def test_exec_commands_quote_titles_with_shell_metacharacters(workspace: Path) -> None:
    request = _request(workspace, title="It's $(rm -rf) `x`")

    for provider in (QoderProvider(), CursorProvider(), AiderProvider()):
        parts = shlex.split(provider.build_command(request))
        assert parts[0] == provider.executable
        assert any("It's $(rm -rf) `x`" in part for part in parts)


def test_aider_and_cursor_pass_document_file(workspace: Path) -> None:
    request = _request(workspace)

    aider = shlex.split(AiderProvider().build_command(request))
    cursor = shlex.split(CursorProvider().build_command(request))

    assert aider[aider.index("--file") + 1] == "repowiki/zh/content/app.md"
    assert aider[-1] == "--yes"
    assert cursor[cursor.index("--file") + 1] == "repowiki/zh/content/app.md"


def test_update_prompt_asks_to_preserve_structure(workspace: Path) -> None:
    provider = ClaudeProvider()

    create = provider.format_prompt(_request(workspace))
    update = provider.format_prompt(_request(workspace, is_update=True))

    assert "create" in create
    assert "Keep the existing document structure" not in create
    assert "Keep the existing document structure" in update
    assert "Respond with the complete Markdown document only" in create


def test_prompt_without_sources_asks_agent_to_explore(workspace: Path) -> None:
    prompt = ClaudeProvider().format_prompt(_request(workspace, source_files=()))

    assert "No source files were specified" in prompt


def test_custom_provider_substitutes_placeholders(workspace: Path) -> None:
    provider = CustomProvider(
        "mytool",
        "mytool --doc {{DOC_PATH}} --title '{{TITLE}}' --src {{SOURCE_FILES}} --doc-again {{DOC_PATH}}",
        priority=9,
    )
    request = _request(workspace, source_files=("src/app.py", "src/util.py"))

    command = provider.build_command(request)

    assert provider.type is AgentType.CUSTOM
    assert provider.name == "Custom Command (mytool)"
    assert provider.priority == 9
    assert command == (
        "mytool --doc repowiki/zh/content/app.md --title 'Application' "
        "--src src/app.py,src/util.py --doc-again repowiki/zh/content/app.md"
    )


def test_custom_provider_inserts_prompt_verbatim(workspace: Path) -> None:
    provider = CustomProvider("mytool", "mytool {{PROMPT}}")
    request = _request(workspace)

    command = provider.build_command(request)

    assert command == "mytool " + provider.format_prompt(request)


@pytest.mark.asyncio
async def test_codex_embeds_sources_without_mutating_request(workspace: Path) -> None:
    request = _request(workspace)
    provider = CodexProvider()

    invocation = await provider.build_stdin_invocation(request)

    assert invocation.args == ["exec", "--skip-git-repo-check", "-"]
    assert "--- src/app.py ---" in invocation.prompt
    assert "def main():" in invocation.prompt
    assert request.source_contents == ()


@pytest.mark.asyncio
async def test_codex_marks_unreadable_sources(workspace: Path) -> None:
    request = _request(workspace, source_files=("src/missing.py",))

    invocation = await CodexProvider().build_stdin_invocation(request)

    assert "(unreadable:" in invocation.prompt


@pytest.mark.asyncio
async def test_claude_prompt_does_not_embed_sources(workspace: Path) -> None:
    invocation = await ClaudeProvider().build_stdin_invocation(_request(workspace))

    assert invocation.args == ["-p", "--output-format", "text"]
    assert "def main():" not in invocation.prompt


@pytest.mark.asyncio
async def test_fallback_prompt_requests_title_heading(workspace: Path) -> None:
    invocation = await ClaudeProvider().build_stdin_invocation(
        _request(workspace), fallback=True
    )

    assert "# Application" in invocation.prompt


@pytest.mark.asyncio
async def test_exec_invoke_runs_command_in_workspace(workspace: Path) -> None:
    process = ScriptedProcess([InvocationResult.ok(stdout="done")])
    provider = AiderProvider(process=process)

    result = await provider.invoke(_request(workspace))

    assert result.success is True
    assert len(process.shell_calls) == 1
    assert process.shell_calls[0].startswith("aider --message ")


@pytest.mark.asyncio
async def test_stdin_invoke_writes_document(workspace: Path) -> None:
    process = ScriptedProcess([InvocationResult.ok(stdout="\n" + VALID_DOC + "\n\n")])
    provider = ClaudeProvider(process=process)
    request = _request(workspace)

    result = await provider.invoke(request)

    assert result.success is True
    target = workspace / "repowiki" / "zh" / "content" / "app.md"
    assert target.read_text(encoding="utf-8") == VALID_DOC.strip() + "\n"
    call = process.stdin_calls[0]
    assert call["executable"] == "claude"
    assert call["cwd"] == workspace


@pytest.mark.asyncio
async def test_stdin_invoke_retries_once_with_fallback(workspace: Path) -> None:
    process = ScriptedProcess(
        [
            InvocationResult.failure("Output failed validation: short", should_retry=True),
            InvocationResult.ok(stdout=VALID_DOC),
        ]
    )
    logged: List[tuple] = []
    request = _request(workspace, log=lambda message, show: logged.append((message, show)))

    result = await ClaudeProvider(process=process).invoke(request)

    assert result.success is True
    assert len(process.stdin_calls) == 2
    assert process.stdin_calls[0]["prompt"] != process.stdin_calls[1]["prompt"]
    assert "# Application" in process.stdin_calls[1]["prompt"]
    assert any(show and "fallback" in message for message, show in logged)


@pytest.mark.asyncio
async def test_codex_invoke_sends_embedded_sources_on_both_attempts(workspace: Path) -> None:
    process = ScriptedProcess(
        [
            InvocationResult.failure("Output failed validation: short", should_retry=True),
            InvocationResult.ok(stdout=VALID_DOC),
        ]
    )

    result = await CodexProvider(process=process).invoke(_request(workspace))

    assert result.success is True
    first, retry = process.stdin_calls
    assert first["executable"] == "codex"
    assert first["args"] == ["exec", "--skip-git-repo-check", "-"]
    assert "def main():" in first["prompt"]
    assert "def main():" in retry["prompt"]
    assert "# Application" in retry["prompt"]


@pytest.mark.asyncio
async def test_stdin_invoke_gives_up_after_one_retry(workspace: Path) -> None:
    process = ScriptedProcess(
        [
            InvocationResult.failure("Output failed validation: short", should_retry=True),
            InvocationResult.failure("Output failed validation: short", should_retry=True),
        ]
    )

    result = await ClaudeProvider(process=process).invoke(_request(workspace))

    assert result.success is False
    assert result.should_retry is False
    assert (result.error or "").startswith("Output failed validation after fallback retry:")
    assert len(process.stdin_calls) == 2
    assert not (workspace / "repowiki" / "zh" / "content" / "app.md").exists()


@pytest.mark.asyncio
async def test_stdin_invoke_does_not_retry_hard_failures(workspace: Path) -> None:
    process = ScriptedProcess([InvocationResult.failure("claude timed out after 300s")])

    result = await ClaudeProvider(process=process).invoke(_request(workspace))

    assert result.success is False
    assert result.error == "claude timed out after 300s"
    assert len(process.stdin_calls) == 1


@pytest.mark.asyncio
async def test_stdin_invoke_reports_write_failure(workspace: Path) -> None:
    # A file where the document directory should be makes the write fail.
    (workspace / "repowiki").write_text("not a directory", encoding="utf-8")
    process = ScriptedProcess([InvocationResult.ok(stdout=VALID_DOC)])

    result = await ClaudeProvider(process=process).invoke(_request(workspace))

    assert result.success is False
    assert (result.error or "").startswith("Failed to write ")
