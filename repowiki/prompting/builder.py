"""Builds agent prompts from the bundled Jinja2 templates."""

from __future__ import annotations

import asyncio
import dataclasses
from pathlib import Path
from typing import List, Sequence, Tuple

from jinja2 import Environment, FileSystemLoader

from ..logging import get_logger
from ..models import GenerationRequest
from .constants import (
    DEFAULT_TEMPLATE,
    FALLBACK_TEMPLATE,
    FORMATTING_RULES,
    MAX_EMBEDDED_CHARS,
    TRUNCATION_NOTICE,
)


class PromptBuilder:
    """Renders the default and fallback prompts for a generation request."""

    def __init__(
        self,
        templates_dir: Path | None = None,
        *,
        rules: Sequence[str] = FORMATTING_RULES,
        max_embedded_chars: int = MAX_EMBEDDED_CHARS,
    ) -> None:
        self.templates_dir = templates_dir or Path(__file__).with_name("templates")
        self.rules = tuple(rules)
        self.max_embedded_chars = max_embedded_chars
        self.logger = get_logger("prompting")
        self._env = self._create_env(self.templates_dir)

    def build(self, request: GenerationRequest, *, stdout_only: bool = False) -> str:
        """Full prompt: action, sources and the documentation conventions."""
        template = self._env.get_template(DEFAULT_TEMPLATE)
        return template.render(
            action="update" if request.is_update else "create",
            title=request.title,
            doc_path=request.workspace_doc_path,
            source_files=list(request.source_files),
            style_guide=request.style_guide_path,
            rules=self.rules,
            is_update=request.is_update,
            stdout_only=stdout_only,
            source_contents=list(request.source_contents),
        ).strip() + "\n"

    def build_fallback(self, request: GenerationRequest) -> str:
        """Reduced prompt used for the single retry after rejected output."""
        template = self._env.get_template(FALLBACK_TEMPLATE)
        return template.render(
            title=request.title,
            source_files=list(request.source_files),
            source_contents=list(request.source_contents),
        ).strip() + "\n"

    async def embed_sources(self, request: GenerationRequest) -> GenerationRequest:
        """Return a copy of ``request`` carrying the bodies of its source files."""
        root = Path(request.workspace_root)
        bodies = await asyncio.gather(
            *(self._read_source(root, path) for path in request.source_files)
        )
        contents: List[Tuple[str, str]] = list(zip(request.source_files, bodies))
        return dataclasses.replace(request, source_contents=tuple(contents))

    async def _read_source(self, root: Path, relative: str) -> str:
        path = root / relative
        try:
            text = await asyncio.to_thread(path.read_text, encoding="utf-8", errors="replace")
        except OSError as exc:
            self.logger.warning("Could not read source file %s: %s", path, exc)
            return f"(unreadable: {exc.strerror or exc})"
        if len(text) > self.max_embedded_chars:
            return text[: self.max_embedded_chars] + TRUNCATION_NOTICE
        return text

    @staticmethod
    def _create_env(templates_dir: Path) -> Environment:
        directories = [str(templates_dir)]
        default_dir = Path(__file__).with_name("templates")
        if default_dir != templates_dir:
            directories.append(str(default_dir))
        loader = FileSystemLoader(directories)
        return Environment(
            loader=loader,
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )


__all__ = ["PromptBuilder"]
