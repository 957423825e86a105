"""Pipeline orchestration for init/update/regenerate flows."""

from __future__ import annotations

import asyncio
import posixpath
import shutil
import time
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .agents import AgentProvider, AgentRegistry
from .config import ConfigStore, RepoWikiConfig
from .errors import AgentUnavailableError, GenerationError, RepoWikiError
from .logging import agent_log_sink, get_logger
from .models import BatchResult, DocRecord, DocStatus, GenerationRequest, SourceDocMapping
from .progress import NullProgress, ProgressReporter
from .staleness import StalenessEngine

STYLE_GUIDE_NAME = "skill.md"
DEFAULT_STYLE_GUIDE = Path(__file__).with_name("templates") / STYLE_GUIDE_NAME

WorkItem = Tuple[SourceDocMapping, DocStatus]


class GenerationOrchestrator:
    """Coordinates documentation runs across every configured mapping.

    Documents are generated one at a time. A failing document is recorded in
    the :class:`BatchResult` and the run moves on; only configuration errors
    abort a batch.
    """

    def __init__(
        self,
        workspace_root: Path,
        registry: AgentRegistry,
        store: ConfigStore,
        *,
        staleness: StalenessEngine | None = None,
        template_path: Path | None = None,
    ) -> None:
        self.workspace_root = Path(workspace_root)
        self.registry = registry
        self.store = store
        self._staleness = staleness
        self.template_path = template_path or DEFAULT_STYLE_GUIDE
        self.logger = get_logger("orchestrator")
        self._agent_log = agent_log_sink(self.logger)

    @property
    def config(self) -> RepoWikiConfig:
        return self.store.config

    @property
    def docs_root(self) -> Path:
        return self.workspace_root / self.config.docs.root

    @property
    def staleness(self) -> StalenessEngine:
        if self._staleness is None:
            return StalenessEngine(self.workspace_root, self.config.docs.root)
        return self._staleness

    async def initialize(self, progress: ProgressReporter | None = None) -> BatchResult:
        """Create the docs skeleton when absent, then generate every mapping."""
        progress = progress or NullProgress()
        start = time.monotonic()
        mappings = self.store.mappings()
        self.logger.info("Starting init run for %s", self.workspace_root)

        if not self.docs_root.exists():
            await asyncio.to_thread(self._create_skeleton)

        result = BatchResult()
        items: List[WorkItem] = [(mapping, DocStatus.MISSING) for mapping in mappings]
        await self._generate_batch(items, result, progress)
        return self._finish("init", result, start, progress)

    async def update(
        self,
        progress: ProgressReporter | None = None,
        *,
        sources: Optional[Sequence[str]] = None,
    ) -> BatchResult:
        """Generate missing documents and refresh outdated ones.

        With ``sources``, only mappings whose source path matches one of them
        are checked. Paths may be workspace-relative or absolute.
        """
        progress = progress or NullProgress()
        start = time.monotonic()
        mappings = self.store.mappings()
        if sources is not None:
            mappings = self._mappings_for_sources(mappings, sources)
            if not mappings:
                self.logger.info("No documents map to %s", ", ".join(sources))
                return BatchResult(duration=time.monotonic() - start)
        records = await self.staleness.check_all(mappings)
        pending: List[WorkItem] = [
            (record.mapping, record.status)
            for record in records
            if record.status is not DocStatus.UP_TO_DATE
        ]
        result = BatchResult(skipped=len(records) - len(pending))
        if not pending:
            self.logger.info("All %d documents are up to date", len(records))
            result.duration = time.monotonic() - start
            return result

        self.logger.info(
            "Updating %d of %d documents (%d up to date)",
            len(pending),
            len(records),
            result.skipped,
        )
        await self._generate_batch(pending, result, progress)
        return self._finish("update", result, start, progress)

    async def regenerate(self, progress: ProgressReporter | None = None) -> BatchResult:
        """Discard the generated content directory and initialize from scratch."""
        content_dir = self.docs_root / self.config.docs.content_dir
        try:
            await asyncio.to_thread(shutil.rmtree, content_dir)
            self.logger.info("Removed %s", content_dir)
        except FileNotFoundError:
            self.logger.debug("Nothing to remove at %s", content_dir)
        except OSError as exc:
            self.logger.warning("Could not remove %s: %s", content_dir, exc)
        return await self.initialize(progress)

    async def status(self) -> List[DocRecord]:
        return await self.staleness.check_all(self.store.mappings())

    def _mappings_for_sources(
        self, mappings: Sequence[SourceDocMapping], sources: Sequence[str]
    ) -> List[SourceDocMapping]:
        wanted = set()
        for source in sources:
            relative = self._workspace_relative(source)
            if relative is None:
                self.logger.debug("Ignoring %s: outside %s", source, self.workspace_root)
            else:
                wanted.add(relative)
        # Mapping order, each mapping at most once.
        return [m for m in mappings if _normalize(m.source_path) in wanted]

    def _workspace_relative(self, source: str) -> Optional[str]:
        path = Path(source)
        if not path.is_absolute():
            return _normalize(source)
        try:
            return _normalize(path.relative_to(self.workspace_root).as_posix())
        except ValueError:
            pass
        try:
            return _normalize(path.resolve().relative_to(self.workspace_root.resolve()).as_posix())
        except ValueError:
            return None

    async def _generate_batch(
        self,
        items: Sequence[WorkItem],
        result: BatchResult,
        progress: ProgressReporter,
    ) -> None:
        if not items:
            return
        if self.registry.active is None:
            await self.registry.select_best()

        total = len(items)
        increment = 100 / total
        for index, (mapping, status) in enumerate(items):
            try:
                await self._generate_one(mapping, is_update=status is DocStatus.OUTDATED)
            except (RepoWikiError, OSError) as exc:
                self.logger.error("Failed to generate %s: %s", mapping.title, exc)
                result.record_failure(mapping.title, str(exc))
            else:
                result.success += 1
            progress.report(f"{mapping.title} ({index + 1}/{total})", increment)

    async def _generate_one(self, mapping: SourceDocMapping, *, is_update: bool) -> None:
        provider = self._require_agent()
        request = GenerationRequest(
            doc_path=mapping.doc_path,
            title=mapping.title,
            source_files=(mapping.source_path,),
            workspace_root=self.workspace_root,
            is_update=is_update,
            log=self._agent_log,
            docs_root=self.config.docs.root,
        )
        request.output_path.parent.mkdir(parents=True, exist_ok=True)
        action = "Updating" if is_update else "Generating"
        self.logger.info("%s %s with %s", action, request.workspace_doc_path, provider.name)

        outcome = await provider.invoke(request)
        if not outcome.success:
            raise GenerationError(outcome.error or f"{provider.name} failed", outcome)
        self.logger.debug("%s finished in %.1fs", mapping.title, outcome.duration)

    def _require_agent(self) -> AgentProvider:
        provider = self.registry.active
        if provider is None:
            raise AgentUnavailableError(
                "No agent CLI is available. Install one or configure agent.custom in .repowiki.yml"
            )
        return provider

    def _create_skeleton(self) -> None:
        docs = self.config.docs
        (self.docs_root / docs.content_dir).mkdir(parents=True, exist_ok=True)
        (self.docs_root / docs.meta_dir).mkdir(parents=True, exist_ok=True)
        self.logger.info("Created documentation skeleton at %s", self.docs_root)
        try:
            shutil.copyfile(self.template_path, self.docs_root / STYLE_GUIDE_NAME)
        except OSError as exc:
            self.logger.warning("Could not copy style guide from %s: %s", self.template_path, exc)

    def _finish(
        self, label: str, result: BatchResult, start: float, progress: ProgressReporter
    ) -> BatchResult:
        result.duration = time.monotonic() - start
        self.logger.info(
            "%s complete: %d succeeded, %d failed, %d skipped in %.1fs",
            label.capitalize(),
            result.success,
            result.failed,
            result.skipped,
            result.duration,
        )
        for error in result.errors:
            self.logger.warning("  %s", error)
        if result.failed:
            progress.notify("warning", f"{result.failed} of {result.total} documents failed")
        else:
            progress.notify("info", f"{result.success} documents generated")
        return result


def _normalize(source_path: str) -> str:
    return posixpath.normpath(source_path.replace("\\", "/"))


def create_orchestrator(workspace_root: Path | str = ".") -> GenerationOrchestrator:
    """Wire the config store, agent registry and orchestrator for a workspace."""
    root = Path(workspace_root).expanduser().resolve()
    store = ConfigStore.load(root)
    registry = AgentRegistry(store)
    return GenerationOrchestrator(root, registry, store)


__all__ = [
    "DEFAULT_STYLE_GUIDE",
    "GenerationOrchestrator",
    "STYLE_GUIDE_NAME",
    "create_orchestrator",
]
