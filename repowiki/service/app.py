"""FastAPI application entrypoint for repowiki service mode."""

from __future__ import annotations

from functools import partial
from pathlib import Path
from typing import Any, Callable, List, Optional

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .. import __version__
from ..errors import RepoWikiError
from ..logging import service_log_config
from ..models import AgentAvailability, AgentType, BatchResult
from ..orchestrator import GenerationOrchestrator, create_orchestrator


class HealthResponse(BaseModel):
    status: str


class DocumentStatus(BaseModel):
    title: str
    source_path: str
    doc_path: str
    status: str


class StatusSummaryResponse(BaseModel):
    missing: int
    outdated: int
    up_to_date: int
    total: int


class StatusResponse(BaseModel):
    documents: List[DocumentStatus]
    summary: StatusSummaryResponse


class AgentInfo(BaseModel):
    type: str
    name: str
    available: bool
    priority: int
    version: Optional[str] = None


class AgentsResponse(BaseModel):
    agents: List[AgentInfo]
    active: Optional[str] = None


class SetActiveRequest(BaseModel):
    type: AgentType


class UpdateRequest(BaseModel):
    sources: List[str] = []


class BatchResponse(BaseModel):
    success: int
    failed: int
    skipped: int
    duration: float
    errors: List[str]


def _default_orchestrator() -> GenerationOrchestrator:
    return create_orchestrator(Path.cwd())


def _agent_info(record: AgentAvailability) -> AgentInfo:
    return AgentInfo(
        type=record.type.value,
        name=record.name,
        available=record.available,
        priority=record.priority,
        version=record.version,
    )


def _batch_response(result: BatchResult) -> BatchResponse:
    return BatchResponse(
        success=result.success,
        failed=result.failed,
        skipped=result.skipped,
        duration=result.duration,
        errors=list(result.errors),
    )


def create_app(
    orchestrator_factory: Callable[[], GenerationOrchestrator] = _default_orchestrator,
) -> FastAPI:
    """Create the FastAPI application exposing repowiki operations."""

    app = FastAPI(title="RepoWiki Service", version=__version__)

    async def get_orchestrator() -> GenerationOrchestrator:
        # One orchestrator per request; configuration is re-read each time.
        return orchestrator_factory()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/status", response_model=StatusResponse)
    async def status(
        orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    ) -> StatusResponse:
        records = await orchestrator.status()
        summary = orchestrator.staleness.summarize(records)
        return StatusResponse(
            documents=[
                DocumentStatus(
                    title=record.title,
                    source_path=record.mapping.source_path,
                    doc_path=record.doc_path,
                    status=record.status.value,
                )
                for record in records
            ],
            summary=StatusSummaryResponse(
                missing=summary.missing,
                outdated=summary.outdated,
                up_to_date=summary.up_to_date,
                total=summary.total,
            ),
        )

    @app.get("/agents", response_model=AgentsResponse)
    async def agents(
        orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    ) -> AgentsResponse:
        registry = orchestrator.registry
        records = await registry.detect_available()
        active = await registry.select_best() if registry.available else None
        return AgentsResponse(
            agents=[
                _agent_info(record) for record in records
            ],
            active=active.type.value if active is not None else None,
        )

    @app.post("/agents/active", response_model=AgentsResponse)
    async def set_active_agent(
        payload: SetActiveRequest,
        orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    ):
        registry = orchestrator.registry
        await registry.detect_available()
        if not registry.set_active(payload.type):
            return JSONResponse(
                status_code=409,
                content={"detail": f"Agent '{payload.type.value}' is not available"},
            )
        orchestrator.store.update("agent.preferred", payload.type.value)
        return AgentsResponse(
            agents=[
                _agent_info(record) for record in registry.available
            ],
            active=payload.type.value,
        )

    @app.post("/init", response_model=BatchResponse)
    async def init_docs(
        orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    ) -> BatchResponse:
        return _batch_response(await orchestrator.initialize())

    @app.post("/update", response_model=BatchResponse)
    async def update_docs(
        payload: Optional[UpdateRequest] = None,
        orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    ) -> BatchResponse:
        # No body, or an empty list, checks every mapping.
        sources = payload.sources if payload is not None else []
        return _batch_response(await orchestrator.update(sources=sources or None))

    @app.post("/regenerate", response_model=BatchResponse)
    async def regenerate_docs(
        orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    ) -> BatchResponse:
        return _batch_response(await orchestrator.regenerate())

    @app.exception_handler(RepoWikiError)
    async def repowiki_error_handler(
        _: Any, exc: RepoWikiError
    ) -> JSONResponse:  # pragma: no cover - simple mapping
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


def run_service(
    host: str = "127.0.0.1",
    port: int = 8000,
    workspace_root: Path | None = None,
    *,
    verbose: bool = False,
) -> None:  # pragma: no cover - integration path
    import uvicorn

    factory: Callable[[], GenerationOrchestrator] = _default_orchestrator
    if workspace_root is not None:
        factory = partial(create_orchestrator, workspace_root)
    app = create_app(factory)
    uvicorn.run(app, host=host, port=port, log_config=service_log_config(verbose=verbose))


__all__ = ["create_app", "run_service"]
