"""Tests for the FastAPI service mode."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from repowiki.agents import AgentProvider, AgentRegistry
from repowiki.config import ConfigStore
from repowiki.models import AgentDescriptor, AgentType, GenerationRequest, InvocationResult
from repowiki.orchestrator import GenerationOrchestrator
from repowiki.service import create_app


class StubAgent(AgentProvider):
    def __init__(self, agent_type: AgentType, priority: int, *, installed: bool = True) -> None:
        super().__init__(
            AgentDescriptor(agent_type, f"{agent_type.value} stub", agent_type.value, priority)
        )
        self.installed = installed

    async def probe(self) -> bool:
        return self.installed

    async def version(self) -> Optional[str]:
        return "1.0" if self.installed else None

    async def invoke(self, request: GenerationRequest) -> InvocationResult:
        request.output_path.write_text(f"# {request.title}\n", encoding="utf-8")
        return InvocationResult.ok()


@pytest.fixture
def client(workspace: Path, make_store) -> TestClient:
    make_store(
        {"mappings": [{"source": "src/app.py", "doc": "zh/content/app.md", "title": "App"}]}
    )

    def _factory() -> GenerationOrchestrator:
        store = ConfigStore.load(workspace)
        registry = AgentRegistry(
            store,
            providers=[
                StubAgent(AgentType.CLAUDE, 2),
                StubAgent(AgentType.CODEX, 3),
                StubAgent(AgentType.AIDER, 5, installed=False),
            ],
        )
        return GenerationOrchestrator(workspace, registry, store)

    return TestClient(create_app(_factory))


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_status_endpoint_reports_missing_document(client: TestClient) -> None:
    response = client.get("/status")

    assert response.status_code == 200
    payload = response.json()
    assert payload["documents"] == [
        {
            "title": "App",
            "source_path": "src/app.py",
            "doc_path": "zh/content/app.md",
            "status": "missing",
        }
    ]
    assert payload["summary"] == {"missing": 1, "outdated": 0, "up_to_date": 0, "total": 1}


def test_agents_endpoint_lists_detection(client: TestClient) -> None:
    response = client.get("/agents")

    assert response.status_code == 200
    payload = response.json()
    assert [agent["type"] for agent in payload["agents"]] == ["claude", "codex", "aider"]
    assert [agent["available"] for agent in payload["agents"]] == [True, True, False]
    assert payload["active"] == "claude"


def test_set_active_agent_persists_preference(client: TestClient, workspace: Path) -> None:
    response = client.post("/agents/active", json={"type": "codex"})

    assert response.status_code == 200
    assert response.json()["active"] == "codex"
    assert ConfigStore.load(workspace).get("agent.preferred") == "codex"
    assert client.get("/agents").json()["active"] == "codex"


def test_set_active_agent_rejects_unavailable(client: TestClient) -> None:
    response = client.post("/agents/active", json={"type": "aider"})

    assert response.status_code == 409


def test_set_active_agent_validates_type(client: TestClient) -> None:
    response = client.post("/agents/active", json={"type": "copilot"})

    assert response.status_code == 422


def test_init_then_update(client: TestClient, workspace: Path) -> None:
    init = client.post("/init")

    assert init.status_code == 200
    assert init.json()["success"] == 1
    assert (workspace / "repowiki" / "zh" / "content" / "app.md").exists()

    update = client.post("/update")

    assert update.status_code == 200
    assert update.json()["skipped"] == 1
    assert update.json()["success"] == 0



def test_update_endpoint_accepts_source_list(client: TestClient, workspace: Path) -> None:
    doc = workspace / "repowiki" / "zh" / "content" / "app.md"

    unmapped = client.post("/update", json={"sources": ["src/util.py"]})

    assert unmapped.status_code == 200
    assert (unmapped.json()["success"], unmapped.json()["skipped"]) == (0, 0)
    assert not doc.exists()

    mapped = client.post("/update", json={"sources": [str(workspace / "src" / "app.py")]})

    assert mapped.status_code == 200
    assert mapped.json()["success"] == 1
    assert doc.exists()

def test_regenerate_endpoint(client: TestClient) -> None:
    response = client.post("/regenerate")

    assert response.status_code == 200
    assert response.json()["errors"] == []
    assert response.json()["success"] == 1
