"""Tests for API routes."""
import json

import pytest
from fastapi.testclient import TestClient

from conftest import FakeGenerator, make_search
from deep_research.agents.orchestrator import ResearchOrchestrator
from deep_research.api.deps import get_orchestrator
from deep_research.main import app
from deep_research.models.research import FinalReport


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


def _use(generator=None):
    app.dependency_overrides[get_orchestrator] = lambda: ResearchOrchestrator(
        generator or FakeGenerator(),
        search_fn=make_search(),
        strategy_model="planner",
        report_model="writer",
    )


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "deep-research"}


def test_research_returns_completed_response(client):
    _use()
    response = client.post("/api/research", json={"query": "ocean carbon removal", "depth": 1, "breadth": 2})

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "completed"
    assert data["original_query"] == "ocean carbon removal"
    assert len(data["research_steps"]) == 6
    assert data["research_steps"][0]["status"] == "completed"
    assert data["research_metadata"]["time_scope"] == "comprehensive"


def test_research_returns_failure_with_200(client):
    _use(FakeGenerator({FinalReport: RuntimeError("model offline")}))
    response = client.post("/api/research", json={"query": "ocean carbon removal", "depth": 1, "breadth": 2})

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "failed"
    assert data["error"] == "synthesize failed: model offline"
    assert data["partial_results"]["learnings"]


@pytest.mark.parametrize(
    "body",
    [
        {"query": ""},
        {"query": "x", "depth": 5},
        {"query": "x", "breadth": 1},
        {"query": "x", "output_format": "poem"},
    ],
)
def test_research_rejects_invalid_requests(client, body):
    _use()
    response = client.post("/api/research", json=body)
    assert response.status_code == 422


def test_stream_emits_steps_and_final_event(client):
    _use()
    with client.stream(
        "POST", "/api/research/stream", json={"query": "ocean carbon removal", "depth": 1, "breadth": 2}
    ) as response:
        assert response.status_code == 200
        body = "".join(response.iter_text())

    events = [line.split(":", 1)[1].strip() for line in body.splitlines() if line.startswith("event:")]
    assert events[0] == "research_started"
    assert events.count("research_step") == 12
    assert events[-1] == "research_complete"

    data_lines = [line for line in body.splitlines() if line.startswith("data:")]
    final = json.loads(data_lines[-1].split(":", 1)[1])
    assert final["status"] == "completed"


def test_serve_runs_uvicorn():
    from unittest.mock import patch

    from deep_research import main as api_main

    with patch("deep_research.main.uvicorn.run") as mock_run, patch(
        "deep_research.main.settings"
    ) as mock_settings:
        mock_settings.api_host = "0.0.0.0"
        mock_settings.api_port = 9000
        api_main.serve()

    mock_run.assert_called_once_with("deep_research.main:app", host="0.0.0.0", port=9000)
