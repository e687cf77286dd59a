"""
Tests for the orchestrator HTTP API.

Runs the built-in stages on the mock provider behind FastAPI's TestClient.
"""

import json

import pytest
from fastapi.testclient import TestClient

from itinerary_agents.main import app
from itinerary_agents.orchestration.config import OrchestratorSettings
from itinerary_agents.orchestration.orchestrator import Orchestrator
from itinerary_agents.orchestration import orchestrator_api
from itinerary_agents.orchestration.orchestrator_api import set_orchestrator
from itinerary_agents.stages import default_registry
from itinerary_agents.tests.stubs import fast_retry


def _request_body(session_id=None):
    body = {
        "request": {
            "destination": "Kyoto, Japan",
            "departure_date": "2025-04-10",
            "return_date": "2025-04-12",
            "trip_nickname": "Cherry blossoms",
            "contact_name": "Sam Lee",
            "adults": 2,
            "budget": {"amount": 3000, "currency": "USD", "mode": "total"},
            "preferences": {"travel_style": "culture", "interests": ["temples", "food"]},
        }
    }
    if session_id:
        body["session_id"] = session_id
    return body


def _parse_sse(text: str):
    events = []
    for block in text.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in block.splitlines())
        events.append((lines["event"], json.loads(lines["data"])))
    return events


@pytest.fixture
def client():
    settings = OrchestratorSettings(use_mock_providers=True, retry=fast_retry())
    set_orchestrator(Orchestrator(default_registry(settings), settings=settings))
    with TestClient(app) as test_client:
        yield test_client
    set_orchestrator(None)


class TestRunEndpoint:
    def test_run_completes(self, client):
        response = client.post("/api/orchestrator/run", json=_request_body("api-1"))

        assert response.status_code == 200
        data = response.json()
        assert data["session_id"] == "api-1"
        assert data["state"] == "completed"
        assert data["status"]["progress_percentage"] == 100
        assert data["itinerary"]["trip_duration"] == 3
        assert set(data["results"]) == {"content-planner", "info-gatherer", "strategist", "compiler"}
        assert data["errors"] == []

    def test_run_generates_session_id(self, client):
        response = client.post("/api/orchestrator/run", json=_request_body())
        assert response.status_code == 200
        assert response.json()["session_id"]

    def test_invalid_request_is_rejected(self, client):
        body = _request_body()
        body["request"]["return_date"] = "2025-04-01"
        response = client.post("/api/orchestrator/run", json=body)
        assert response.status_code == 422


class TestStreamEndpoint:
    def test_stream_emits_transitions_then_complete(self, client):
        response = client.post("/api/orchestrator/stream", json=_request_body("api-stream"))

        assert response.status_code == 200
        assert response.headers["x-session-id"] == "api-stream"
        events = _parse_sse(response.text)
        names = [name for name, _ in events]
        assert names == ["transition"] * 5 + ["complete"]
        assert events[0][1]["to_state"] == "content-planning"
        assert events[-1][1]["state"] == "completed"


class TestSessionEndpoints:
    def test_cancel_unknown_session(self, client):
        response = client.post("/api/orchestrator/nope/cancel")
        assert response.status_code == 404

    def test_status_of_finished_session(self, client):
        client.post("/api/orchestrator/run", json=_request_body("api-done"))

        response = client.get("/api/orchestrator/session/api-done")

        data = response.json()
        assert data["exists"] is True
        assert data["running"] is False
        assert data["status"]["state"] == "completed"

    def test_status_of_unknown_session(self, client):
        data = client.get("/api/orchestrator/session/missing").json()
        assert data == {"session_id": "missing", "exists": False, "running": False, "status": None}


class TestResultEndpoint:
    def test_result_of_finished_session(self, client):
        run = client.post("/api/orchestrator/run", json=_request_body("api-result")).json()

        response = client.get("/api/orchestrator/result/api-result")

        assert response.status_code == 200
        assert response.json() == run
        assert response.json()["itinerary"]["trip_duration"] == 3

    def test_result_after_stream(self, client):
        client.post("/api/orchestrator/stream", json=_request_body("api-streamed"))

        data = client.get("/api/orchestrator/result/api-streamed").json()

        assert data["state"] == "completed"
        assert data["itinerary"] is not None

    def test_result_of_unknown_session(self, client):
        response = client.get("/api/orchestrator/result/missing")
        assert response.status_code == 404

    def test_oldest_results_are_evicted(self, client, monkeypatch):
        monkeypatch.setattr(orchestrator_api, "MAX_FINISHED_SESSIONS", 2)
        for session_id in ("first", "second", "third"):
            client.post("/api/orchestrator/run", json=_request_body(session_id))

        assert client.get("/api/orchestrator/result/first").status_code == 404
        assert client.get("/api/orchestrator/result/second").status_code == 200
        assert client.get("/api/orchestrator/result/third").status_code == 200
        assert client.get("/api/orchestrator/session/first").json()["exists"] is False


class TestMetricsEndpoints:
    def test_metrics(self, client):
        client.post("/api/orchestrator/run", json=_request_body("m-1"))
        client.post("/api/orchestrator/run", json=_request_body("m-2"))

        data = client.get("/api/orchestrator/metrics").json()

        assert data["total_sessions"] == 2
        assert data["completed_sessions"] == 2
        assert data["success_rate"] == 1.0
        assert data["stage_performance"]["compiler"]["executions"] == 2

    def test_provider_health(self, client):
        client.post("/api/orchestrator/run", json=_request_body("p-1"))

        data = client.get("/api/orchestrator/providers").json()

        assert data["mock"]["available"] is True
        assert data["mock"]["success_count"] == 4
        assert data["mock"]["error_count"] == 0


class TestAppEndpoints:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_root_lists_pipeline(self, client):
        data = client.get("/").json()
        assert data["pipeline"] == ["content-planner", "info-gatherer", "strategist", "compiler"]
