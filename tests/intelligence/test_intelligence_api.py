"""API tests for the intelligence router."""

from datetime import date

import pytest
from fastapi.testclient import TestClient

from pacelab.api.intelligence import get_decision_orchestrator
from pacelab.coach.capability import HeuristicDecisionCapability
from pacelab.coach.heuristic import decide_heuristically
from pacelab.core.auth_jwt import create_access_token
from pacelab.main import app
from pacelab.services.intelligence.runtime import DailyDecisionOrchestrator

ATHLETE = "athlete-1"
DAY = "2025-03-12"


class NoWeather:
    def fetch_current_conditions(self, lat, lon):
        return None


class InvalidActionCapability:
    name = "invalid"

    async def decide(self, context):
        document = decide_heuristically(context)
        document["decision"]["action"] = "sprint"
        return document


@pytest.fixture
def client(db_session):
    orchestrator = DailyDecisionOrchestrator(capability=HeuristicDecisionCapability(), weather_client=NoWeather())
    app.dependency_overrides[get_decision_orchestrator] = lambda: orchestrator
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {create_access_token(ATHLETE)}"}


def test_requires_token(client):
    response = client.post("/intelligence/today", json={"decision_date": DAY})
    assert response.status_code == 401


def test_rejects_bad_token(client):
    response = client.get("/intelligence/today", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_decision_is_computed_then_cached(client, auth_headers):
    assert client.get("/intelligence/today", params={"day": DAY}, headers=auth_headers).status_code == 404

    first = client.post("/intelligence/today", json={"decision_date": DAY}, headers=auth_headers)
    assert first.status_code == 200
    body = first.json()
    assert body["cached"] is False
    assert body["athlete_id"] == ATHLETE
    assert body["payload"]["decision"]["action"] in {"proceed", "modify", "replace", "rest"}

    second = client.post("/intelligence/today", json={"decision_date": DAY}, headers=auth_headers)
    assert second.json()["cached"] is True

    cached = client.get("/intelligence/today", params={"day": DAY}, headers=auth_headers)
    assert cached.status_code == 200
    assert cached.json()["decision_id"] == body["decision_id"]


def test_invalid_manual_wellness_is_422(client, auth_headers):
    response = client.post(
        "/intelligence/today",
        json={"decision_date": DAY, "manual_wellness": {"sleep_quality": 0, "mood": "great"}},
        headers=auth_headers,
    )
    assert response.status_code == 422
    assert response.json()["detail"]["errors"]


def test_capability_failure_is_503(client, auth_headers):
    orchestrator = DailyDecisionOrchestrator(capability=InvalidActionCapability(), weather_client=NoWeather())
    app.dependency_overrides[get_decision_orchestrator] = lambda: orchestrator

    response = client.post("/intelligence/today", json={"decision_date": DAY}, headers=auth_headers)

    assert response.status_code == 503
    detail = response.json()["detail"]
    assert detail["unavailable"] is True
    assert detail["recommended_session"] is None
    assert detail["last_decision_date"] is None


def test_session_modification(client, auth_headers):
    client.post("/intelligence/today", json={"decision_date": DAY}, headers=auth_headers)

    response = client.post(
        "/intelligence/today/modifications",
        json={"decision_date": DAY, "choice": "modified", "modified_type": "easy", "modified_distance_km": 6.0},
        headers=auth_headers,
    )

    assert response.status_code == 201
    assert response.json()["modified_type"] == "easy"


def test_modification_without_decision_is_404(client, auth_headers):
    response = client.post(
        "/intelligence/today/modifications",
        json={"decision_date": DAY, "choice": "accepted"},
        headers=auth_headers,
    )
    assert response.status_code == 404


def test_wellness_ingest(client, auth_headers):
    response = client.post(
        "/intelligence/wellness",
        json={"sample_date": DAY, "hrv_ms": 58.0, "resting_hr": 49.0, "sleep_score": 82.0},
        headers=auth_headers,
    )
    assert response.status_code == 201
    assert response.json()["baseline_ready"] is False


def test_coaching_summary_empty(client, auth_headers):
    response = client.get("/intelligence/coaching-summary", headers=auth_headers)
    assert response.status_code == 200
    assert response.json() == {"bottleneck": None, "philosophy": None, "latest_adaptation": None}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_today_defaults_to_current_date(client, auth_headers):
    response = client.post("/intelligence/today", json={}, headers=auth_headers)
    assert response.status_code == 200
    assert date.fromisoformat(response.json()["decision_date"])
