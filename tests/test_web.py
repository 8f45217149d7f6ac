"""Tests for the HTTP surface."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from callqa.database import get_db
from callqa.main import create_app
from callqa.repository import Repository
from callqa.retention import RetentionSweeper
from callqa.routers import retention, webhooks
from callqa.schemas import TranscriptResult

from fakes import FakeTranscriptionBackend


@pytest.fixture
def client(session_factory, make_pipeline, storage):
    """Test client wired to the temp database and an in-memory pipeline."""
    pipeline = make_pipeline(transcription_backend=FakeTranscriptionBackend(result=TranscriptResult(
        text="[Client]: Quero cancelar o contrato\n[Agent]: Lamento.",
    )))

    def override_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app = create_app(use_lifespan=False)
    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[webhooks.get_pipeline] = lambda: pipeline
    app.dependency_overrides[retention.get_sweeper] = lambda: RetentionSweeper(session_factory, storage, 45)
    return TestClient(app)


def call_payload(seeded, **overrides):
    payload = {
        "companyId": seeded["company_id"],
        "agentId": seeded["agents"]["support"],
        "phoneNumber": "+351912345678",
        "direction": "outbound",
        "durationSeconds": 240,
    }
    payload.update(overrides)
    return payload


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root(self, client):
        assert client.get("/").json()["version"] == "1.0.0"


class TestWebhooks:
    def test_process_call(self, client, seeded):
        response = client.post("/webhooks/calls", json=call_payload(seeded))
        assert response.status_code == 200
        data = response.json()
        assert data["callId"] > 0
        assert data["finalScore"] == 7.5
        assert data["riskWordsDetected"] == []
        assert len(data["criteriaResults"]) == 4

    def test_call_with_audio_uses_transcription_backend(self, client, seeded):
        response = client.post("/webhooks/calls", json=call_payload(
            seeded, audioFilePath="audio/call.mp3", durationSeconds=2400,
        ))
        data = response.json()
        assert data["riskWordsDetected"] == ["cancelar"]
        assert {a["type"] for a in data["alertsGenerated"]} == {
            "low_score", "risk_words", "long_duration", "no_next_step",
        }

    def test_snake_case_body_is_accepted(self, client, seeded):
        payload = {
            "company_id": seeded["company_id"],
            "agent_id": seeded["agents"]["sales"],
            "phone_number": "+351912345678",
            "duration_seconds": 60,
        }
        assert client.post("/webhooks/calls", json=payload).status_code == 200

    def test_duplicate_delivery(self, client, seeded):
        first = client.post("/webhooks/calls", json=call_payload(seeded, externalCallId="CA123")).json()
        second = client.post("/webhooks/calls", json=call_payload(seeded, externalCallId="CA123")).json()
        assert first["callId"] == second["callId"]

    def test_invalid_payload(self, client, seeded):
        response = client.post("/webhooks/calls", json=call_payload(seeded, durationSeconds=-5))
        assert response.status_code == 422
        response = client.post("/webhooks/calls", json=call_payload(seeded, direction="sideways"))
        assert response.status_code == 422

    def test_creation_failure_is_500(self, client, seeded):
        response = client.post("/webhooks/calls", json=call_payload(seeded, companyId=9999))
        assert response.status_code == 500

    def test_store_unavailable_is_503(self, client, seeded, monkeypatch):
        def broken(self, company_id):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(Repository, "get_alert_settings", broken)
        response = client.post("/webhooks/calls", json=call_payload(seeded))
        assert response.status_code == 503

    def test_simulate(self, client, seeded):
        response = client.post("/webhooks/simulate", json={
            "companyId": seeded["company_id"],
            "agentId": seeded["agents"]["support"],
        })
        assert response.status_code == 200
        assert response.json()["finalScore"] == 7.5


class TestAlerts:
    def test_list_and_mark_read(self, client, seeded):
        client.post("/webhooks/calls", json=call_payload(seeded, audioFilePath="audio/call.mp3"))

        alerts = client.get("/alerts/", params={"company_id": seeded["company_id"]}).json()
        assert {a["type"] for a in alerts} == {"low_score", "risk_words", "no_next_step"}
        assert all(a["isRead"] is False for a in alerts)

        response = client.patch(f"/alerts/{alerts[0]['id']}/read")
        assert response.status_code == 200
        assert response.json()["isRead"] is True

        unread = client.get("/alerts/", params={"company_id": seeded["company_id"], "unread_only": True}).json()
        assert len(unread) == 2

    def test_filter_by_agent(self, client, seeded):
        client.post("/webhooks/calls", json=call_payload(seeded, audioFilePath="audio/call.mp3"))
        other = client.get("/alerts/", params={
            "company_id": seeded["company_id"], "agent_id": seeded["agents"]["sales"],
        }).json()
        assert other == []

    def test_mark_missing_alert(self, client):
        assert client.patch("/alerts/424242/read").status_code == 404


class TestRetention:
    def test_policy(self, client):
        data = client.get("/retention/policy").json()
        assert data == {
            "retentionDays": 45,
            "description": "Calls and recordings are automatically deleted after 45 days",
        }

    def test_sweep(self, client, seeded):
        client.post("/webhooks/calls", json=call_payload(seeded))
        data = client.post("/retention/sweep").json()
        assert data == {"deletedCount": 0, "errors": []}

    @pytest.mark.parametrize("days", ["0", "-1"])
    def test_sweep_rejects_horizon_below_one_day(self, client, seeded, days):
        client.post("/webhooks/calls", json=call_payload(seeded))
        response = client.post("/retention/sweep", params={"retention_days": days})
        assert response.status_code == 422
        # the call made a moment ago is still there for a one-day horizon to skip
        assert client.post("/retention/sweep", params={"retention_days": 1}).json() == {"deletedCount": 0, "errors": []}
