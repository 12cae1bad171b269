"""Tests for the HTTP API, run against a service set with fake outbound collaborators."""
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from backend.api import server
from backend.api.server import app, redact
from backend.core.config import settings
from backend.core.errors import PersistenceError, TransportError
from backend.models.enums import Direction, JobType, LeadStatus
from backend.services.container import get_services


@pytest.fixture
def client(services, monkeypatch):
    monkeypatch.setattr(server, "install_shutdown_handler", MagicMock())
    app.dependency_overrides[get_services] = lambda: services
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


class TestEnvelope:

    def test_root(self, client):
        body = client.get("/").json()
        assert body["status"] == "success"
        assert body["statusCode"] == 200
        assert body["data"]["service"] == "LeadBot API"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["data"]["database"] == "ok"

    def test_unknown_route(self, client):
        response = client.get("/api/nope")
        assert response.status_code == 404
        assert response.json()["status"] == "error"

    def test_server_errors_hidden_in_production(self, client, services, monkeypatch):
        monkeypatch.setattr(settings, "environment", "production")
        services.leads.get = MagicMock(side_effect=PersistenceError("Database error: disk I/O error"))

        response = client.get("/api/leads/abc")

        assert response.status_code == 500
        assert response.json()["message"] == "An internal server error occurred."

    def test_redact(self):
        payload = {"email": "a@b.com", "password": "hunter2", "nested": [{"apiKey": "k", "accessToken": "t"}]}
        assert redact(payload) == {
            "email": "a@b.com",
            "password": "[REDACTED]",
            "nested": [{"apiKey": "[REDACTED]", "accessToken": "[REDACTED]"}],
        }


class TestSchedulerRoutes:

    def test_scheduler_started_on_boot(self, client):
        data = client.get("/api/scheduler/status").json()["data"]
        assert data["schedulerStatus"] == "running"
        assert data["dailyLeadsSentToday"] == 0
        assert data["dailyLimit"] == 3
        assert data["lastDailyJob"] is None
        assert data["nextRun"] is not None

    def test_stop_and_start(self, client):
        assert client.post("/api/scheduler/stop").status_code == 200
        assert client.get("/api/scheduler/status").json()["data"]["schedulerStatus"] == "stopped"
        assert client.post("/api/scheduler/stop").json()["message"] == "Daily lead scheduler was not running."

        assert client.post("/api/scheduler/start").status_code == 200
        assert client.post("/api/scheduler/start").json()["message"] == "Daily lead scheduler is already running."

    def test_start_daily_job_accepted(self, client, services):
        response = client.post("/api/scheduler/start-daily-job")

        assert response.status_code == 202
        job_id = response.json()["data"]["jobId"]
        job = services.jobs.get(job_id)
        assert job is not None
        assert job.job_type == JobType.MESSAGING


class TestMessagingRoutes:

    def test_send(self, client, services, make_lead):
        lead = make_lead(email="owner@acme.com")

        response = client.post("/api/messaging/send",
                               json={"leadId": lead.id, "channel": "email", "templateId": "intro"})

        assert response.status_code == 200
        assert response.json()["data"]["channel"] == "email"
        assert services.responses.count(Direction.OUTGOING.value) == 1
        status = client.get("/api/scheduler/status").json()["data"]
        assert status["dailyLeadsSentToday"] == 1

    def test_unknown_lead(self, client):
        response = client.post("/api/messaging/send", json={"leadId": "missing", "channel": "email"})
        assert response.status_code == 404
        assert response.json() == {"status": "error", "statusCode": 404, "message": "Lead not found."}

    def test_missing_contact_field(self, client, make_lead):
        lead = make_lead(email="owner@acme.com")
        response = client.post("/api/messaging/send", json={"leadId": lead.id, "channel": "whatsapp"})
        assert response.status_code == 400

    def test_invalid_channel(self, client):
        response = client.post("/api/messaging/send", json={"leadId": "abc", "channel": "sms"})
        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Validation failed"
        assert body["details"][0]["field"] == "channel"

    def test_quota_exhausted(self, client, services, make_lead):
        lead = make_lead(email="owner@acme.com")
        for _ in range(3):
            services.quota.try_reserve()

        response = client.post("/api/messaging/send", json={"leadId": lead.id, "channel": "email"})

        assert response.status_code == 429

    def test_transport_failure(self, client, services, make_lead):
        lead = make_lead(email="owner@acme.com")
        services.dispatcher.send = AsyncMock(side_effect=TransportError("SMTP refused"))

        response = client.post("/api/messaging/send", json={"leadId": lead.id, "channel": "email"})

        assert response.status_code == 502
        assert services.quota.count == 0

    def test_whatsapp_status(self, client):
        assert client.get("/api/messaging/whatsapp/status").json()["data"] == {"status": "ready"}

    def test_webhook_verification(self, client, monkeypatch):
        monkeypatch.setattr(settings, "whatsapp_verify_token", "verify-me")
        params = {"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "12345"}

        response = client.get("/api/messaging/whatsapp/webhook", params=params)
        assert response.status_code == 200
        assert response.text == "12345"

        params["hub.verify_token"] = "wrong"
        assert client.get("/api/messaging/whatsapp/webhook", params=params).status_code == 403

    def test_webhook_message_logged(self, client, services, make_lead):
        lead = make_lead(phone="+15551230001")
        payload = {"entry": [{"changes": [{"value": {"messages": [
            {"from": "15551230001", "id": "wamid.1", "type": "text", "text": {"body": "Tell me more"}},
            {"from": "15551230001", "id": "wamid.2", "type": "image"},
        ]}}]}]}

        response = client.post("/api/messaging/whatsapp/webhook", json=payload)

        assert response.status_code == 200
        assert response.json()["data"] == {"received": 1}
        [incoming] = services.responses.for_lead(lead.id)
        assert incoming.content == "Tell me more"
        assert services.leads.get(lead.id).status == LeadStatus.REPLIED

    def test_inbound_email(self, client, make_lead):
        make_lead(email="owner@acme.com")

        response = client.post("/api/messaging/email/inbound",
                               json={"from": "Owner <owner@acme.com>", "subject": "Re: hello", "text": "Call me"})

        assert response.status_code == 200
        assert response.json()["data"]["handled"] is True


class TestLeadRoutes:

    def test_crud(self, client):
        created = client.post("/api/leads", json={
            "name": "Acme Plumbing", "email": "Owner@Acme.com", "sourceUrl": "https://acme.com",
        })
        assert created.status_code == 201
        lead = created.json()["data"]
        assert lead["email"] == "owner@acme.com"
        assert lead["status"] == "new"

        listed = client.get("/api/leads").json()["data"]
        assert [item["id"] for item in listed["leads"]] == [lead["id"]]

        updated = client.put(f"/api/leads/{lead['id']}", json={"status": "qualified", "notes": "Hot"})
        assert updated.json()["data"]["status"] == "qualified"

        assert client.delete(f"/api/leads/{lead['id']}").status_code == 200
        assert client.get(f"/api/leads/{lead['id']}").status_code == 404

    def test_duplicate_email(self, client, make_lead):
        make_lead(email="owner@acme.com")

        response = client.post("/api/leads", json={
            "name": "Copycat", "email": "owner@acme.com", "sourceUrl": "https://copy.cat",
        })

        assert response.status_code == 409
        assert response.json()["details"] == {"duplicateField": "email"}

    def test_contact_required(self, client):
        response = client.post("/api/leads", json={"name": "Nobody", "sourceUrl": "https://nobody.com"})
        assert response.status_code == 400
        assert response.json()["details"][0]["message"] == "Either email or phone must be provided."

    def test_empty_update(self, client, make_lead):
        lead = make_lead(email="owner@acme.com")
        assert client.put(f"/api/leads/{lead.id}", json={}).status_code == 400

    def test_update_missing(self, client):
        assert client.put("/api/leads/missing", json={"notes": "x"}).status_code == 404

    def test_update_cannot_clear_only_contact(self, client, services, make_lead):
        """Test that removing the last email/phone of a lead is rejected."""
        lead = make_lead(email="owner@acme.com")

        for value in (None, ""):
            response = client.put(f"/api/leads/{lead.id}", json={"email": value})
            assert response.status_code == 400
            assert response.json()["details"][0]["message"] == "Either email or phone must be provided."

        assert services.leads.get(lead.id).email == "owner@acme.com"

    def test_update_null_name_is_bad_request(self, client, make_lead):
        lead = make_lead(email="owner@acme.com")

        response = client.put(f"/api/leads/{lead.id}", json={"name": None})

        assert response.status_code == 400
        assert response.json()["details"][0]["field"] == "name"

    def test_same_phone_without_plus_conflicts(self, client, make_lead):
        make_lead(phone="+15551230001")

        response = client.post("/api/leads", json={
            "name": "Copycat", "phone": "15551230001", "sourceUrl": "https://copy.cat",
        })

        assert response.status_code == 409
        assert response.json()["details"] == {"duplicateField": "phone"}


class TestScraperRoutes:

    def test_start_and_list(self, client, services):
        response = client.post("/api/scraper/start",
                               json={"sources": ["websites"], "keywords": "plumbers", "limit": 5})

        assert response.status_code == 202
        job_id = response.json()["data"]["jobId"]
        assert services.jobs.get(job_id).job_type == JobType.SCRAPER

        status = client.get(f"/api/scraper/status/{job_id}")
        assert status.status_code == 200
        assert status.json()["data"]["id"] == job_id

        jobs = client.get("/api/scraper/jobs").json()["data"]["jobs"]
        assert [job["id"] for job in jobs] == [job_id]

    def test_invalid_source(self, client):
        response = client.post("/api/scraper/start", json={"sources": ["linkedin"], "keywords": "plumbers"})
        assert response.status_code == 400

    def test_unknown_job(self, client):
        assert client.get("/api/scraper/status/missing").status_code == 404


class TestAiRoutes:

    def test_ai_not_configured(self, client, make_lead):
        lead = make_lead(email="owner@acme.com")
        response = client.post("/api/ai/generate-message",
                               json={"leadId": lead.id, "context": "Bakery", "purpose": "Demo"})
        assert response.status_code == 503

    def test_generate_message(self, client, services, make_lead, ai_composer):
        services.composer = ai_composer
        lead = make_lead(email="owner@acme.com")

        response = client.post("/api/ai/generate-message",
                               json={"leadId": lead.id, "context": "Bakery", "purpose": "Demo"})

        assert response.status_code == 200
        assert response.json()["data"]["message"].startswith("Thanks for getting back")

    def test_summarize_conversation(self, client, services, make_lead, ai_composer, fake_ai):
        services.composer = ai_composer
        fake_ai.generate.return_value = "Summary: Wants a demo.\nKey Points:\n- Demo on Friday"
        lead = make_lead(email="owner@acme.com")

        response = client.post("/api/ai/summarize-conversation", json={
            "leadId": lead.id,
            "conversationHistory": [{"sender": "lead", "message": "Can we do a demo Friday?"}],
        })

        assert response.status_code == 200
        assert response.json()["data"]["keyPoints"] == ["Demo on Friday"]
        assert services.summaries.get(lead.id).conversation_summary == "Wants a demo."

    def test_extract_key_points(self, client, services, ai_composer, fake_ai):
        services.composer = ai_composer
        fake_ai.generate.return_value = "- Budget approved\n- Starts in May"

        response = client.post("/api/ai/extract-key-points", json={"text": "Long email..."})

        assert response.json()["data"] == {"keyPoints": ["Budget approved", "Starts in May"]}

    def test_unknown_lead(self, client):
        response = client.post("/api/ai/generate-message",
                               json={"leadId": "missing", "context": "Bakery", "purpose": "Demo"})
        assert response.status_code == 404
