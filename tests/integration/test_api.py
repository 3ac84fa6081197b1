import dataclasses
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import httpx
import pytest

from dispatch import __version__
from dispatch.main import create_app

APPOINTMENT_AT = datetime(2026, 3, 11, 16, 0, tzinfo=timezone.utc)


@pytest.fixture
def client_for():
    def _client(container):
        return httpx.AsyncClient(transport=httpx.ASGITransport(app=create_app(container)), base_url="http://test")

    return _client


@pytest.fixture
async def client(container, client_for):
    async with client_for(container) as c:
        yield c


async def test_reminder_trigger_returns_run_summary(seed, client, gateway):
    clinic = await seed.clinic()
    appointment = await seed.appointment(clinic, APPOINTMENT_AT)

    response = await client.post("/triggers/reminders")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["trigger"] == "reminder"
    assert (body["processed"], body["sent"], body["skipped"], body["errors"]) == (1, 1, 0, 0)
    assert body["details"] == [{"id": str(appointment.id), "status": "sent", "message_id": "wamid.1"}]
    assert body["run_id"]


async def test_reminder_trigger_accepts_clinic_filter(seed, client):
    first = await seed.clinic()
    second = await seed.clinic(clinic_name="Clínica Norte")
    await seed.appointment(first, APPOINTMENT_AT)
    await seed.appointment(second, APPOINTMENT_AT)

    response = await client.post("/triggers/reminders", json={"clinic_id": str(second.id)})

    assert response.json()["processed"] == 1


async def test_survey_trigger_without_body(client):
    response = await client.post("/triggers/surveys")

    assert response.status_code == 200
    assert response.json()["processed"] == 0
    assert response.json()["details"] == []


async def test_upsell_trigger_reports_skips(seed, client, now):
    clinic = await seed.clinic(ycloud_api_key=None)
    service = await seed.service(clinic, upselling_enabled=True, upselling_days_after=3)
    appointment = await seed.appointment(
        clinic, now - timedelta(days=3, hours=1), status="completed", service_id=service.id
    )

    response = await client.post("/triggers/upsells", json={})

    assert response.status_code == 200
    assert response.json()["details"] == [
        {"id": str(appointment.id), "status": "skipped", "reason": "no_api_key"}
    ]


async def test_campaign_trigger_requires_campaign_id(client):
    response = await client.post("/triggers/campaigns", json={})

    assert response.status_code == 400
    assert response.json() == {"error": "campaign_id is required", "code": "VALIDATION_ERROR"}


async def test_campaign_trigger_rejects_malformed_id(client):
    response = await client.post("/triggers/campaigns", json={"campaign_id": "not-a-uuid"})

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


async def test_campaign_trigger_unknown_campaign(client):
    response = await client.post("/triggers/campaigns", json={"campaign_id": str(uuid4())})

    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


async def test_campaign_trigger_conflict_when_completed(seed, client):
    clinic = await seed.clinic()
    campaign = await seed.campaign(clinic, status="completed")

    response = await client.post("/triggers/campaigns", json={"campaign_id": str(campaign.id)})

    assert response.status_code == 409
    assert response.json()["code"] == "CONFLICT"


async def test_campaign_trigger_runs(seed, client, gateway):
    clinic = await seed.clinic()
    await seed.patient(clinic)
    campaign = await seed.campaign(clinic)

    response = await client.post("/triggers/campaigns", json={"campaign_id": str(campaign.id)})

    assert response.status_code == 200
    assert response.json()["trigger"] == "campaign"
    assert response.json()["sent"] == 1


async def test_trigger_secret_enforced(settings, make_gateway, make_container, client_for):
    container = make_container(make_gateway(), settings_override=dataclasses.replace(settings, trigger_secret="s3cret"))

    async with client_for(container) as client:
        denied = await client.post("/triggers/surveys")
        wrong = await client.post("/triggers/surveys", headers={"X-Trigger-Secret": "nope"})
        allowed = await client.post("/triggers/surveys", headers={"X-Trigger-Secret": "s3cret"})

    assert denied.status_code == 401
    assert denied.json()["code"] == "UNAUTHORIZED"
    assert wrong.status_code == 401
    assert allowed.status_code == 200


async def test_manual_reminder(seed, client, gateway):
    clinic = await seed.clinic()
    appointment = await seed.appointment(clinic, APPOINTMENT_AT, reminder_sent=True)

    response = await client.post(f"/triggers/reminders/{appointment.id}")

    assert response.status_code == 200
    assert response.json()["sent"] == 1
    assert gateway.destinations == [appointment.phone_number]


async def test_manual_unknown_appointment(client):
    response = await client.post(f"/triggers/surveys/{uuid4()}")

    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


async def test_manual_without_credentials(seed, client):
    clinic = await seed.clinic(ycloud_api_key=None)
    appointment = await seed.appointment(clinic, APPOINTMENT_AT)

    response = await client.post(f"/triggers/surveys/{appointment.id}")

    assert response.status_code == 400
    assert response.json() == {
        "error": "Clinic has not configured WhatsApp (API key missing)",
        "code": "BUSINESS_RULE_VIOLATION",
    }


async def test_campaign_without_credentials(seed, client, gateway):
    clinic = await seed.clinic(ycloud_api_key=None)
    await seed.patient(clinic)
    campaign = await seed.campaign(clinic)

    response = await client.post("/triggers/campaigns", json={"campaign_id": str(campaign.id)})

    assert response.status_code == 400
    assert response.json()["code"] == "BUSINESS_RULE_VIOLATION"
    assert gateway.attempts == []


async def test_manual_delivery_failure(seed, make_gateway, make_container, client_for):
    clinic = await seed.clinic()
    appointment = await seed.appointment(clinic, APPOINTMENT_AT)
    container = make_container(make_gateway(fail_for=[appointment.phone_number]))

    async with client_for(container) as client:
        response = await client.post(f"/triggers/reminders/{appointment.id}")

    assert response.status_code == 502
    assert response.json() == {
        "error": "Message undeliverable",
        "code": "UPSTREAM_ERROR",
        "details": {"error_code": "131026"},
    }


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": "ok", "version": __version__}


async def test_health_degraded(container, client, monkeypatch):
    async def unavailable():
        raise ConnectionError("database down")

    monkeypatch.setattr(container.database, "ping", unavailable)

    response = await client.get("/health")

    assert response.status_code == 503
    assert response.json()["status"] == "degraded"
