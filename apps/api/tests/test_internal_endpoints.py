"""Scheduled (cron) endpoints under /internal/scheduled."""

from datetime import timedelta

import pytest

from taxdesk.core.config import settings
from taxdesk.db.models import CampaignEnrollment
from taxdesk.services import document_request_service
from taxdesk.services.document_request_service import ChecklistItemInput

SECRET = "cron-secret-value"
AUTH = {"Authorization": f"Bearer {SECRET}"}


@pytest.fixture
def internal_secret(monkeypatch):
    monkeypatch.setattr(settings, "INTERNAL_SECRET", SECRET)
    return SECRET


@pytest.fixture
def due_enrollment(db, org, tax_client, now):
    enrollment = CampaignEnrollment(
        organization_id=org.id,
        client_id=tax_client.id,
        campaign_name="tax_season_2025",
        current_stage=1,
        status="active",
        next_email_due_at=now - timedelta(minutes=10),
    )
    db.add(enrollment)
    db.commit()
    return enrollment


@pytest.mark.asyncio
async def test_unconfigured_secret_is_not_implemented(client, monkeypatch):
    monkeypatch.setattr(settings, "INTERNAL_SECRET", "")
    response = await client.post("/internal/scheduled/drip-campaign", headers=AUTH)
    assert response.status_code == 501


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "headers",
    [
        {},
        {"Authorization": "Bearer wrong"},
        {"Authorization": SECRET},
        {"Authorization": f"Basic {SECRET}"},
    ],
)
async def test_bad_credentials_are_unauthorized(client, internal_secret, headers):
    response = await client.post("/internal/scheduled/drip-campaign", headers=headers)
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_due_summary_has_no_side_effects(client, db, internal_secret, due_enrollment, email_sender):
    response = await client.get("/internal/scheduled/drip-campaign", headers=AUTH)

    assert response.status_code == 200
    data = response.json()
    assert data["dueForProcessing"] == 1
    assert data["activeByStage"] == {"stage1": 1, "stage2": 0, "stage3": 0}
    assert "checkedAt" in data
    assert email_sender.sent == []

    db.expire_all()
    assert db.get(CampaignEnrollment, due_enrollment.id).current_stage == 1


@pytest.mark.asyncio
async def test_run_processes_due_enrollments(client, db, internal_secret, due_enrollment, email_sender):
    response = await client.post("/internal/scheduled/drip-campaign", headers=AUTH)

    assert response.status_code == 200
    assert response.json() == {"processed": 1, "completed": 0, "advanced": 1, "errors": 0}
    assert email_sender.recipients == ["ann@example.com"]

    db.expire_all()
    assert db.get(CampaignEnrollment, due_enrollment.id).current_stage == 2


@pytest.mark.asyncio
async def test_run_reports_send_failures(client, internal_secret, due_enrollment, email_sender):
    email_sender.fail_all = True

    response = await client.post("/internal/scheduled/drip-campaign", headers=AUTH)

    assert response.status_code == 200
    assert response.json() == {"processed": 0, "completed": 0, "advanced": 0, "errors": 1}


@pytest.mark.asyncio
async def test_expiry_sweep(client, db, org, tax_client, internal_secret, now):
    document_request_service.create_request(
        db,
        org_id=org.id,
        client_id=tax_client.id,
        items=[ChecklistItemInput(name="W-2")],
        created_by_user_id=None,
        now=now - timedelta(days=45),
    )
    db.commit()

    response = await client.post("/internal/scheduled/document-request-expiry", headers=AUTH)

    assert response.status_code == 200
    assert response.json() == {"expired": 1}
