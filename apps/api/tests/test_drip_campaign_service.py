"""Drip campaign sequencer and staff campaign controls."""

import uuid
from datetime import timedelta

import anyio
import pytest
from sqlalchemy import select

from taxdesk.core.config import settings
from taxdesk.db.enums import EnrollmentStatus
from taxdesk.db.models import ActivityLog, CampaignEnrollment, IntakeLink
from taxdesk.services import drip_campaign_service as drip
from taxdesk.services import intake_link_service

CAMPAIGN = "tax_season_2025"


@pytest.fixture
def enroll(db, org):
    def _enroll(client, *, stage=1, due_at=None, used=False, with_link=True, status="active"):
        link = None
        if with_link:
            link = intake_link_service.build_intake_link(db, org_id=org.id, client=client)
            if used:
                link.used_at = due_at
        enrollment = CampaignEnrollment(
            organization_id=org.id,
            client_id=client.id,
            intake_link_id=link.id if link else None,
            campaign_name=CAMPAIGN,
            current_stage=stage,
            status=status,
            next_email_due_at=due_at,
        )
        db.add(enrollment)
        db.commit()
        return enrollment

    return _enroll


def _reload(db, enrollment):
    db.expire_all()
    return db.get(CampaignEnrollment, enrollment.id)


# =============================================================================
# Sequencer
# =============================================================================

@pytest.mark.asyncio
async def test_converted_enrollment_completes_without_email(db, tax_client, enroll, email_sender, now):
    enrollment = enroll(tax_client, stage=1, due_at=now - timedelta(minutes=1), used=True)

    result = await drip.process_due_enrollments(db, email_sender, now)

    assert (result.processed, result.completed, result.advanced, result.errors) == (1, 1, 0, 0)
    stored = _reload(db, enrollment)
    assert stored.status == EnrollmentStatus.COMPLETED.value
    assert stored.next_email_due_at is None
    assert stored.completed_at == now
    assert email_sender.sent == []


@pytest.mark.asyncio
async def test_stage_one_advances_to_two(db, tax_client, enroll, email_sender, now):
    enrollment = enroll(tax_client, stage=1, due_at=now - timedelta(minutes=1))

    result = await drip.process_due_enrollments(db, email_sender, now)

    assert result.advanced == 1
    stored = _reload(db, enrollment)
    assert stored.current_stage == 2
    assert stored.last_email_sent_at == now
    assert stored.next_email_due_at == now + timedelta(days=3)

    message, key = email_sender.sent[0]
    assert message.to == "ann@example.com"
    assert key == f"drip/{enrollment.id}/stage-2"
    assert f"/intake/{stored.intake_link.token}" in message.html


@pytest.mark.asyncio
async def test_stage_two_advances_to_terminal_stage(db, tax_client, enroll, email_sender, now):
    enrollment = enroll(tax_client, stage=2, due_at=now)

    result = await drip.process_due_enrollments(db, email_sender, now)

    assert result.advanced == 1
    stored = _reload(db, enrollment)
    assert stored.current_stage == 3
    assert stored.status == EnrollmentStatus.ACTIVE.value
    assert stored.next_email_due_at is None
    assert stored.last_email_sent_at == now
    assert len(email_sender.sent) == 1


@pytest.mark.asyncio
async def test_final_stage_completes_without_email(db, tax_client, enroll, email_sender, now):
    enrollment = enroll(tax_client, stage=3, due_at=now - timedelta(hours=1))

    result = await drip.process_due_enrollments(db, email_sender, now)

    assert result.completed == 1
    stored = _reload(db, enrollment)
    assert stored.status == EnrollmentStatus.COMPLETED.value
    assert stored.next_email_due_at is None
    assert email_sender.sent == []


@pytest.mark.asyncio
async def test_send_failure_leaves_enrollment_for_retry(db, tax_client, enroll, email_sender, now):
    due_at = now - timedelta(minutes=5)
    enrollment = enroll(tax_client, stage=1, due_at=due_at)
    email_sender.fail_all = True

    result = await drip.process_due_enrollments(db, email_sender, now)

    assert (result.processed, result.errors) == (0, 1)
    stored = _reload(db, enrollment)
    assert stored.current_stage == 1
    assert stored.status == EnrollmentStatus.ACTIVE.value
    assert stored.next_email_due_at == due_at


@pytest.mark.asyncio
async def test_missing_email_counts_error_and_is_retried(db, make_client, enroll, email_sender, now):
    no_email = make_client(first_name="Bo", email=None)
    enrollment = enroll(no_email, stage=1, due_at=now)

    first = await drip.process_due_enrollments(db, email_sender, now)
    second = await drip.process_due_enrollments(db, email_sender, now + timedelta(minutes=5))

    assert first.errors == 1
    assert second.errors == 1
    stored = _reload(db, enrollment)
    assert stored.current_stage == 1
    assert stored.status == EnrollmentStatus.ACTIVE.value


@pytest.mark.asyncio
async def test_one_failure_does_not_abort_batch(db, make_client, enroll, email_sender, now):
    failing = make_client(first_name="Cy", email="cy@example.com")
    healthy = make_client(first_name="Di", email="di@example.com")
    enroll(failing, stage=1, due_at=now - timedelta(minutes=2))
    ok = enroll(healthy, stage=1, due_at=now - timedelta(minutes=1))
    email_sender.fail_for = {"cy@example.com"}

    result = await drip.process_due_enrollments(db, email_sender, now)

    assert (result.processed, result.advanced, result.errors) == (1, 1, 1)
    assert _reload(db, ok).current_stage == 2


@pytest.mark.asyncio
async def test_send_timeout_is_a_retryable_failure(db, tax_client, enroll, now, monkeypatch):
    class SlowSender:
        key = "slow"

        async def send(self, message, *, idempotency_key=None):
            await anyio.sleep(5)
            return "late"

    monkeypatch.setattr(settings, "DRIP_SEND_TIMEOUT_SECONDS", 0.01)
    enrollment = enroll(tax_client, stage=1, due_at=now)

    result = await drip.process_due_enrollments(db, SlowSender(), now)

    assert result.errors == 1
    assert _reload(db, enrollment).current_stage == 1


@pytest.mark.asyncio
async def test_not_yet_due_and_paused_are_ignored(db, make_client, enroll, email_sender, now):
    enroll(make_client(email="later@example.com"), stage=1, due_at=now + timedelta(hours=1))
    enroll(make_client(email="paused@example.com"), stage=1, due_at=now, status="paused")

    result = await drip.process_due_enrollments(db, email_sender, now)

    assert (result.processed, result.errors) == (0, 0)
    assert email_sender.sent == []


@pytest.mark.asyncio
async def test_enrollment_without_link_uses_generic_intake_url(db, tax_client, enroll, email_sender, now):
    enroll(tax_client, stage=1, due_at=now, with_link=False)

    await drip.process_due_enrollments(db, email_sender, now)

    message, _ = email_sender.sent[0]
    assert "https://app.example.com/intake/new" in message.html


def test_due_summary_counts_by_stage(db, make_client, enroll, now):
    enroll(make_client(email="a@example.com"), stage=1, due_at=now - timedelta(minutes=1))
    enroll(make_client(email="b@example.com"), stage=2, due_at=now + timedelta(days=1))
    enroll(make_client(email="c@example.com"), stage=2, due_at=now - timedelta(days=1))
    enroll(make_client(email="d@example.com"), stage=1, due_at=now, status="paused")

    summary = drip.due_summary(db, now)

    assert summary.due_for_processing == 2
    assert summary.active_by_stage == {"stage1": 1, "stage2": 2, "stage3": 0}
    assert summary.checked_at == now


def test_idempotency_key_format():
    subject = uuid.UUID("00000000-0000-0000-0000-000000000001")
    assert drip.drip_idempotency_key(subject, 2) == f"drip/{subject}/stage-2"


# =============================================================================
# Staff controls
# =============================================================================

@pytest.mark.asyncio
async def test_start_campaign_enrolls_eligible_clients(db, ctx, make_client, email_sender, now):
    ann = make_client(first_name="Ann", email="ann@example.com")
    make_client(first_name="Bo", email=None)
    make_client(first_name="Cy", email="")

    result = await drip.start_campaign(db, ctx, email_sender, CAMPAIGN, now=now)

    assert (result.enrolled, result.failed, result.total, result.remaining) == (1, 0, 1, 0)
    enrollment = db.scalar(select(CampaignEnrollment))
    assert enrollment.client_id == ann.id
    assert enrollment.current_stage == 1
    assert enrollment.status == "active"
    assert enrollment.last_email_sent_at == now
    assert enrollment.next_email_due_at == now + timedelta(days=2)

    link = db.get(IntakeLink, enrollment.intake_link_id)
    assert link.email == "ann@example.com"
    assert link.prefill_first_name == "Ann"

    message, key = email_sender.sent[0]
    assert key == f"drip/{link.id}/stage-1"
    assert f"https://app.example.com/intake/{link.token}" in message.html

    kinds = sorted(db.scalars(select(ActivityLog.kind)).all())
    assert kinds == ["campaign_enrolled", "email_sent"]


@pytest.mark.asyncio
async def test_start_campaign_skips_already_enrolled(db, ctx, tax_client, enroll, email_sender, now):
    enroll(tax_client, stage=3, due_at=None, status="completed")

    result = await drip.start_campaign(db, ctx, email_sender, CAMPAIGN, now=now)

    assert (result.enrolled, result.total) == (0, 0)
    assert email_sender.sent == []


@pytest.mark.asyncio
async def test_start_campaign_twice_does_not_duplicate(db, ctx, tax_client, email_sender, now):
    await drip.start_campaign(db, ctx, email_sender, CAMPAIGN, now=now)
    await drip.start_campaign(db, ctx, email_sender, CAMPAIGN, now=now)

    enrollments = db.scalars(select(CampaignEnrollment)).all()
    assert len(enrollments) == 1
    assert len(email_sender.sent) == 1


@pytest.mark.asyncio
async def test_start_campaign_respects_batch_size(db, ctx, make_client, email_sender, monkeypatch):
    monkeypatch.setattr(settings, "DRIP_ENROLL_BATCH_SIZE", 2)
    for i in range(3):
        make_client(first_name=f"C{i}", email=f"c{i}@example.com")

    first = await drip.start_campaign(db, ctx, email_sender, CAMPAIGN)
    assert (first.enrolled, first.remaining) == (2, 1)

    second = await drip.start_campaign(db, ctx, email_sender, CAMPAIGN)
    assert (second.enrolled, second.remaining) == (1, 0)


@pytest.mark.asyncio
async def test_start_campaign_counts_send_failures(db, ctx, make_client, email_sender):
    make_client(first_name="Ok", email="ok@example.com")
    bad = make_client(first_name="Bad", email="bad@example.com")
    email_sender.fail_for = {"bad@example.com"}

    result = await drip.start_campaign(db, ctx, email_sender, CAMPAIGN)

    assert (result.enrolled, result.failed) == (1, 1)
    assert result.errors == [{"client_id": str(bad.id), "error": "Email provider unavailable"}]
    clients = db.scalars(select(CampaignEnrollment.client_id)).all()
    assert bad.id not in clients


@pytest.mark.asyncio
async def test_start_campaign_limited_to_given_clients(db, ctx, make_client, email_sender):
    chosen = make_client(first_name="Pick", email="pick@example.com")
    make_client(first_name="Skip", email="skip@example.com")

    result = await drip.start_campaign(db, ctx, email_sender, CAMPAIGN, client_ids=[chosen.id])

    assert result.enrolled == 1
    assert email_sender.recipients == ["pick@example.com"]


def test_pause_and_resume(db, ctx, make_client, enroll, now):
    active = enroll(make_client(email="a@example.com"), due_at=now)
    done = enroll(make_client(email="b@example.com"), due_at=None, status="completed")

    assert drip.pause_campaign(db, ctx, CAMPAIGN) == 1
    assert _reload(db, active).status == "paused"
    assert _reload(db, done).status == "completed"

    assert drip.resume_campaign(db, ctx, CAMPAIGN) == 1
    assert _reload(db, active).status == "active"


def test_unsubscribe_stops_future_email(db, ctx, tax_client, enroll, now):
    enrollment = enroll(tax_client, due_at=now + timedelta(days=1))

    assert drip.unsubscribe(db, ctx, tax_client.id, CAMPAIGN, now) == 1

    stored = _reload(db, enrollment)
    assert stored.status == "unsubscribed"
    assert stored.unsubscribed_at == now
    assert stored.next_email_due_at is None


def test_unsubscribe_leaves_completed_enrollment_completed(db, ctx, tax_client, enroll, now):
    enrollment = enroll(tax_client, due_at=None, status="completed")

    assert drip.unsubscribe(db, ctx, tax_client.id, CAMPAIGN, now) == 0

    stored = _reload(db, enrollment)
    assert stored.status == "completed"
    assert stored.unsubscribed_at is None


def test_unsubscribe_paused_enrollment(db, ctx, tax_client, enroll, now):
    enrollment = enroll(tax_client, due_at=None, status="paused")

    assert drip.unsubscribe(db, ctx, tax_client.id, CAMPAIGN, now) == 1
    assert _reload(db, enrollment).status == "unsubscribed"


def test_unsubscribe_unknown_enrollment_is_not_found(db, ctx, tax_client):
    from taxdesk.core.errors import NotFoundError

    with pytest.raises(NotFoundError):
        drip.unsubscribe(db, ctx, tax_client.id, CAMPAIGN)


def test_campaign_stats(db, ctx, make_client, enroll, now):
    enroll(make_client(email="a@example.com"), stage=1, due_at=now)
    enroll(make_client(email="b@example.com"), stage=2, due_at=now)
    enroll(make_client(email="c@example.com"), stage=3, due_at=None, status="completed")
    make_client(email="d@example.com")
    make_client(email=None)

    stats = drip.campaign_stats(db, ctx, CAMPAIGN)

    assert stats.total == 3
    assert stats.by_status["active"] == 2
    assert stats.by_status["completed"] == 1
    assert stats.by_status["unsubscribed"] == 0
    assert stats.active_by_stage == {"stage1": 1, "stage2": 1, "stage3": 0}
    assert stats.clients_with_email == 4
    assert stats.not_enrolled == 1
