"""Drip campaign sequencer and staff campaign controls.

The sequencer is externally triggered: each call evaluates every active
enrollment whose ``next_email_due_at`` has passed, then returns. Stage
advancement is guarded by a compare-and-set on ``current_stage`` and every
send carries a provider idempotency key, so an overlapping or retried run
neither double-advances nor double-sends.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

import anyio
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload

from taxdesk.core.config import settings
from taxdesk.core.context import RequestContext
from taxdesk.core.errors import (
    ConflictError,
    NotFoundError,
    ServiceError,
    TransportError,
    ValidationError,
)
from taxdesk.core.structured_logging import build_log_context
from taxdesk.db.enums import CampaignEmailType, EnrollmentStatus
from taxdesk.db.models import CampaignEnrollment, Client
from taxdesk.schemas.activity import CampaignEnrolledActivity, EmailSentActivity
from taxdesk.services import activity_service, intake_link_service, token_service
from taxdesk.services.email_sender import EmailMessage, EmailSender
from taxdesk.services.email_templates import campaign_email
from taxdesk.utils.datetime_utils import add_days, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageConfig:
    email_type: CampaignEmailType
    days_until_next: int | None  # None: terminal stage


STAGE_CONFIG: dict[int, StageConfig] = {
    1: StageConfig(CampaignEmailType.INTRO, 2),
    2: StageConfig(CampaignEmailType.REFUND_AMOUNTS, 3),
    3: StageConfig(CampaignEmailType.URGENCY, None),
}
FINAL_STAGE = max(STAGE_CONFIG)
MAX_REPORTED_ERRORS = 10


@dataclass
class SequencerResult:
    processed: int = 0
    completed: int = 0
    advanced: int = 0
    errors: int = 0


@dataclass(frozen=True)
class DueSummary:
    due_for_processing: int
    active_by_stage: dict[str, int]
    checked_at: datetime


@dataclass
class StartCampaignResult:
    enrolled: int = 0
    failed: int = 0
    total: int = 0
    remaining: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)


@dataclass(frozen=True)
class CampaignStats:
    campaign_name: str
    total: int
    by_status: dict[str, int]
    active_by_stage: dict[str, int]
    clients_with_email: int
    not_enrolled: int


def drip_idempotency_key(subject_id: UUID, stage: int) -> str:
    """Provider de-duplication key for one stage email."""
    return f"drip/{subject_id}/stage-{stage}"


def next_due_at(stage: int, now: datetime) -> datetime | None:
    days = STAGE_CONFIG[stage].days_until_next
    return add_days(now, days) if days is not None else None


async def _send_with_timeout(
    sender: EmailSender, message: EmailMessage, idempotency_key: str
) -> str | None:
    try:
        with anyio.fail_after(settings.DRIP_SEND_TIMEOUT_SECONDS):
            return await sender.send(message, idempotency_key=idempotency_key)
    except TimeoutError as exc:
        raise TransportError("Email send timed out") from exc


def _render_stage_email(client: Client, stage: int, intake_token: str | None) -> EmailMessage:
    rendered = campaign_email(
        STAGE_CONFIG[stage].email_type,
        client.first_name,
        token_service.build_intake_url(intake_token),
    )
    return EmailMessage(
        to=client.email, subject=rendered.subject, html=rendered.html, text=rendered.text
    )


# =============================================================================
# Sequencer
# =============================================================================

def _active_by_stage(db: Session, filters: list) -> dict[str, int]:
    rows = db.execute(
        select(CampaignEnrollment.current_stage, func.count())
        .where(CampaignEnrollment.status == EnrollmentStatus.ACTIVE.value, *filters)
        .group_by(CampaignEnrollment.current_stage)
    ).all()
    counts = {stage: count for stage, count in rows}
    return {f"stage{stage}": counts.get(stage, 0) for stage in STAGE_CONFIG}


def due_summary(db: Session, now: datetime | None = None) -> DueSummary:
    """Read-only view of what the next sequencer run would pick up."""
    now = now or utcnow()
    due = db.scalar(
        select(func.count())
        .select_from(CampaignEnrollment)
        .where(
            CampaignEnrollment.status == EnrollmentStatus.ACTIVE.value,
            CampaignEnrollment.next_email_due_at <= now,
        )
    )
    return DueSummary(
        due_for_processing=due or 0,
        active_by_stage=_active_by_stage(db, []),
        checked_at=now,
    )


def _mark_completed(db: Session, enrollment: CampaignEnrollment, now: datetime) -> None:
    db.execute(
        update(CampaignEnrollment)
        .where(
            CampaignEnrollment.id == enrollment.id,
            CampaignEnrollment.status == EnrollmentStatus.ACTIVE.value,
        )
        .values(
            status=EnrollmentStatus.COMPLETED.value,
            completed_at=now,
            next_email_due_at=None,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()


async def _process_enrollment(
    db: Session,
    enrollment: CampaignEnrollment,
    sender: EmailSender,
    now: datetime,
) -> str:
    """Evaluate one due enrollment. Returns "completed" or "advanced"."""
    link = enrollment.intake_link

    # Conversion short-circuits everything else
    if link is not None and link.used_at is not None:
        _mark_completed(db, enrollment, now)
        return "completed"

    if enrollment.current_stage >= FINAL_STAGE:
        _mark_completed(db, enrollment, now)
        return "completed"

    current_stage = enrollment.current_stage
    next_stage = current_stage + 1
    if next_stage not in STAGE_CONFIG:
        raise ValidationError(f"Invalid stage {next_stage}")

    client = enrollment.client
    if client is None:
        raise NotFoundError("Client not found")
    if not client.email:
        # Left untouched; retried every run until staff add an email or unsubscribe
        raise ValidationError("Client has no email address")

    message_id = await _send_with_timeout(
        sender,
        _render_stage_email(client, next_stage, link.token if link else None),
        drip_idempotency_key(enrollment.id, next_stage),
    )

    advanced = db.execute(
        update(CampaignEnrollment)
        .where(
            CampaignEnrollment.id == enrollment.id,
            CampaignEnrollment.status == EnrollmentStatus.ACTIVE.value,
            CampaignEnrollment.current_stage == current_stage,
        )
        .values(
            current_stage=next_stage,
            last_email_sent_at=now,
            next_email_due_at=next_due_at(next_stage, now),
        )
        .execution_options(synchronize_session=False)
    )
    if advanced.rowcount != 1:
        db.rollback()
        raise ConflictError("Enrollment changed during processing")

    activity_service.log_activity(
        db,
        organization_id=enrollment.organization_id,
        client_id=client.id,
        payload=EmailSentActivity(
            email_type=STAGE_CONFIG[next_stage].email_type.value,
            message_id=message_id,
        ),
        description=f"Campaign email sent ({enrollment.campaign_name}, stage {next_stage})",
    )
    db.commit()
    return "advanced"


async def process_due_enrollments(
    db: Session,
    sender: EmailSender,
    now: datetime | None = None,
) -> SequencerResult:
    """
    Run one sequencer pass over every due enrollment.

    Failures are isolated per enrollment: counted, logged and left for the
    next run.
    """
    now = now or utcnow()
    due_ids = db.scalars(
        select(CampaignEnrollment.id)
        .where(
            CampaignEnrollment.status == EnrollmentStatus.ACTIVE.value,
            CampaignEnrollment.next_email_due_at <= now,
        )
        .order_by(CampaignEnrollment.next_email_due_at, CampaignEnrollment.id)
    ).all()

    result = SequencerResult()
    for enrollment_id in due_ids:
        log_extra = build_log_context(enrollment_id=enrollment_id)
        try:
            enrollment = db.scalar(
                select(CampaignEnrollment)
                .options(
                    selectinload(CampaignEnrollment.client),
                    selectinload(CampaignEnrollment.intake_link),
                )
                .where(CampaignEnrollment.id == enrollment_id)
            )
            if enrollment is None:
                raise NotFoundError("Enrollment not found")
            outcome = await _process_enrollment(db, enrollment, sender, now)
        except ServiceError as exc:
            db.rollback()
            result.errors += 1
            logger.warning("Drip enrollment skipped: %s", exc.message, extra=log_extra)
            continue
        except Exception:
            db.rollback()
            result.errors += 1
            logger.exception("Drip enrollment failed", extra=log_extra)
            continue

        result.processed += 1
        if outcome == "completed":
            result.completed += 1
        else:
            result.advanced += 1

    logger.info(
        "Drip run finished processed=%s completed=%s advanced=%s errors=%s",
        result.processed,
        result.completed,
        result.advanced,
        result.errors,
    )
    return result


# =============================================================================
# Staff controls
# =============================================================================

def _enrolled_client_ids(org_id: UUID, campaign_name: str):
    return select(CampaignEnrollment.client_id).where(
        CampaignEnrollment.organization_id == org_id,
        CampaignEnrollment.campaign_name == campaign_name,
    )


def _has_email():
    return Client.email.is_not(None) & (Client.email != "")


async def start_campaign(
    db: Session,
    ctx: RequestContext,
    sender: EmailSender,
    campaign_name: str,
    client_ids: list[UUID] | None = None,
    now: datetime | None = None,
) -> StartCampaignResult:
    """
    Enroll clients with an email who are not yet in this campaign.

    Each client gets a personal intake link and the stage-1 email right away;
    the enrollment row is written only after the email is accepted. Clients
    already enrolled in the campaign, in any status, are skipped.
    """
    now = now or utcnow()
    query = (
        select(Client)
        .where(
            Client.organization_id == ctx.org_id,
            _has_email(),
            Client.id.not_in(_enrolled_client_ids(ctx.org_id, campaign_name)),
        )
        .order_by(Client.created_at, Client.id)
    )
    if client_ids:
        query = query.where(Client.id.in_(client_ids))

    candidates = db.scalars(query).all()
    batch = candidates[: settings.DRIP_ENROLL_BATCH_SIZE]
    result = StartCampaignResult(total=len(batch), remaining=len(candidates) - len(batch))

    for client_id in [c.id for c in batch]:
        try:
            client = db.get(Client, client_id)
            link = intake_link_service.build_intake_link(
                db,
                org_id=ctx.org_id,
                created_by_user_id=ctx.user_id,
                client=client,
                now=now,
            )
            message_id = await _send_with_timeout(
                sender,
                _render_stage_email(client, 1, link.token),
                drip_idempotency_key(link.id, 1),
            )
            enrollment = CampaignEnrollment(
                organization_id=ctx.org_id,
                client_id=client.id,
                intake_link_id=link.id,
                campaign_name=campaign_name,
                current_stage=1,
                status=EnrollmentStatus.ACTIVE.value,
                last_email_sent_at=now,
                next_email_due_at=next_due_at(1, now),
                created_at=now,
            )
            db.add(enrollment)
            db.flush()
            activity_service.log_activity(
                db,
                organization_id=ctx.org_id,
                client_id=client.id,
                actor_user_id=ctx.user_id,
                payload=CampaignEnrolledActivity(
                    campaign_name=campaign_name, enrollment_id=enrollment.id
                ),
                description=f"Enrolled in campaign {campaign_name}",
            )
            activity_service.log_activity(
                db,
                organization_id=ctx.org_id,
                client_id=client.id,
                actor_user_id=ctx.user_id,
                payload=EmailSentActivity(
                    email_type=CampaignEmailType.INTRO.value, message_id=message_id
                ),
                description=f"Campaign email sent ({campaign_name}, stage 1)",
            )
            db.commit()
            result.enrolled += 1
        except ServiceError as exc:
            db.rollback()
            result.failed += 1
            if len(result.errors) < MAX_REPORTED_ERRORS:
                result.errors.append({"client_id": str(client_id), "error": exc.message})
            logger.warning(
                "Campaign enrollment failed: %s",
                exc.message,
                extra=build_log_context(org_id=ctx.org_id, request_id=ctx.request_id),
            )
        except Exception:
            db.rollback()
            result.failed += 1
            if len(result.errors) < MAX_REPORTED_ERRORS:
                result.errors.append({"client_id": str(client_id), "error": "Unexpected error"})
            logger.exception(
                "Campaign enrollment failed",
                extra=build_log_context(org_id=ctx.org_id, request_id=ctx.request_id),
            )

    logger.info(
        "Campaign start enrolled=%s failed=%s remaining=%s",
        result.enrolled,
        result.failed,
        result.remaining,
        extra=build_log_context(org_id=ctx.org_id, request_id=ctx.request_id),
    )
    return result


def _transition_all(
    db: Session, org_id: UUID, campaign_name: str, from_status: str, to_status: str
) -> int:
    changed = db.execute(
        update(CampaignEnrollment)
        .where(
            CampaignEnrollment.organization_id == org_id,
            CampaignEnrollment.campaign_name == campaign_name,
            CampaignEnrollment.status == from_status,
        )
        .values(status=to_status)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return changed.rowcount or 0


def pause_campaign(db: Session, ctx: RequestContext, campaign_name: str) -> int:
    return _transition_all(
        db, ctx.org_id, campaign_name, EnrollmentStatus.ACTIVE.value, EnrollmentStatus.PAUSED.value
    )


def resume_campaign(db: Session, ctx: RequestContext, campaign_name: str) -> int:
    return _transition_all(
        db, ctx.org_id, campaign_name, EnrollmentStatus.PAUSED.value, EnrollmentStatus.ACTIVE.value
    )


def unsubscribe(
    db: Session,
    ctx: RequestContext,
    client_id: UUID,
    campaign_name: str,
    now: datetime | None = None,
) -> int:
    """
    Stop all further campaign email for one client.

    Only active or paused enrollments move to unsubscribed; completed ones
    keep their outcome. Returns the number of enrollments changed.
    """
    now = now or utcnow()
    filters = (
        CampaignEnrollment.organization_id == ctx.org_id,
        CampaignEnrollment.client_id == client_id,
        CampaignEnrollment.campaign_name == campaign_name,
    )
    if db.scalar(select(CampaignEnrollment.id).where(*filters).limit(1)) is None:
        raise NotFoundError("Client is not enrolled in this campaign")

    changed = db.execute(
        update(CampaignEnrollment)
        .where(
            *filters,
            CampaignEnrollment.status.in_(
                (EnrollmentStatus.ACTIVE.value, EnrollmentStatus.PAUSED.value)
            ),
        )
        .values(
            status=EnrollmentStatus.UNSUBSCRIBED.value,
            unsubscribed_at=now,
            next_email_due_at=None,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return changed.rowcount or 0


def campaign_stats(db: Session, ctx: RequestContext, campaign_name: str) -> CampaignStats:
    in_campaign = [
        CampaignEnrollment.organization_id == ctx.org_id,
        CampaignEnrollment.campaign_name == campaign_name,
    ]
    rows = db.execute(
        select(CampaignEnrollment.status, func.count())
        .where(*in_campaign)
        .group_by(CampaignEnrollment.status)
    ).all()
    by_status = {status.value: 0 for status in EnrollmentStatus}
    by_status.update({status: count for status, count in rows})

    clients_with_email = db.scalar(
        select(func.count())
        .select_from(Client)
        .where(Client.organization_id == ctx.org_id, _has_email())
    ) or 0
    enrolled_with_email = db.scalar(
        select(func.count())
        .select_from(Client)
        .where(
            Client.organization_id == ctx.org_id,
            _has_email(),
            Client.id.in_(_enrolled_client_ids(ctx.org_id, campaign_name)),
        )
    ) or 0

    return CampaignStats(
        campaign_name=campaign_name,
        total=sum(by_status.values()),
        by_status=by_status,
        active_by_stage=_active_by_stage(db, in_campaign),
        clients_with_email=clients_with_email,
        not_enrolled=clients_with_email - enrolled_with_email,
    )
