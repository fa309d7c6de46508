from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_drive.core.assignment_machine import SLOT_IN_PROGRESS, SLOT_SCHEDULED, UPCOMING_SLOT_STATUSES
from campus_drive.core.datetime_utils import utc_now_naive
from campus_drive.core.errors import InvalidStateTransition, NotFound, Unauthorized, ValidationError
from campus_drive.core.invitation_machine import ACCEPTED
from campus_drive.core.roles import ActorRole
from campus_drive.models.interview_slot import CdInterviewSlot
from campus_drive.models.invitation import CdInvitation
from campus_drive.schemas.interview_slot import InterviewSlotCreateIn
from campus_drive.schemas.user import ActorContext

logger = logging.getLogger("cd.slots")


async def job_invitations(session: AsyncSession, *, job_id: str) -> list[CdInvitation]:
    return list(
        (
            await session.execute(
                select(CdInvitation)
                .where(CdInvitation.job_id == job_id)
                .order_by(CdInvitation.responded_at.asc(), CdInvitation.invitation_id.asc())
            )
        ).scalars().all()
    )


def ensure_job_owner(invitations: list[CdInvitation], actor: ActorContext, *, job_id: str) -> None:
    if actor.role != ActorRole.RECRUITER:
        raise Unauthorized("Only the job's recruiter can manage interview slots.")
    if not invitations:
        raise NotFound("No invitations exist for this job.", details={"job_id": job_id})
    if any(inv.recruiter_id != actor.party_id for inv in invitations):
        raise Unauthorized("Job belongs to another recruiter.", details={"job_id": job_id})


async def load_slot(session: AsyncSession, *, slot_id: int) -> CdInterviewSlot:
    # populate_existing: seat reservations bypass the ORM, so identity-map copies may be stale.
    slot = (
        await session.execute(
            select(CdInterviewSlot)
            .where(CdInterviewSlot.slot_id == slot_id)
            .execution_options(populate_existing=True)
        )
    ).scalars().first()
    if not slot:
        raise NotFound("Interview slot not found.", details={"slot_id": slot_id})
    return slot


def ensure_slot_owner(slot: CdInterviewSlot, actor: ActorContext) -> None:
    if actor.role != ActorRole.RECRUITER or actor.party_id != slot.recruiter_id:
        raise Unauthorized("Actor does not own this interview slot.")


async def create_interview_slot(
    session: AsyncSession,
    *,
    job_id: str,
    actor: ActorContext,
    payload: InterviewSlotCreateIn,
    now: datetime | None = None,
) -> CdInterviewSlot:
    now = now or utc_now_naive()
    invitations = await job_invitations(session, job_id=job_id)
    ensure_job_owner(invitations, actor, job_id=job_id)
    if not any(inv.status == ACCEPTED for inv in invitations):
        raise InvalidStateTransition(
            "Cannot create interview slots before a college accepts the invitation.",
            details={"job_id": job_id},
        )
    if payload.date_time < now:
        raise ValidationError("Interview slot cannot start in the past.", details={"date_time": payload.date_time.isoformat()})

    slot = CdInterviewSlot(
        job_id=job_id,
        recruiter_id=actor.party_id,
        date_time=payload.date_time,
        duration=payload.duration,
        slot_type=payload.type,
        location_type=payload.location.type,
        location_details=payload.location.details,
        meeting_link=payload.location.meeting_link,
        max_candidates=payload.max_candidates,
        assigned_count=0,
        status=SLOT_SCHEDULED,
        assignments=[],
    )
    session.add(slot)
    await session.flush()
    logger.info(
        "interview_slot_created",
        extra={"slot_id": slot.slot_id, "job_id": job_id, "max_candidates": slot.max_candidates},
    )
    return slot


async def list_job_slots(session: AsyncSession, *, job_id: str, actor: ActorContext) -> list[CdInterviewSlot]:
    invitations = await job_invitations(session, job_id=job_id)
    if actor.role == ActorRole.RECRUITER:
        ensure_job_owner(invitations, actor, job_id=job_id)
    elif actor.role == ActorRole.COLLEGE:
        if not any(inv.college_id == actor.party_id and inv.status == ACCEPTED for inv in invitations):
            raise Unauthorized("College has no accepted invitation for this job.")
    else:
        raise Unauthorized("Only recruiters and colleges can list interview slots.")
    return list(
        (
            await session.execute(
                select(CdInterviewSlot)
                .where(CdInterviewSlot.job_id == job_id)
                .order_by(CdInterviewSlot.date_time.asc(), CdInterviewSlot.slot_id.asc())
                .execution_options(populate_existing=True)
            )
        ).scalars().all()
    )


async def list_upcoming_slots(
    session: AsyncSession,
    *,
    actor: ActorContext,
    days: int = 7,
    now: datetime | None = None,
) -> list[CdInterviewSlot]:
    """Scheduled or running slots starting within the next `days` days, for reminder runs."""
    now = now or utc_now_naive()
    if days < 1:
        raise ValidationError("days must be positive.", details={"days": days})

    query = (
        select(CdInterviewSlot)
        .where(
            CdInterviewSlot.status.in_(UPCOMING_SLOT_STATUSES),
            # A running slot stays listed until it is completed or cancelled.
            or_(CdInterviewSlot.date_time >= now, CdInterviewSlot.status == SLOT_IN_PROGRESS),
            CdInterviewSlot.date_time <= now + timedelta(days=days),
        )
        .order_by(CdInterviewSlot.date_time.asc(), CdInterviewSlot.slot_id.asc())
        .execution_options(populate_existing=True)
    )
    if actor.role == ActorRole.RECRUITER:
        query = query.where(CdInterviewSlot.recruiter_id == actor.party_id)
    elif actor.role == ActorRole.COLLEGE:
        accepted_jobs = select(CdInvitation.job_id).where(
            CdInvitation.college_id == actor.party_id,
            CdInvitation.status == ACCEPTED,
        )
        query = query.where(CdInterviewSlot.job_id.in_(accepted_jobs))
    else:
        raise Unauthorized("Only recruiters and colleges can list interview slots.")
    return list((await session.execute(query)).scalars().all())
