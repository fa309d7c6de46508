from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campus_drive.core.config import settings
from campus_drive.core.datetime_utils import utc_now_naive
from campus_drive.core.errors import (
    ConcurrentModification,
    InvalidStateTransition,
    NotFound,
    Unauthorized,
    ValidationError,
)
from campus_drive.core.invitation_machine import (
    ACCEPTED,
    ACTION_ACCEPTED,
    ACTION_DECLINED,
    ACTION_PROPOSED,
    ACTOR_COLLEGE,
    ACTOR_RECRUITER,
    ALL_STATUSES,
    DECLINED,
    PENDING,
    can_transition,
    is_known_status,
    normalize_status,
)
from campus_drive.core.roles import ActorRole
from campus_drive.models.invitation import CdInvitation
from campus_drive.schemas.invitation import DateRange, InvitationCreateIn
from campus_drive.schemas.user import ActorContext
from campus_drive.services.expiry import expire_if_due, is_past_expiry
from campus_drive.services.invitation_history import append_history, latest_proposal, ordered_history

logger = logging.getLogger("cd.invitations")


@dataclass(frozen=True)
class StatusBreakdown:
    status: str
    count: int
    avg_response_seconds: float | None


@dataclass(frozen=True)
class InvitationStats:
    total_invitations: int
    status_breakdown: list[StatusBreakdown]
    response_rate: float


def party_label(invitation: CdInvitation, actor: ActorContext) -> str:
    """History actor for `actor`, or Unauthorized when they are not a party to the invitation."""
    if actor.role == ActorRole.RECRUITER and actor.party_id == invitation.recruiter_id:
        return ACTOR_RECRUITER
    if actor.role == ActorRole.COLLEGE and actor.party_id == invitation.college_id:
        return ACTOR_COLLEGE
    raise Unauthorized("Actor is not a party to this invitation.")


def ensure_can_move(invitation: CdInvitation, to_status: str, *, now: datetime) -> None:
    if not can_transition(invitation.status, to_status):
        raise InvalidStateTransition(
            f"Invitation cannot move from '{invitation.status}' to '{to_status}'.",
            details={"invitation_id": invitation.invitation_id, "status": invitation.status},
        )
    if is_past_expiry(invitation, now):
        raise InvalidStateTransition(
            "Invitation has expired.",
            details={"invitation_id": invitation.invitation_id, "expires_at": invitation.expires_at.isoformat()},
        )


async def load_invitation(session: AsyncSession, *, invitation_id: int) -> CdInvitation:
    # populate_existing: the expiry sweep writes through Core, so identity-map copies may be stale.
    invitation = (
        await session.execute(
            select(CdInvitation)
            .where(CdInvitation.invitation_id == invitation_id)
            .execution_options(populate_existing=True)
        )
    ).scalars().first()
    if not invitation:
        raise NotFound("Invitation not found.", details={"invitation_id": invitation_id})
    return invitation


def _merge_tpo_response(invitation: CdInvitation, *, now: datetime, message: str | None) -> dict[str, Any]:
    response = dict(invitation.tpo_response or {})
    response["response_date"] = now.isoformat()
    response["message"] = message
    return response


async def create_invitations(
    session: AsyncSession,
    *,
    actor: ActorContext,
    payload: InvitationCreateIn,
    now: datetime | None = None,
) -> list[CdInvitation]:
    if actor.role != ActorRole.RECRUITER:
        raise Unauthorized("Only recruiters can send invitations.")
    now = now or utc_now_naive()

    expires_in_days = payload.expires_in_days
    if expires_in_days is None:
        expires_in_days = settings.invitation_default_expiry_days
    if expires_in_days < 1 or expires_in_days > settings.invitation_max_expiry_days:
        raise ValidationError(
            f"expires_in_days must be between 1 and {settings.invitation_max_expiry_days}.",
            details={"expires_in_days": expires_in_days},
        )
    for proposed in payload.proposed_dates:
        if proposed.end < proposed.start:
            raise ValidationError("Proposed date range ends before it starts.", details=proposed.to_storage())

    college_ids = list(dict.fromkeys(c.strip() for c in payload.college_ids if c and c.strip()))
    if not college_ids:
        raise ValidationError("At least one college is required.")

    existing = (
        await session.execute(select(CdInvitation).where(CdInvitation.job_id == payload.job_id))
    ).scalars().all()
    if any(inv.recruiter_id != actor.party_id for inv in existing):
        raise Unauthorized("Job belongs to another recruiter.", details={"job_id": payload.job_id})
    already_invited = {inv.college_id for inv in existing}

    expires_at = now + timedelta(days=expires_in_days)
    proposed_dates = [item.to_storage() for item in payload.proposed_dates]
    details = (payload.message or "").strip() or "Initial invitation sent"

    created: list[CdInvitation] = []
    for college_id in college_ids:
        if college_id in already_invited:
            continue
        invitation = CdInvitation(
            job_id=payload.job_id,
            recruiter_id=actor.party_id,
            college_id=college_id,
            status=PENDING,
            invitation_message=payload.message,
            proposed_dates=proposed_dates,
            eligibility_criteria=payload.eligibility_criteria.model_dump(),
            student_limits=payload.student_limits.model_dump(),
            negotiation_rounds=0,
            needs_review=False,
            sent_at=now,
            expires_at=expires_at,
            history=[],
        )
        append_history(
            invitation,
            actor=ACTOR_RECRUITER,
            actor_id=actor.actor_id,
            action=ACTION_PROPOSED,
            details=details,
            timestamp=now,
            proposed_dates=proposed_dates,
        )
        session.add(invitation)
        created.append(invitation)

    try:
        await session.flush()
    except IntegrityError as exc:
        # Another request invited one of these colleges for the same job first.
        raise ConcurrentModification("Invitation already exists for this job and college.") from exc

    logger.info(
        "invitations_created",
        extra={"job_id": payload.job_id, "created": len(created), "skipped": len(college_ids) - len(created)},
    )
    return created


async def accept_invitation(
    session: AsyncSession,
    *,
    invitation_id: int,
    actor: ActorContext,
    confirmed_window: DateRange,
    message: str | None = None,
    now: datetime | None = None,
) -> CdInvitation:
    now = now or utc_now_naive()
    invitation = await load_invitation(session, invitation_id=invitation_id)
    label = party_label(invitation, actor)

    if invitation.status == ACCEPTED:
        return invitation
    ensure_can_move(invitation, ACCEPTED, now=now)
    if not confirmed_window.is_concrete():
        raise ValidationError(
            "Confirmed window must start before it ends.",
            details=confirmed_window.to_storage(),
        )
    proposal = latest_proposal(invitation)
    if proposal is not None and proposal.actor == label:
        raise Unauthorized("The proposing side cannot accept its own proposal.")

    from_status = invitation.status
    invitation.status = ACCEPTED
    invitation.responded_at = now
    invitation.campus_visit_window = {
        "start": confirmed_window.start.isoformat(),
        "end": confirmed_window.end.isoformat(),
        "is_flexible": False,
    }
    if label == ACTOR_COLLEGE:
        invitation.tpo_response = _merge_tpo_response(invitation, now=now, message=message)
    append_history(
        invitation,
        actor=label,
        actor_id=actor.actor_id,
        action=ACTION_ACCEPTED,
        details=(message or "").strip() or "Invitation accepted",
        timestamp=now,
    )
    await session.flush()
    logger.info(
        "invitation_accepted",
        extra={"invitation_id": invitation.invitation_id, "from_status": from_status, "actor": label},
    )
    return invitation


async def decline_invitation(
    session: AsyncSession,
    *,
    invitation_id: int,
    actor: ActorContext,
    reason: str,
    now: datetime | None = None,
) -> CdInvitation:
    now = now or utc_now_naive()
    invitation = await load_invitation(session, invitation_id=invitation_id)
    label = party_label(invitation, actor)

    if invitation.status == DECLINED:
        return invitation
    ensure_can_move(invitation, DECLINED, now=now)
    reason_clean = (reason or "").strip()
    if not reason_clean:
        raise ValidationError("A reason is required to decline.")

    from_status = invitation.status
    invitation.status = DECLINED
    invitation.responded_at = now
    if label == ACTOR_COLLEGE:
        invitation.tpo_response = _merge_tpo_response(invitation, now=now, message=reason_clean)
    append_history(
        invitation,
        actor=label,
        actor_id=actor.actor_id,
        action=ACTION_DECLINED,
        details=reason_clean,
        timestamp=now,
    )
    await session.flush()
    logger.info(
        "invitation_declined",
        extra={"invitation_id": invitation.invitation_id, "from_status": from_status, "actor": label},
    )
    return invitation


async def get_invitation(
    session: AsyncSession,
    *,
    invitation_id: int,
    actor: ActorContext,
    now: datetime | None = None,
) -> CdInvitation:
    invitation = await load_invitation(session, invitation_id=invitation_id)
    party_label(invitation, actor)
    await expire_if_due(session, invitation, now=now or utc_now_naive())
    return invitation


async def list_invitations(
    session: AsyncSession,
    *,
    actor: ActorContext,
    status: str | None = None,
    job_id: str | None = None,
    now: datetime | None = None,
) -> list[CdInvitation]:
    now = now or utc_now_naive()
    query = (
        select(CdInvitation)
        .order_by(CdInvitation.sent_at.desc(), CdInvitation.invitation_id.desc())
        .execution_options(populate_existing=True)
    )
    if actor.role == ActorRole.RECRUITER:
        query = query.where(CdInvitation.recruiter_id == actor.party_id)
    elif actor.role == ActorRole.COLLEGE:
        query = query.where(CdInvitation.college_id == actor.party_id)
    else:
        raise Unauthorized("Only recruiters and colleges can list invitations.")
    if job_id:
        query = query.where(CdInvitation.job_id == job_id)

    rows = list((await session.execute(query)).scalars().all())
    for invitation in rows:
        await expire_if_due(session, invitation, now=now)

    if status is None:
        return rows
    wanted = normalize_status(status)
    if not is_known_status(wanted):
        raise ValidationError(f"Unknown invitation status '{status}'.", details={"allowed": list(ALL_STATUSES)})
    # Filtered after the lazy expiry pass so overdue rows land in the right bucket.
    return [inv for inv in rows if inv.status == wanted]


async def invitation_timeline(
    session: AsyncSession,
    *,
    invitation_id: int,
    actor: ActorContext,
    now: datetime | None = None,
) -> tuple[CdInvitation, list]:
    invitation = await get_invitation(session, invitation_id=invitation_id, actor=actor, now=now)
    return invitation, ordered_history(invitation)


async def invitation_stats(
    session: AsyncSession,
    *,
    actor: ActorContext,
    job_id: str | None = None,
    days: int = 30,
    now: datetime | None = None,
) -> InvitationStats:
    now = now or utc_now_naive()
    if days < 1:
        raise ValidationError("days must be positive.")
    rows = await list_invitations(session, actor=actor, job_id=job_id, now=now)
    since = now - timedelta(days=days)
    rows = [inv for inv in rows if inv.sent_at >= since]

    buckets: dict[str, list[CdInvitation]] = {}
    for invitation in rows:
        buckets.setdefault(invitation.status, []).append(invitation)

    breakdown: list[StatusBreakdown] = []
    for status_name in ALL_STATUSES:
        items = buckets.get(status_name)
        if not items:
            continue
        response_times = [
            (inv.responded_at - inv.sent_at).total_seconds() for inv in items if inv.responded_at is not None
        ]
        avg = sum(response_times) / len(response_times) if response_times else None
        breakdown.append(StatusBreakdown(status=status_name, count=len(items), avg_response_seconds=avg))

    total = len(rows)
    responded = len(buckets.get(ACCEPTED, [])) + len(buckets.get(DECLINED, []))
    response_rate = (responded / total * 100) if total else 0.0
    return InvitationStats(total_invitations=total, status_breakdown=breakdown, response_rate=response_rate)
