from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from campus_drive.core.assignment_machine import (
    CANCELLED,
    COMPLETED,
    CONFIRMED,
    JOINED,
    NO_SHOW,
    PENDING_CONFIRMATION,
    SLOT_CANCELLED,
    SLOT_COMPLETED,
    SLOT_IN_PROGRESS,
    SLOT_SCHEDULED,
    can_transition_assignment,
    can_transition_slot,
)
from campus_drive.core.config import settings
from campus_drive.core.datetime_utils import utc_now_naive
from campus_drive.core.errors import (
    FeedbackAlreadySubmitted,
    InvalidStateTransition,
    JoinWindowClosed,
    NotFound,
    SlotCancelled,
    Unauthorized,
    ValidationError,
)
from campus_drive.core.roles import ActorRole
from campus_drive.models.interview_slot import CdInterviewSlot, CdSlotAssignment
from campus_drive.schemas.user import ActorContext
from campus_drive.services.interview_slots import ensure_slot_owner, load_slot

logger = logging.getLogger("cd.assignments")


async def load_assignment(session: AsyncSession, *, assignment_id: int) -> tuple[CdSlotAssignment, CdInterviewSlot]:
    assignment = (
        await session.execute(
            select(CdSlotAssignment)
            .where(CdSlotAssignment.assignment_id == assignment_id)
            .execution_options(populate_existing=True)
        )
    ).scalars().first()
    if not assignment:
        raise NotFound("Assignment not found.", details={"assignment_id": assignment_id})
    slot = await load_slot(session, slot_id=assignment.slot_id)
    return assignment, slot


def _ensure_student(assignment: CdSlotAssignment, actor: ActorContext) -> None:
    if actor.role != ActorRole.STUDENT or actor.party_id != assignment.student_id:
        raise Unauthorized("Only the assigned student can do this.")


def join_window(slot: CdInterviewSlot) -> tuple[datetime, datetime]:
    opens = slot.date_time - timedelta(minutes=settings.join_early_minutes)
    closes = slot.date_time + timedelta(minutes=slot.duration)
    return opens, closes


def _ensure_assignment_move(assignment: CdSlotAssignment, to_status: str) -> None:
    if not can_transition_assignment(assignment.status, to_status):
        raise InvalidStateTransition(
            f"Assignment cannot move from '{assignment.status}' to '{to_status}'.",
            details={"assignment_id": assignment.assignment_id, "status": assignment.status},
        )


async def confirm_assignment(
    session: AsyncSession,
    *,
    assignment_id: int,
    actor: ActorContext,
    now: datetime | None = None,
) -> CdSlotAssignment:
    now = now or utc_now_naive()
    assignment, slot = await load_assignment(session, assignment_id=assignment_id)
    _ensure_student(assignment, actor)

    if assignment.status == CANCELLED or slot.status == SLOT_CANCELLED:
        raise SlotCancelled("Interview slot was cancelled.", details={"slot_id": slot.slot_id})
    if assignment.confirmed:
        return assignment
    if slot.status != SLOT_SCHEDULED:
        raise InvalidStateTransition(
            "Attendance can only be confirmed before the interview starts.",
            details={"slot_status": slot.status},
        )
    _ensure_assignment_move(assignment, CONFIRMED)

    assignment.status = CONFIRMED
    assignment.confirmed = True
    assignment.confirmed_at = now
    await session.flush()
    logger.info("assignment_confirmed", extra={"assignment_id": assignment_id, "slot_id": slot.slot_id})
    return assignment


async def join_assignment(
    session: AsyncSession,
    *,
    assignment_id: int,
    actor: ActorContext,
    now: datetime | None = None,
) -> CdSlotAssignment:
    now = now or utc_now_naive()
    assignment, slot = await load_assignment(session, assignment_id=assignment_id)
    _ensure_student(assignment, actor)

    if assignment.status == CANCELLED or slot.status == SLOT_CANCELLED:
        raise SlotCancelled("Interview slot was cancelled.", details={"slot_id": slot.slot_id})
    if assignment.status in {JOINED, COMPLETED}:
        return assignment
    if slot.status != SLOT_IN_PROGRESS:
        raise InvalidStateTransition("Interview has not started.", details={"slot_status": slot.status})
    if assignment.status == PENDING_CONFIRMATION:
        raise InvalidStateTransition("Attendance must be confirmed before joining.")
    _ensure_assignment_move(assignment, JOINED)

    opens, closes = join_window(slot)
    if now < opens or now > closes:
        raise JoinWindowClosed(
            "Interview can only be joined around its scheduled time.",
            details={"opens_at": opens.isoformat(), "closes_at": closes.isoformat()},
        )

    assignment.status = JOINED
    assignment.joined_at = now
    await session.flush()
    logger.info("assignment_joined", extra={"assignment_id": assignment_id, "slot_id": slot.slot_id})
    return assignment


async def submit_feedback(
    session: AsyncSession,
    *,
    assignment_id: int,
    actor: ActorContext,
    rating: int,
    comments: str | None = None,
    now: datetime | None = None,
) -> CdSlotAssignment:
    now = now or utc_now_naive()
    assignment, slot = await load_assignment(session, assignment_id=assignment_id)
    ensure_slot_owner(slot, actor)

    if rating < 1 or rating > 5:
        raise ValidationError("Rating must be between 1 and 5.", details={"rating": rating})
    if assignment.feedback_submitted_at is not None:
        raise FeedbackAlreadySubmitted("Feedback was already submitted.", details={"assignment_id": assignment_id})
    if slot.status == SLOT_CANCELLED or assignment.status == CANCELLED:
        raise SlotCancelled("Interview slot was cancelled.", details={"slot_id": slot.slot_id})
    if slot.status != SLOT_COMPLETED:
        raise InvalidStateTransition("Feedback opens once the interview is completed.", details={"slot_status": slot.status})

    result = await session.execute(
        update(CdSlotAssignment)
        .where(
            CdSlotAssignment.assignment_id == assignment_id,
            CdSlotAssignment.feedback_submitted_at.is_(None),
        )
        .values(
            feedback_rating=rating,
            feedback_comments=(comments or "").strip() or None,
            feedback_submitted_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise FeedbackAlreadySubmitted("Feedback was already submitted.", details={"assignment_id": assignment_id})
    await session.refresh(assignment)
    logger.info("feedback_submitted", extra={"assignment_id": assignment_id, "rating": rating})
    return assignment


async def mark_no_show(
    session: AsyncSession,
    *,
    assignment_id: int,
    actor: ActorContext,
    notes: str | None = None,
    now: datetime | None = None,
) -> CdSlotAssignment:
    """Recruiter marks a confirmed student who never joined. Only possible once the interview has started."""
    now = now or utc_now_naive()
    assignment, slot = await load_assignment(session, assignment_id=assignment_id)
    ensure_slot_owner(slot, actor)

    if assignment.status == CANCELLED or slot.status == SLOT_CANCELLED:
        raise SlotCancelled("Interview slot was cancelled.", details={"slot_id": slot.slot_id})
    if assignment.status == NO_SHOW:
        return assignment
    if slot.status not in {SLOT_IN_PROGRESS, SLOT_COMPLETED}:
        raise InvalidStateTransition("Interview has not started.", details={"slot_status": slot.status})
    _ensure_assignment_move(assignment, NO_SHOW)

    assignment.status = NO_SHOW
    assignment.no_show_at = now
    assignment.attendance_notes = (notes or "").strip() or None
    await session.flush()
    logger.info("assignment_no_show", extra={"assignment_id": assignment_id, "slot_id": slot.slot_id})
    return assignment


async def update_slot_status(
    session: AsyncSession,
    *,
    slot_id: int,
    actor: ActorContext,
    status: str,
    now: datetime | None = None,
) -> CdInterviewSlot:
    now = now or utc_now_naive()
    slot = await load_slot(session, slot_id=slot_id)
    ensure_slot_owner(slot, actor)

    if slot.status == status:
        return slot
    if not can_transition_slot(slot.status, status):
        raise InvalidStateTransition(
            f"Interview slot cannot move from '{slot.status}' to '{status}'.",
            details={"slot_id": slot_id, "status": slot.status},
        )

    from_status = slot.status
    slot.status = status
    touched = 0
    if status == SLOT_CANCELLED:
        for assignment in slot.assignments:
            if not can_transition_assignment(assignment.status, CANCELLED):
                continue
            assignment.status = CANCELLED
            assignment.cancelled_at = now
            # Frees the student for another slot of the same job.
            assignment.active_key = None
            touched += 1
    elif status == SLOT_COMPLETED:
        for assignment in slot.assignments:
            if can_transition_assignment(assignment.status, COMPLETED):
                assignment.status = COMPLETED
                touched += 1

    # Versioned flush: a concurrent seat reservation bumps the version, forcing a retry that sees it.
    await session.flush()
    logger.info(
        "slot_status_changed",
        extra={"slot_id": slot_id, "from_status": from_status, "to_status": status, "assignments": touched},
    )
    return slot


async def list_student_assignments(session: AsyncSession, *, actor: ActorContext) -> list[CdSlotAssignment]:
    if actor.role != ActorRole.STUDENT:
        raise Unauthorized("Only students have interview assignments.")
    return list(
        (
            await session.execute(
                select(CdSlotAssignment)
                .where(CdSlotAssignment.student_id == actor.party_id)
                .order_by(CdSlotAssignment.assigned_at.asc(), CdSlotAssignment.assignment_id.asc())
            )
        ).scalars().all()
    )
