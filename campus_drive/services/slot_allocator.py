from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campus_drive.core.assignment_machine import (
    LIVE_ASSIGNMENT_STATUSES,
    PENDING_CONFIRMATION,
    SLOT_CANCELLED,
    SLOT_SCHEDULED,
)
from campus_drive.core.datetime_utils import utc_now_naive
from campus_drive.core.errors import (
    CapacityExhausted,
    ConcurrentModification,
    InsufficientCandidates,
    InvalidStateTransition,
    NotFound,
    SlotCancelled,
    ValidationError,
)
from campus_drive.core.invitation_machine import ACCEPTED
from campus_drive.models.interview_slot import CdInterviewSlot, CdSlotAssignment, active_assignment_key
from campus_drive.models.invitation import CdInvitation
from campus_drive.models.student import CdStudentProfile
from campus_drive.schemas.user import ActorContext
from campus_drive.services.eligibility import EligibilityCriteria, eligibility_sort_key, is_eligible, load_eligible_pool
from campus_drive.services.interview_slots import ensure_job_owner, ensure_slot_owner, job_invitations, load_slot

logger = logging.getLogger("cd.allocator")


@dataclass
class AllocationResult:
    assigned: list[CdSlotAssignment] = field(default_factory=list)
    unassigned: list[CdStudentProfile] = field(default_factory=list)


async def reserve_seat(session: AsyncSession, *, slot_id: int) -> bool:
    """
    Atomically take one seat in a scheduled slot.

    Check and increment happen in one conditional UPDATE, so concurrent allocators can never
    push assigned_count past max_candidates. The version bump makes a racing slot status
    change (e.g. cancel) retry and see the new assignment.
    """
    result = await session.execute(
        update(CdInterviewSlot)
        .where(
            CdInterviewSlot.slot_id == slot_id,
            CdInterviewSlot.status == SLOT_SCHEDULED,
            CdInterviewSlot.assigned_count < CdInterviewSlot.max_candidates,
        )
        .values(
            assigned_count=CdInterviewSlot.assigned_count + 1,
            version=CdInterviewSlot.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def _live_assignments(session: AsyncSession, *, job_id: str) -> list[CdSlotAssignment]:
    return list(
        (
            await session.execute(
                select(CdSlotAssignment).where(
                    CdSlotAssignment.job_id == job_id,
                    CdSlotAssignment.status.in_(LIVE_ASSIGNMENT_STATUSES),
                )
            )
        ).scalars().all()
    )


def _new_assignment(slot_id: int, *, job_id: str, student_id: str, invitation_id: int, now: datetime) -> CdSlotAssignment:
    return CdSlotAssignment(
        slot_id=slot_id,
        job_id=job_id,
        student_id=student_id,
        invitation_id=invitation_id,
        status=PENDING_CONFIRMATION,
        confirmed=False,
        assigned_at=now,
        active_key=active_assignment_key(job_id, student_id),
    )


async def _flush_assignments(session: AsyncSession) -> None:
    try:
        await session.flush()
    except IntegrityError as exc:
        # A concurrent allocation placed one of these students first.
        raise ConcurrentModification("Student was assigned by a concurrent request.") from exc


async def auto_assign(
    session: AsyncSession,
    *,
    job_id: str,
    actor: ActorContext,
    now: datetime | None = None,
) -> AllocationResult:
    now = now or utc_now_naive()
    invitations = await job_invitations(session, job_id=job_id)
    ensure_job_owner(invitations, actor, job_id=job_id)
    accepted = [inv for inv in invitations if inv.status == ACCEPTED]
    if not accepted:
        raise InvalidStateTransition("No college has accepted an invitation for this job.", details={"job_id": job_id})

    slots = list(
        (
            await session.execute(
                select(CdInterviewSlot)
                .where(CdInterviewSlot.job_id == job_id, CdInterviewSlot.status == SLOT_SCHEDULED)
                .order_by(CdInterviewSlot.date_time.asc(), CdInterviewSlot.slot_id.asc())
            )
        ).scalars().all()
    )

    live = await _live_assignments(session, job_id=job_id)
    placed_students = {a.student_id for a in live}
    live_per_invitation: dict[int, int] = {}
    for assignment in live:
        if assignment.invitation_id is not None:
            live_per_invitation[assignment.invitation_id] = live_per_invitation.get(assignment.invitation_id, 0) + 1

    # Validate every college's pool before the first write: the batch is all-or-nothing.
    candidates: list[tuple[CdStudentProfile, CdInvitation]] = []
    shortfalls: list[dict[str, object]] = []
    for invitation in accepted:
        criteria = EligibilityCriteria.from_mapping(invitation.eligibility_criteria)
        eligible = await load_eligible_pool(session, college_id=invitation.college_id, criteria=criteria)
        minimum = int((invitation.student_limits or {}).get("min") or 0)
        if len(eligible) < minimum:
            shortfalls.append(
                {
                    "invitation_id": invitation.invitation_id,
                    "college_id": invitation.college_id,
                    "eligible": len(eligible),
                    "min": minimum,
                }
            )
            continue
        candidates.extend((student, invitation) for student in eligible)
    if shortfalls:
        raise InsufficientCandidates(
            "Eligible pool is smaller than the invitation's minimum student limit.",
            details={"shortfalls": shortfalls},
        )

    candidates.sort(key=lambda pair: eligibility_sort_key(pair[0]))
    quota = {
        inv.invitation_id: int((inv.student_limits or {}).get("max") or 0) - live_per_invitation.get(inv.invitation_id, 0)
        for inv in accepted
    }

    result = AllocationResult()
    open_slots = list(slots)
    for student, invitation in candidates:
        if student.student_id in placed_students:
            continue
        if quota[invitation.invitation_id] <= 0:
            continue

        target: CdInterviewSlot | None = None
        while open_slots:
            if await reserve_seat(session, slot_id=open_slots[0].slot_id):
                target = open_slots[0]
                break
            # Seats are never released back to a scheduled slot, so a full slot stays full.
            open_slots.pop(0)
        if target is None:
            # Still charged to the quota: unassigned lists only students a new slot could take.
            result.unassigned.append(student)
            quota[invitation.invitation_id] -= 1
            continue

        assignment = _new_assignment(
            target.slot_id,
            job_id=job_id,
            student_id=student.student_id,
            invitation_id=invitation.invitation_id,
            now=now,
        )
        session.add(assignment)
        result.assigned.append(assignment)
        placed_students.add(student.student_id)
        quota[invitation.invitation_id] -= 1

    await _flush_assignments(session)
    logger.info(
        "auto_assign_completed",
        extra={"job_id": job_id, "assigned": len(result.assigned), "unassigned": len(result.unassigned)},
    )
    return result


async def assign_student(
    session: AsyncSession,
    *,
    slot_id: int,
    student_id: str,
    actor: ActorContext,
    now: datetime | None = None,
) -> CdSlotAssignment:
    now = now or utc_now_naive()
    slot = await load_slot(session, slot_id=slot_id)
    ensure_slot_owner(slot, actor)
    if slot.status == SLOT_CANCELLED:
        raise SlotCancelled("Interview slot was cancelled.", details={"slot_id": slot_id})
    if slot.status != SLOT_SCHEDULED:
        raise InvalidStateTransition("Students can only be added to scheduled slots.", details={"status": slot.status})

    student = await session.get(CdStudentProfile, student_id)
    if not student:
        raise NotFound("Student not found.", details={"student_id": student_id})

    invitation = (
        await session.execute(
            select(CdInvitation).where(
                CdInvitation.job_id == slot.job_id,
                CdInvitation.college_id == student.college_id,
                CdInvitation.status == ACCEPTED,
            )
        )
    ).scalars().first()
    if not invitation:
        raise ValidationError("Student's college has no accepted invitation for this job.")
    if not is_eligible(student, EligibilityCriteria.from_mapping(invitation.eligibility_criteria)):
        raise ValidationError("Student does not meet the eligibility criteria.", details={"student_id": student_id})

    live = await _live_assignments(session, job_id=slot.job_id)
    if any(a.student_id == student_id for a in live):
        raise ValidationError("Student is already assigned for this job.", details={"student_id": student_id})
    maximum = int((invitation.student_limits or {}).get("max") or 0)
    if sum(1 for a in live if a.invitation_id == invitation.invitation_id) >= maximum:
        raise ValidationError("Student limit for this college is already reached.", details={"max": maximum})

    if not await reserve_seat(session, slot_id=slot_id):
        raise CapacityExhausted("Interview slot is full.", details={"slot_id": slot_id, "max_candidates": slot.max_candidates})

    assignment = _new_assignment(
        slot_id,
        job_id=slot.job_id,
        student_id=student_id,
        invitation_id=invitation.invitation_id,
        now=now,
    )
    session.add(assignment)
    await _flush_assignments(session)
    logger.info("student_assigned", extra={"slot_id": slot_id, "student_id": student_id})
    return assignment
