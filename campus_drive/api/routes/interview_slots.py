from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from campus_drive.api import deps
from campus_drive.core.auth import require_roles
from campus_drive.core.roles import ActorRole
from campus_drive.schemas.interview_slot import (
    AssignmentOut,
    AutoAssignOut,
    InterviewSlotCreateIn,
    InterviewSlotOut,
    ManualAssignIn,
    SlotStatusUpdateIn,
    UnassignedStudentOut,
    slot_to_out,
)
from campus_drive.schemas.user import ActorContext
from campus_drive.services.assignments import update_slot_status
from campus_drive.services.event_bus import publish_event
from campus_drive.services.interview_slots import create_interview_slot, list_job_slots, list_upcoming_slots, load_slot
from campus_drive.services.slot_allocator import assign_student, auto_assign
from campus_drive.services.storage_retry import TransactionRunner

router = APIRouter(prefix="/jobs", tags=["interview-slots"])
slot_router = APIRouter(prefix="/interview-slots", tags=["interview-slots"])


@router.post("/{job_id}/interview-slots", response_model=InterviewSlotOut, status_code=status.HTTP_201_CREATED)
async def create_slot_route(
    job_id: str,
    payload: InterviewSlotCreateIn,
    runner: TransactionRunner = Depends(deps.get_runner),
    actor: ActorContext = Depends(require_roles([ActorRole.RECRUITER])),
):
    async def work(session: AsyncSession) -> InterviewSlotOut:
        slot = await create_interview_slot(session, job_id=job_id, actor=actor, payload=payload)
        return slot_to_out(slot)

    out = await runner.run(work)
    await publish_event("interview_slot_created", slot_id=out.slot_id, job_id=job_id)
    return out


@router.get("/{job_id}/interview-slots", response_model=list[InterviewSlotOut])
async def list_slots_route(
    job_id: str,
    runner: TransactionRunner = Depends(deps.get_runner),
    actor: ActorContext = Depends(require_roles([ActorRole.RECRUITER, ActorRole.COLLEGE])),
):
    async def work(session: AsyncSession) -> list[InterviewSlotOut]:
        slots = await list_job_slots(session, job_id=job_id, actor=actor)
        return [slot_to_out(slot) for slot in slots]

    return await runner.run(work)


@router.post("/{job_id}/auto-assign", response_model=AutoAssignOut)
async def auto_assign_route(
    job_id: str,
    runner: TransactionRunner = Depends(deps.get_runner),
    actor: ActorContext = Depends(require_roles([ActorRole.RECRUITER])),
):
    async def work(session: AsyncSession) -> AutoAssignOut:
        result = await auto_assign(session, job_id=job_id, actor=actor)
        return AutoAssignOut(
            assigned=[AssignmentOut.model_validate(a) for a in result.assigned],
            unassigned=[UnassignedStudentOut.model_validate(s) for s in result.unassigned],
        )

    out = await runner.run(work)
    for assignment in out.assigned:
        await publish_event(
            "student_assigned",
            assignment_id=assignment.assignment_id,
            slot_id=assignment.slot_id,
            student_id=assignment.student_id,
        )
    return out


@slot_router.get("/upcoming", response_model=list[InterviewSlotOut])
async def upcoming_slots_route(
    days: int = Query(default=7, ge=1, le=90),
    runner: TransactionRunner = Depends(deps.get_runner),
    actor: ActorContext = Depends(require_roles([ActorRole.RECRUITER, ActorRole.COLLEGE])),
):
    async def work(session: AsyncSession) -> list[InterviewSlotOut]:
        slots = await list_upcoming_slots(session, actor=actor, days=days)
        return [slot_to_out(slot) for slot in slots]

    return await runner.run(work)


@slot_router.post("/{slot_id}/assign", response_model=AssignmentOut, status_code=status.HTTP_201_CREATED)
async def assign_student_route(
    slot_id: int,
    payload: ManualAssignIn,
    runner: TransactionRunner = Depends(deps.get_runner),
    actor: ActorContext = Depends(require_roles([ActorRole.RECRUITER])),
):
    async def work(session: AsyncSession) -> AssignmentOut:
        assignment = await assign_student(session, slot_id=slot_id, student_id=payload.student_id, actor=actor)
        return AssignmentOut.model_validate(assignment)

    out = await runner.run(work)
    await publish_event("student_assigned", assignment_id=out.assignment_id, slot_id=slot_id, student_id=out.student_id)
    return out


@slot_router.patch("/{slot_id}/status", response_model=InterviewSlotOut)
async def update_slot_status_route(
    slot_id: int,
    payload: SlotStatusUpdateIn,
    runner: TransactionRunner = Depends(deps.get_runner),
    actor: ActorContext = Depends(require_roles([ActorRole.RECRUITER])),
):
    async def work(session: AsyncSession) -> tuple[InterviewSlotOut, bool]:
        before = (await load_slot(session, slot_id=slot_id)).status
        slot = await update_slot_status(session, slot_id=slot_id, actor=actor, status=payload.status)
        return slot_to_out(slot), slot.status != before

    out, changed = await runner.run(work)
    if changed:
        await publish_event("interview_slot_status_changed", slot_id=slot_id, status=out.status)
    return out
