from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from campus_drive.api import deps
from campus_drive.core.auth import require_roles
from campus_drive.core.roles import ActorRole
from campus_drive.schemas.interview_slot import AssignmentOut, FeedbackIn, NoShowIn
from campus_drive.schemas.user import ActorContext
from campus_drive.services.assignments import (
    confirm_assignment,
    join_assignment,
    list_student_assignments,
    load_assignment,
    mark_no_show,
    submit_feedback,
)
from campus_drive.services.event_bus import publish_event
from campus_drive.services.storage_retry import TransactionRunner

router = APIRouter(prefix="/assignments", tags=["assignments"])


async def _status_of(session: AsyncSession, assignment_id: int) -> str:
    assignment, _ = await load_assignment(session, assignment_id=assignment_id)
    return assignment.status


@router.get("", response_model=list[AssignmentOut])
async def my_assignments_route(
    runner: TransactionRunner = Depends(deps.get_runner),
    actor: ActorContext = Depends(require_roles([ActorRole.STUDENT])),
):
    async def work(session: AsyncSession) -> list[AssignmentOut]:
        rows = await list_student_assignments(session, actor=actor)
        return [AssignmentOut.model_validate(a) for a in rows]

    return await runner.run(work)


@router.post("/{assignment_id}/confirm", response_model=AssignmentOut)
async def confirm_assignment_route(
    assignment_id: int,
    runner: TransactionRunner = Depends(deps.get_runner),
    actor: ActorContext = Depends(require_roles([ActorRole.STUDENT])),
):
    async def work(session: AsyncSession) -> tuple[AssignmentOut, bool]:
        before = await _status_of(session, assignment_id)
        assignment = await confirm_assignment(session, assignment_id=assignment_id, actor=actor)
        return AssignmentOut.model_validate(assignment), assignment.status != before

    out, changed = await runner.run(work)
    if changed:
        await publish_event("assignment_confirmed", assignment_id=assignment_id, slot_id=out.slot_id)
    return out


@router.post("/{assignment_id}/join", response_model=AssignmentOut)
async def join_assignment_route(
    assignment_id: int,
    runner: TransactionRunner = Depends(deps.get_runner),
    actor: ActorContext = Depends(require_roles([ActorRole.STUDENT])),
):
    async def work(session: AsyncSession) -> tuple[AssignmentOut, bool]:
        before = await _status_of(session, assignment_id)
        assignment = await join_assignment(session, assignment_id=assignment_id, actor=actor)
        return AssignmentOut.model_validate(assignment), assignment.status != before

    out, changed = await runner.run(work)
    if changed:
        await publish_event("assignment_joined", assignment_id=assignment_id, slot_id=out.slot_id)
    return out


@router.post("/{assignment_id}/feedback", response_model=AssignmentOut)
async def submit_feedback_route(
    assignment_id: int,
    payload: FeedbackIn,
    runner: TransactionRunner = Depends(deps.get_runner),
    actor: ActorContext = Depends(require_roles([ActorRole.RECRUITER])),
):
    async def work(session: AsyncSession) -> AssignmentOut:
        assignment = await submit_feedback(
            session,
            assignment_id=assignment_id,
            actor=actor,
            rating=payload.rating,
            comments=payload.comments,
        )
        return AssignmentOut.model_validate(assignment)

    out = await runner.run(work)
    await publish_event("feedback_submitted", assignment_id=assignment_id, rating=out.feedback_rating)
    return out


@router.post("/{assignment_id}/no-show", response_model=AssignmentOut)
async def mark_no_show_route(
    assignment_id: int,
    payload: Optional[NoShowIn] = None,
    runner: TransactionRunner = Depends(deps.get_runner),
    actor: ActorContext = Depends(require_roles([ActorRole.RECRUITER])),
):
    async def work(session: AsyncSession) -> tuple[AssignmentOut, bool]:
        before = await _status_of(session, assignment_id)
        assignment = await mark_no_show(session, assignment_id=assignment_id, actor=actor, notes=payload.notes if payload else None)
        return AssignmentOut.model_validate(assignment), assignment.status != before

    out, changed = await runner.run(work)
    if changed:
        await publish_event("assignment_no_show", assignment_id=assignment_id, slot_id=out.slot_id)
    return out
