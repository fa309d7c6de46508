from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from campus_drive.api import deps
from campus_drive.core.auth import require_roles
from campus_drive.core.roles import ActorRole
from campus_drive.schemas.invitation import (
    AcceptInvitationIn,
    CounterInvitationIn,
    DeclineInvitationIn,
    HistoryEntryOut,
    InvitationCreateIn,
    InvitationOut,
    InvitationStatsOut,
    InvitationTimelineOut,
    RespondInvitationIn,
    StatusBreakdownOut,
)
from campus_drive.schemas.user import ActorContext
from campus_drive.services.event_bus import publish_event
from campus_drive.services.invitations import (
    accept_invitation,
    create_invitations,
    decline_invitation,
    get_invitation,
    invitation_stats,
    invitation_timeline,
    list_invitations,
    load_invitation,
)
from campus_drive.services.negotiation import counter_invitation
from campus_drive.services.storage_retry import TransactionRunner

router = APIRouter(prefix="/invitations", tags=["invitations"])

_PARTIES = [ActorRole.RECRUITER, ActorRole.COLLEGE]


@router.post("", response_model=list[InvitationOut], status_code=status.HTTP_201_CREATED)
async def create_invitations_route(
    payload: InvitationCreateIn,
    runner: TransactionRunner = Depends(deps.get_runner),
    actor: ActorContext = Depends(require_roles([ActorRole.RECRUITER])),
):
    async def work(session: AsyncSession) -> list[InvitationOut]:
        created = await create_invitations(session, actor=actor, payload=payload)
        return [InvitationOut.model_validate(inv) for inv in created]

    out = await runner.run(work)
    for item in out:
        await publish_event(
            "invitation_sent",
            invitation_id=item.invitation_id,
            job_id=item.job_id,
            college_id=item.college_id,
        )
    return out


@router.get("", response_model=list[InvitationOut])
async def list_invitations_route(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    job_id: Optional[str] = Query(default=None),
    runner: TransactionRunner = Depends(deps.get_runner),
    actor: ActorContext = Depends(require_roles(_PARTIES)),
):
    async def work(session: AsyncSession) -> list[InvitationOut]:
        rows = await list_invitations(session, actor=actor, status=status_filter, job_id=job_id)
        return [InvitationOut.model_validate(inv) for inv in rows]

    return await runner.run(work)


@router.get("/stats", response_model=InvitationStatsOut)
async def invitation_stats_route(
    job_id: Optional[str] = Query(default=None),
    days: int = Query(default=30, ge=1, le=365),
    runner: TransactionRunner = Depends(deps.get_runner),
    actor: ActorContext = Depends(require_roles(_PARTIES)),
):
    async def work(session: AsyncSession) -> InvitationStatsOut:
        stats = await invitation_stats(session, actor=actor, job_id=job_id, days=days)
        return InvitationStatsOut(
            total_invitations=stats.total_invitations,
            status_breakdown=[
                StatusBreakdownOut(status=b.status, count=b.count, avg_response_seconds=b.avg_response_seconds)
                for b in stats.status_breakdown
            ],
            response_rate=stats.response_rate,
        )

    return await runner.run(work)


@router.get("/{invitation_id}", response_model=InvitationOut)
async def get_invitation_route(
    invitation_id: int,
    runner: TransactionRunner = Depends(deps.get_runner),
    actor: ActorContext = Depends(require_roles(_PARTIES)),
):
    async def work(session: AsyncSession) -> InvitationOut:
        invitation = await get_invitation(session, invitation_id=invitation_id, actor=actor)
        return InvitationOut.model_validate(invitation)

    return await runner.run(work)


@router.get("/{invitation_id}/history", response_model=InvitationTimelineOut)
async def invitation_history_route(
    invitation_id: int,
    runner: TransactionRunner = Depends(deps.get_runner),
    actor: ActorContext = Depends(require_roles(_PARTIES)),
):
    async def work(session: AsyncSession) -> InvitationTimelineOut:
        invitation, timeline = await invitation_timeline(session, invitation_id=invitation_id, actor=actor)
        return InvitationTimelineOut(
            invitation_id=invitation.invitation_id,
            current_status=invitation.status,
            timeline=[HistoryEntryOut.model_validate(entry) for entry in timeline],
        )

    return await runner.run(work)


@router.post("/{invitation_id}/respond", response_model=InvitationOut)
async def respond_invitation_route(
    invitation_id: int,
    payload: RespondInvitationIn = Body(..., discriminator="action"),
    runner: TransactionRunner = Depends(deps.get_runner),
    actor: ActorContext = Depends(require_roles(_PARTIES)),
):
    async def work(session: AsyncSession) -> tuple[InvitationOut, bool]:
        before = (await load_invitation(session, invitation_id=invitation_id)).status
        if isinstance(payload, AcceptInvitationIn):
            invitation = await accept_invitation(
                session,
                invitation_id=invitation_id,
                actor=actor,
                confirmed_window=payload.confirmed_window,
                message=payload.message,
            )
        elif isinstance(payload, DeclineInvitationIn):
            invitation = await decline_invitation(session, invitation_id=invitation_id, actor=actor, reason=payload.reason)
        else:
            invitation = await counter_invitation(
                session,
                invitation_id=invitation_id,
                actor=actor,
                alternative_dates=payload.alternative_dates,
                message=payload.message,
            )
        # Counters always add a round; accept/decline on a settled invitation are no-ops.
        changed = isinstance(payload, CounterInvitationIn) or invitation.status != before
        return InvitationOut.model_validate(invitation), changed

    out, changed = await runner.run(work)
    if not changed:
        return out
    event_type = {
        "accept": "invitation_accepted",
        "decline": "invitation_declined",
        "counter": "invitation_countered",
    }[payload.action]
    await publish_event(event_type, invitation_id=out.invitation_id, job_id=out.job_id, status=out.status)
    if isinstance(payload, CounterInvitationIn) and out.needs_review:
        await publish_event("invitation_needs_review", invitation_id=out.invitation_id, reason=out.review_reason)
    return out
