from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from campus_drive.core.datetime_utils import utc_now_naive
from campus_drive.core.invitation_machine import (
    ACTION_EXPIRED,
    ACTOR_SYSTEM,
    EXPIRED,
    OPEN_STATUSES,
)
from campus_drive.models.invitation import CdInvitation, CdInvitationHistory

logger = logging.getLogger("cd.expiry")


def is_past_expiry(invitation: CdInvitation, now: datetime) -> bool:
    # The boundary instant already counts as expired.
    return invitation.expires_at <= now


async def expire_invitation(session: AsyncSession, *, invitation_id: int, now: datetime) -> bool:
    """
    Expire one invitation if it is still open and overdue.

    The status check and the write are a single conditional UPDATE, so an accept/decline
    that committed first wins and this becomes a no-op.
    """
    result = await session.execute(
        update(CdInvitation)
        .where(
            CdInvitation.invitation_id == invitation_id,
            CdInvitation.status.in_(OPEN_STATUSES),
            CdInvitation.expires_at <= now,
        )
        .values(status=EXPIRED, version=CdInvitation.version + 1, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    session.add(
        CdInvitationHistory(
            invitation_id=invitation_id,
            timestamp=now,
            actor=ACTOR_SYSTEM,
            action=ACTION_EXPIRED,
            details="Invitation expired without a final response",
        )
    )
    await session.flush()
    return True


async def expire_if_due(session: AsyncSession, invitation: CdInvitation, *, now: datetime) -> bool:
    """Lazy check used on reads. Refreshes `invitation` when it was expired."""
    if invitation.status not in OPEN_STATUSES or not is_past_expiry(invitation, now):
        return False
    expired = await expire_invitation(session, invitation_id=invitation.invitation_id, now=now)
    await session.refresh(invitation)
    return expired


async def sweep_expired_invitations(session: AsyncSession, *, now: datetime | None = None) -> list[int]:
    now = now or utc_now_naive()
    candidate_ids = (
        await session.execute(
            select(CdInvitation.invitation_id)
            .where(CdInvitation.status.in_(OPEN_STATUSES), CdInvitation.expires_at <= now)
            .order_by(CdInvitation.expires_at.asc(), CdInvitation.invitation_id.asc())
        )
    ).scalars().all()

    expired_ids: list[int] = []
    for invitation_id in candidate_ids:
        if await expire_invitation(session, invitation_id=invitation_id, now=now):
            expired_ids.append(invitation_id)

    if expired_ids:
        logger.info("invitations_expired", extra={"count": len(expired_ids), "invitation_ids": expired_ids})
    return expired_ids
