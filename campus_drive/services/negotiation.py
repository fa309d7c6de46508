from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from campus_drive.core.config import settings
from campus_drive.core.datetime_utils import utc_now_naive
from campus_drive.core.errors import NegotiationLimitExceeded, ValidationError
from campus_drive.core.invitation_machine import (
    ACTION_ACCEPTED,
    ACTION_COUNTER_PROPOSED,
    ACTION_DECLINED,
    ACTOR_COLLEGE,
    NEGOTIATING,
)
from campus_drive.models.invitation import CdInvitation, CdInvitationHistory
from campus_drive.schemas.invitation import DateRange
from campus_drive.schemas.user import ActorContext
from campus_drive.services.invitation_history import append_history, ordered_history
from campus_drive.services.invitations import ensure_can_move, load_invitation, party_label

logger = logging.getLogger("cd.negotiation")

_RESPONSE_ACTIONS = {ACTION_ACCEPTED, ACTION_DECLINED}


def validate_alternative_dates(alternative_dates: list[DateRange], *, now: datetime) -> None:
    if not alternative_dates:
        raise ValidationError("At least one alternative date range is required.")
    for item in alternative_dates:
        if not item.is_concrete():
            raise ValidationError("Alternative date range must start before it ends.", details=item.to_storage())
        if item.start < now:
            raise ValidationError("Alternative date range cannot start in the past.", details=item.to_storage())


def _last_counter(invitation: CdInvitation) -> CdInvitationHistory | None:
    """Most recent counter with no accept/decline after it."""
    for entry in reversed(ordered_history(invitation)):
        if entry.action in _RESPONSE_ACTIONS:
            return None
        if entry.action == ACTION_COUNTER_PROPOSED:
            return entry
    return None


async def counter_invitation(
    session: AsyncSession,
    *,
    invitation_id: int,
    actor: ActorContext,
    alternative_dates: list[DateRange],
    message: str | None = None,
    now: datetime | None = None,
) -> CdInvitation:
    now = now or utc_now_naive()
    invitation = await load_invitation(session, invitation_id=invitation_id)
    label = party_label(invitation, actor)

    ensure_can_move(invitation, NEGOTIATING, now=now)
    validate_alternative_dates(alternative_dates, now=now)

    max_rounds = settings.negotiation_max_rounds
    if invitation.negotiation_rounds >= max_rounds:
        raise NegotiationLimitExceeded(
            f"Negotiation is capped at {max_rounds} rounds; accept or decline instead.",
            details={"invitation_id": invitation.invitation_id, "rounds": invitation.negotiation_rounds},
        )

    previous = _last_counter(invitation)
    window = timedelta(seconds=settings.negotiation_review_window_seconds)
    if previous is not None and abs(now - previous.timestamp) < window:
        invitation.needs_review = True
        invitation.review_reason = (
            f"Counter proposals by {previous.actor} and {label} landed "
            f"{abs(now - previous.timestamp).total_seconds():.1f}s apart"
        )
        logger.warning(
            "invitation_flagged_for_review",
            extra={"invitation_id": invitation.invitation_id, "first_actor": previous.actor, "second_actor": label},
        )

    stored_dates = [item.to_storage() for item in alternative_dates]
    # Only a later-timestamped counter replaces the visible proposal; every counter is kept in history.
    if previous is None or now >= previous.timestamp:
        invitation.tpo_response = {
            "response_date": now.isoformat(),
            "message": message,
            "counter_proposal": {"alternative_dates": stored_dates},
        }
    invitation.status = NEGOTIATING
    invitation.negotiation_rounds = invitation.negotiation_rounds + 1
    if label == ACTOR_COLLEGE:
        invitation.responded_at = now

    append_history(
        invitation,
        actor=label,
        actor_id=actor.actor_id,
        action=ACTION_COUNTER_PROPOSED,
        details=(message or "").strip() or "Counter proposal submitted",
        timestamp=now,
        proposed_dates=stored_dates,
    )
    await session.flush()
    logger.info(
        "invitation_countered",
        extra={
            "invitation_id": invitation.invitation_id,
            "actor": label,
            "round": invitation.negotiation_rounds,
        },
    )
    return invitation
