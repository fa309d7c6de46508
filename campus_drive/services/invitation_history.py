from __future__ import annotations

from datetime import datetime
from typing import Any

from campus_drive.core.invitation_machine import ACTION_COUNTER_PROPOSED, ACTION_PROPOSED
from campus_drive.models.invitation import CdInvitation, CdInvitationHistory

_PROPOSAL_ACTIONS = {ACTION_PROPOSED, ACTION_COUNTER_PROPOSED}


def append_history(
    invitation: CdInvitation,
    *,
    actor: str,
    action: str,
    details: str,
    timestamp: datetime,
    actor_id: str | None = None,
    proposed_dates: list[dict[str, Any]] | None = None,
) -> CdInvitationHistory:
    entry = CdInvitationHistory(
        timestamp=timestamp,
        actor=actor,
        actor_id=actor_id,
        action=action,
        details=details,
        proposed_dates=proposed_dates,
    )
    invitation.history.append(entry)
    return entry


def ordered_history(invitation: CdInvitation) -> list[CdInvitationHistory]:
    # Unflushed entries have no id yet and sort after persisted ones with the same timestamp.
    return sorted(
        invitation.history,
        key=lambda h: (h.timestamp, h.history_id if h.history_id is not None else float("inf")),
    )


def latest_proposal(invitation: CdInvitation) -> CdInvitationHistory | None:
    for entry in reversed(ordered_history(invitation)):
        if entry.action in _PROPOSAL_ACTIONS:
            return entry
    return None
