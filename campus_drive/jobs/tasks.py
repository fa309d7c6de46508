from __future__ import annotations

import logging
from datetime import datetime

from campus_drive.db.session import SessionLocal
from campus_drive.services.event_bus import publish_event
from campus_drive.services.expiry import sweep_expired_invitations
from campus_drive.services.storage_retry import TransactionRunner

logger = logging.getLogger("cd.jobs")


async def run_invitation_expiry_sweep(now: datetime | None = None) -> list[int]:
    runner = TransactionRunner(SessionLocal)
    expired_ids = await runner.run(lambda session: sweep_expired_invitations(session, now=now))
    # Notifications go out only for rows the committed sweep actually expired.
    for invitation_id in expired_ids:
        await publish_event("invitation_expired", invitation_id=invitation_id)
    logger.info("expiry_sweep_finished", extra={"expired": len(expired_ids)})
    return expired_ids
