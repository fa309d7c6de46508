from __future__ import annotations

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from campus_drive.core.config import settings
from campus_drive.jobs.tasks import run_invitation_expiry_sweep


def start_scheduler() -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        run_invitation_expiry_sweep,
        IntervalTrigger(minutes=settings.expiry_sweep_minutes),
        id="invitation_expiry_sweep",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    return scheduler
