"""APScheduler setup and job registration."""

from __future__ import annotations

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from app.config import settings
from app.jobs.leaderboard_refresh import leaderboard_refresh
from app.jobs.member_counts import member_count_reconcile

scheduler = AsyncIOScheduler(timezone=settings.timezone)


def register_jobs() -> None:
    """Register all periodic jobs if not already present."""
    if scheduler.get_job("member_count_reconcile") is None:
        scheduler.add_job(
            member_count_reconcile,
            CronTrigger(
                minute=f"*/{settings.member_count_reconcile_minutes}",
                timezone=settings.timezone,
            ),
            id="member_count_reconcile",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    if scheduler.get_job("leaderboard_refresh") is None:
        scheduler.add_job(
            leaderboard_refresh,
            CronTrigger(hour=settings.leaderboard_refresh_hour, minute=0, timezone=settings.timezone),
            id="leaderboard_refresh",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
