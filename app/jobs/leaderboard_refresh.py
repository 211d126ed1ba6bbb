"""Daily full leaderboard recomputation."""

from __future__ import annotations

import logging

from app.dependencies import get_store
from app.services.leaderboard_service import LeaderboardService
from app.services.store import CIRCLES, CircleStore

logger = logging.getLogger(__name__)


def refresh_leaderboards(store: CircleStore) -> int:
    """Recompute every active member's entry in every circle."""
    service = LeaderboardService(store)
    refreshed = 0
    for circle in store.select_many(CIRCLES, columns="id"):
        refreshed += service.refresh_circle(str(circle["id"]))
    return refreshed


async def leaderboard_refresh() -> None:
    """Scheduled entrypoint."""
    refreshed = refresh_leaderboards(get_store())
    logger.info("leaderboard_refresh completed for %s entries", refreshed)
