"""Background job modules for periodic circle maintenance."""

from app.jobs.leaderboard_refresh import leaderboard_refresh
from app.jobs.member_counts import member_count_reconcile

__all__ = [
    "leaderboard_refresh",
    "member_count_reconcile",
]
