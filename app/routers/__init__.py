"""API router package."""

from app.routers import activity, circles, gating, invites, leaderboard, members, posts

__all__ = [
    "activity",
    "circles",
    "gating",
    "invites",
    "leaderboard",
    "members",
    "posts",
]
