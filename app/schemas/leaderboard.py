"""Leaderboard schemas."""

from datetime import datetime

from pydantic import BaseModel


class LeaderboardEntryResponse(BaseModel):
    """Single ranked entry in a circle leaderboard."""

    circle_id: str
    member_address: str
    points: int
    posts_count: int
    comments_count: int
    likes_received: int
    rank: int
    joined_at: datetime
    last_updated: datetime | None = None
