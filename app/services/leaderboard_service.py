"""Circle leaderboard: points derived from authored content and likes received."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from app.config import settings
from app.schemas.common import InteractionType
from app.services.store import COMMENTS, INTERACTIONS, LEADERBOARD, MEMBERS, POSTS, CircleStore, new_id
from app.utils.errors import NotFoundError
from app.utils.time import now_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoringWeights:
    """Points awarded per contribution."""

    post: int = 10
    comment: int = 5
    like: int = 2

    @classmethod
    def from_settings(cls) -> ScoringWeights:
        return cls(
            post=settings.points_per_post,
            comment=settings.points_per_comment,
            like=settings.points_per_like,
        )


@dataclass(frozen=True)
class ContributionCounts:
    posts: int = 0
    comments: int = 0
    likes_received: int = 0


def compute_points(counts: ContributionCounts, weights: ScoringWeights) -> int:
    """Score a member from absolute counts, so recomputing never drifts."""
    return (
        counts.posts * weights.post
        + counts.comments * weights.comment
        + counts.likes_received * weights.like
    )


class LeaderboardService:
    """Maintain and rank per-circle leaderboard entries."""

    def __init__(self, store: CircleStore, weights: ScoringWeights | None = None) -> None:
        self.store = store
        self.weights = weights or ScoringWeights.from_settings()

    def counts_for(self, circle_id: str, identity: str) -> ContributionCounts:
        """Count what ``identity`` authored in the circle and the likes it earned."""
        posts = self.store.select_many(
            POSTS,
            filters={"circle_id": circle_id, "author_address": identity},
            columns="id",
        )
        comments = self.store.count(
            COMMENTS, {"circle_id": circle_id, "author_address": identity}
        )
        post_ids = [str(row["id"]) for row in posts]
        likes = (
            self.store.count(
                INTERACTIONS,
                {"interaction_type": InteractionType.LIKE.value},
                in_filters={"post_id": post_ids},
            )
            if post_ids
            else 0
        )
        return ContributionCounts(posts=len(posts), comments=comments, likes_received=likes)

    def ensure_entry(self, circle_id: str, identity: str) -> dict[str, Any]:
        """Seed a zero entry unless one already exists (history survives re-joins)."""
        entry, _ = self.store.insert_if_absent(
            LEADERBOARD,
            zero_entry(circle_id, identity),
            unique_on=("circle_id", "member_address"),
        )
        return entry

    def recompute_points(self, circle_id: str, identity: str) -> dict[str, Any]:
        """Recalculate one member's entry from current counts and store it."""
        counts = self.counts_for(circle_id, identity)
        return self.store.upsert(
            LEADERBOARD,
            {
                "circle_id": circle_id,
                "member_address": identity,
                "points": compute_points(counts, self.weights),
                "posts_count": counts.posts,
                "comments_count": counts.comments,
                "likes_received": counts.likes_received,
                "last_updated": now_utc().isoformat(),
            },
            on_conflict=("circle_id", "member_address"),
        )

    def _ranked(self, circle_id: str) -> list[dict[str, Any]]:
        members = self.store.select_many(
            MEMBERS,
            filters={"circle_id": circle_id, "is_active": True},
            columns="member_address,joined_at",
        )
        joined_at = {str(row["member_address"]): str(row["joined_at"]) for row in members}
        entries = [
            dict(entry)
            for entry in self.store.select_many(LEADERBOARD, filters={"circle_id": circle_id})
            if str(entry["member_address"]) in joined_at
        ]
        entries.sort(
            key=lambda row: (-int(row["points"]), joined_at[str(row["member_address"])])
        )
        for index, entry in enumerate(entries, start=1):
            entry["rank"] = index
            entry["joined_at"] = joined_at[str(entry["member_address"])]
        return entries

    def get_leaderboard(self, circle_id: str, limit: int = 50) -> list[dict[str, Any]]:
        """Return current members ordered by points, earliest joiner first on ties."""
        return self._ranked(circle_id)[:limit]

    def get_rank(self, circle_id: str, identity: str) -> dict[str, Any]:
        """Return one member's entry with its 1-based rank."""
        for entry in self._ranked(circle_id):
            if entry["member_address"] == identity:
                return entry
        raise NotFoundError("Leaderboard entry")

    def refresh_circle(self, circle_id: str) -> int:
        """Recompute every active member of a circle and return how many were updated."""
        members = self.store.select_many(
            MEMBERS,
            filters={"circle_id": circle_id, "is_active": True},
            columns="member_address",
        )
        for member in members:
            self.recompute_points(circle_id, str(member["member_address"]))
        logger.debug("Refreshed %s leaderboard entries for circle %s", len(members), circle_id)
        return len(members)


def zero_entry(circle_id: str, identity: str) -> dict[str, Any]:
    """Build an empty leaderboard row."""
    return {
        "id": new_id(),
        "circle_id": circle_id,
        "member_address": identity,
        "points": 0,
        "posts_count": 0,
        "comments_count": 0,
        "likes_received": 0,
        "last_updated": now_utc().isoformat(),
    }
