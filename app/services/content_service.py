"""Posts, comments and post interactions inside a circle."""

from __future__ import annotations

import logging
from typing import Any

from app.schemas.common import ActivityType, Capability, InteractionType
from app.services.activity_service import activity_row
from app.services.leaderboard_service import LeaderboardService
from app.services.permissions import RoleCapabilityTable
from app.services.store import (
    ACTIVITY,
    CIRCLES,
    COMMENTS,
    INTERACTIONS,
    POSTS,
    CircleStore,
    new_id,
)
from app.utils.errors import ConflictError, InvalidInputError
from app.utils.time import now_utc

logger = logging.getLogger(__name__)

_COUNTER_FOR_INTERACTION = {
    InteractionType.LIKE: "like_count",
    InteractionType.SHARE: "share_count",
}


def _clean(content: str | None, field: str) -> str:
    text = (content or "").strip()
    if not text:
        raise InvalidInputError(f"{field} is required")
    return text


class ContentService:
    """Capability-checked content writes that feed the activity log and leaderboard."""

    def __init__(self, store: CircleStore) -> None:
        self.store = store
        self.permissions = RoleCapabilityTable(store)
        self.leaderboard = LeaderboardService(store)

    def get_post(self, post_id: str) -> dict[str, Any]:
        return self.store.select_one(POSTS, {"id": post_id}, not_found_label="Post")

    def create_post(
        self,
        circle_id: str,
        author: str,
        content: str,
        title: str | None = None,
        media_urls: list[str] | None = None,
        is_pinned: bool = False,
    ) -> dict[str, Any]:
        """Create a post; requires ``can_post`` and ``can_moderate`` to pin."""
        self.store.select_one(CIRCLES, {"id": circle_id}, not_found_label="Circle")
        self.permissions.ensure_capability(author, circle_id, Capability.POST)
        body = _clean(content, "Post content")
        if is_pinned:
            self.permissions.ensure_capability(author, circle_id, Capability.MODERATE)

        created_at = now_utc().isoformat()
        post_id = new_id()
        post = self.store.insert_with_children(
            POSTS,
            {
                "id": post_id,
                "circle_id": circle_id,
                "author_address": author,
                "title": title.strip() if title else None,
                "content": body,
                "media_urls": media_urls or [],
                "is_pinned": is_pinned,
                "like_count": 0,
                "comment_count": 0,
                "share_count": 0,
                "created_at": created_at,
                "updated_at": created_at,
            },
            {
                ACTIVITY: [
                    activity_row(
                        circle_id,
                        author,
                        ActivityType.POSTED,
                        title or "New post",
                        description=body[:140],
                        content_id=post_id,
                        content_type="post",
                    )
                ]
            },
        )
        self.leaderboard.recompute_points(circle_id, author)
        logger.info("Post %s created in circle %s by %s", post["id"], circle_id, author)
        return post

    def list_posts(
        self, circle_id: str, limit: int = 20, offset: int = 0
    ) -> list[dict[str, Any]]:
        """Return a circle's feed: pinned posts first, then newest first."""
        self.store.select_one(CIRCLES, {"id": circle_id}, not_found_label="Circle")
        return self.store.select_many(
            POSTS,
            filters={"circle_id": circle_id},
            order_by="is_pinned",
            descending=True,
            then_by=(("created_at", True),),
            limit=limit,
            offset=offset,
        )

    def pin_post(self, acting: str, post_id: str, pinned: bool = True) -> dict[str, Any]:
        post = self.get_post(post_id)
        self.permissions.ensure_capability(acting, str(post["circle_id"]), Capability.MODERATE)
        rows = self.store.update(
            POSTS,
            {"id": post_id},
            {"is_pinned": pinned, "updated_at": now_utc().isoformat()},
        )
        return rows[0] if rows else post

    def add_comment(
        self,
        post_id: str,
        author: str,
        content: str,
        parent_comment_id: str | None = None,
    ) -> dict[str, Any]:
        """Comment on a post, optionally replying to another comment on the same post."""
        post = self.get_post(post_id)
        circle_id = str(post["circle_id"])
        self.permissions.ensure_capability(author, circle_id, Capability.COMMENT)
        body = _clean(content, "Comment content")
        if parent_comment_id:
            parent = self.store.select_many(
                COMMENTS, filters={"id": parent_comment_id, "post_id": post_id}, limit=1
            )
            if not parent:
                raise InvalidInputError("Parent comment does not belong to this post")

        comment = self.store.insert_with_children(
            COMMENTS,
            {
                "id": new_id(),
                "post_id": post_id,
                "circle_id": circle_id,
                "author_address": author,
                "content": body,
                "parent_comment_id": parent_comment_id,
                "like_count": 0,
                "created_at": now_utc().isoformat(),
            },
            {
                ACTIVITY: [
                    activity_row(
                        circle_id,
                        author,
                        ActivityType.COMMENTED,
                        "Commented on a post",
                        description=body[:140],
                        content_id=post_id,
                        content_type="post",
                    )
                ]
            },
            counters=[(POSTS, post_id, "comment_count", 1)],
        )
        self.leaderboard.recompute_points(circle_id, author)
        return comment

    def list_comments(self, post_id: str, limit: int = 100) -> list[dict[str, Any]]:
        self.get_post(post_id)
        return self.store.select_many(
            COMMENTS,
            filters={"post_id": post_id},
            order_by="created_at",
            limit=limit,
        )

    def interact(
        self, post_id: str, identity: str, interaction_type: InteractionType
    ) -> tuple[dict[str, Any], bool]:
        """Record a like, dislike or share at most once per (post, user, type).

        Returns the interaction row and whether this call recorded it.
        """
        kind = InteractionType(interaction_type)
        post = self.get_post(post_id)
        circle_id = str(post["circle_id"])
        self.permissions.ensure_capability(identity, circle_id, Capability.COMMENT)

        counter = _COUNTER_FOR_INTERACTION.get(kind)
        activity_type = ActivityType.SHARED if kind == InteractionType.SHARE else ActivityType.REACTED
        try:
            row = self.store.insert_with_children(
                INTERACTIONS,
                {
                    "id": new_id(),
                    "post_id": post_id,
                    "user_address": identity,
                    "interaction_type": kind.value,
                    "created_at": now_utc().isoformat(),
                },
                {
                    ACTIVITY: [
                        activity_row(
                            circle_id,
                            identity,
                            activity_type,
                            f"{kind.value.capitalize()}d a post",
                            content_id=post_id,
                            content_type="post",
                        )
                    ]
                },
                counters=[(POSTS, post_id, counter, 1)] if counter else (),
            )
            created = True
        except ConflictError:
            row = self.store.select_one(
                INTERACTIONS,
                {"post_id": post_id, "user_address": identity, "interaction_type": kind.value},
            )
            created = False

        # Points are recomputed from absolute counts, so a repeat finishes an interrupted call.
        self.leaderboard.recompute_points(circle_id, identity)
        author = str(post["author_address"])
        if author != identity:
            self.leaderboard.recompute_points(circle_id, author)
        return row, created
