"""Append-only circle activity log."""

from __future__ import annotations

from typing import Any

from app.schemas.common import ActivityType
from app.services.store import ACTIVITY, CircleStore, new_id
from app.utils.time import now_utc


def activity_row(
    circle_id: str,
    user_address: str,
    activity_type: ActivityType,
    title: str,
    description: str | None = None,
    content_id: str | None = None,
    content_type: str | None = None,
) -> dict[str, Any]:
    """Build an activity row for ``record`` or for a transactional child write."""
    return {
        "id": new_id(),
        "circle_id": circle_id,
        "user_address": user_address,
        "type": activity_type.value,
        "title": title,
        "description": description,
        "content_id": content_id,
        "content_type": content_type,
        "created_at": now_utc().isoformat(),
    }


class ActivityService:
    """Record and read membership and content events for a circle."""

    def __init__(self, store: CircleStore) -> None:
        self.store = store

    def record(
        self,
        circle_id: str,
        user_address: str,
        activity_type: ActivityType,
        title: str,
        description: str | None = None,
        content_id: str | None = None,
        content_type: str | None = None,
    ) -> dict[str, Any]:
        """Append one activity row."""
        return self.store.insert_one(
            ACTIVITY,
            activity_row(
                circle_id,
                user_address,
                activity_type,
                title,
                description=description,
                content_id=content_id,
                content_type=content_type,
            ),
        )

    def list_for_circle(
        self, circle_id: str, limit: int = 50, offset: int = 0
    ) -> list[dict[str, Any]]:
        """Return circle activity, newest first."""
        return self.store.select_many(
            ACTIVITY,
            filters={"circle_id": circle_id},
            order_by="created_at",
            descending=True,
            limit=limit,
            offset=offset,
        )

    def list_for_member(
        self, circle_id: str, user_address: str, limit: int = 50
    ) -> list[dict[str, Any]]:
        """Return one member's activity in a circle in the order it was committed."""
        return self.store.select_many(
            ACTIVITY,
            filters={"circle_id": circle_id, "user_address": user_address},
            order_by="created_at",
            limit=limit,
        )
