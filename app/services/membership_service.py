"""Circle membership lifecycle: join, leave and role assignment."""

from __future__ import annotations

import logging
from typing import Any

from app.schemas.common import ActivityType, Capability, Role
from app.services.activity_service import ActivityService, activity_row
from app.services.facts import FactProvider
from app.services.gating_service import GatingEngine
from app.services.leaderboard_service import LeaderboardService
from app.services.permissions import RoleCapabilityTable
from app.services.store import ACTIVITY, CIRCLES, MEMBERS, CircleStore, new_id
from app.utils.errors import ConflictError, ForbiddenError, NotFoundError
from app.utils.time import now_utc

logger = logging.getLogger(__name__)


def membership_row(
    circle_id: str, identity: str, role: Role, joined_at: str | None = None
) -> dict[str, Any]:
    """Build a new active membership row."""
    return {
        "id": new_id(),
        "circle_id": circle_id,
        "member_address": identity,
        "role": role.value,
        "joined_at": joined_at or now_utc().isoformat(),
        "is_active": True,
        "metadata": {},
    }


class MembershipService:
    """Join/leave handling and member_count maintenance."""

    def __init__(self, store: CircleStore, facts: FactProvider) -> None:
        self.store = store
        self.gating = GatingEngine(store, facts)
        self.permissions = RoleCapabilityTable(store)
        self.activity = ActivityService(store)
        self.leaderboard = LeaderboardService(store)

    def _get_circle(self, circle_id: str) -> dict[str, Any]:
        return self.store.select_one(CIRCLES, {"id": circle_id}, not_found_label="Circle")

    def get_membership(self, identity: str, circle_id: str) -> dict[str, Any] | None:
        rows = self.store.select_many(
            MEMBERS,
            filters={"circle_id": circle_id, "member_address": identity, "is_active": True},
            limit=1,
        )
        return rows[0] if rows else None

    def is_member(self, identity: str, circle_id: str) -> bool:
        return self.get_membership(identity, circle_id) is not None

    def join(
        self, identity: str, circle_id: str, *, bypass_gating: bool = False
    ) -> tuple[dict[str, Any], bool]:
        """Join a circle as a member.

        The membership row, the member_count increment and the "joined"
        activity are written in one transaction. Re-joining as an active
        member is a no-op apart from restoring a missing leaderboard entry.
        ``bypass_gating`` is used by invite redemption, which stands in for
        the access check. Returns the membership row and whether this call
        created it.
        """
        circle = self._get_circle(circle_id)
        existing = self.get_membership(identity, circle_id)
        if existing:
            self.leaderboard.ensure_entry(circle_id, identity)
            return existing, False

        if not bypass_gating:
            self.gating.ensure_access(identity, circle)

        # Inactive rows hold no count; clear them so the insert below owns the key.
        self.store.delete(
            MEMBERS, {"circle_id": circle_id, "member_address": identity, "is_active": False}
        )
        row = membership_row(circle_id, identity, Role.MEMBER)
        try:
            row = self.store.insert_with_children(
                MEMBERS,
                row,
                {ACTIVITY: [activity_row(circle_id, identity, ActivityType.JOINED, "Joined circle")]},
                counters=[(CIRCLES, circle_id, "member_count", 1)],
            )
            created = True
            logger.info("%s joined circle %s", identity, circle_id)
        except ConflictError:
            row = self.store.select_one(
                MEMBERS, {"circle_id": circle_id, "member_address": identity}
            )
            created = False

        self.leaderboard.ensure_entry(circle_id, identity)
        return row, created

    def leave(self, identity: str, circle_id: str) -> dict[str, Any]:
        """Leave a circle. Leaderboard history is kept for a later re-join."""
        circle = self._get_circle(circle_id)
        if circle["creator_address"] == identity:
            raise ForbiddenError("The circle creator cannot leave the circle", code="CREATOR_CANNOT_LEAVE")

        removed = self.store.delete_with_children(
            MEMBERS,
            {"circle_id": circle_id, "member_address": identity, "is_active": True},
            {ACTIVITY: [activity_row(circle_id, identity, ActivityType.LEFT, "Left circle")]},
            counters=[(CIRCLES, circle_id, "member_count", -1)],
        )
        if not removed:
            raise NotFoundError("Circle membership")

        logger.info("%s left circle %s", identity, circle_id)
        return removed[0]

    def assign_role(
        self, acting: str, target: str, circle_id: str, new_role: Role
    ) -> dict[str, Any]:
        """Change a member's role; the caller needs ``can_manage_roles``."""
        circle = self._get_circle(circle_id)
        role = Role(new_role)
        self.permissions.ensure_capability(acting, circle_id, Capability.MANAGE_ROLES)

        membership = self.get_membership(target, circle_id)
        if membership is None:
            raise NotFoundError("Circle member")
        if target == circle["creator_address"] and role != Role.ADMIN:
            raise ForbiddenError("The circle creator must remain an admin", code="CREATOR_ROLE_LOCKED")
        if membership["role"] == role.value:
            return membership

        rows = self.store.update(
            MEMBERS,
            {"circle_id": circle_id, "member_address": target, "is_active": True},
            {"role": role.value},
        )
        if not rows:
            raise NotFoundError("Circle member")

        self.activity.record(
            circle_id,
            target,
            ActivityType.ROLE_CHANGED,
            f"Role changed to {role.value}",
            description=f"Changed by {acting}",
        )
        return rows[0]

    def list_members(
        self, circle_id: str, limit: int = 50, offset: int = 0
    ) -> list[dict[str, Any]]:
        """Return active members, most recent joiners first."""
        self._get_circle(circle_id)
        return self.store.select_many(
            MEMBERS,
            filters={"circle_id": circle_id, "is_active": True},
            order_by="joined_at",
            descending=True,
            limit=limit,
            offset=offset,
        )
