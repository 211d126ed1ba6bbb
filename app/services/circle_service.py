"""Circle registry: creation, lookup, discovery and gating-rule management."""

from __future__ import annotations

import logging
import re
from typing import Any

from app.schemas.common import ActivityType, Capability, Category, Role, Visibility
from app.schemas.gating import GatingRuleCreate, rule_columns
from app.services.activity_service import activity_row
from app.services.leaderboard_service import zero_entry
from app.services.membership_service import membership_row
from app.services.permissions import RoleCapabilityTable, default_role_rows
from app.services.store import (
    ACTIVITY,
    CIRCLES,
    GATING_RULES,
    LEADERBOARD,
    MEMBERS,
    ROLE_PERMISSIONS,
    CircleStore,
    new_id,
)
from app.utils.errors import ConflictError, InvalidInputError, NotFoundError
from app.utils.time import now_utc

logger = logging.getLogger(__name__)

_NON_SLUG = re.compile(r"[^a-z0-9]+")
_RULE_PARAM_COLUMNS = (
    "badge_id",
    "nft_contract",
    "min_follower_count",
    "min_badge_points",
    "token_address",
    "min_token_balance",
)


def slugify(name: str) -> str:
    """Derive the lower-kebab slug used as a circle's unique handle."""
    slug = _NON_SLUG.sub("-", name.strip().lower()).strip("-")
    if not slug:
        raise InvalidInputError("Circle name must contain letters or digits")
    return slug


class CircleService:
    """Circle creation, lookup, search and gating rules."""

    def __init__(self, store: CircleStore) -> None:
        self.store = store
        self.permissions = RoleCapabilityTable(store)

    def create(
        self,
        creator: str,
        name: str,
        description: str | None = None,
        category: Category = Category.GENERAL,
        visibility: Visibility = Visibility.PUBLIC,
        image_url: str | None = None,
        banner_url: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Create a circle with its role table, creator admin membership and leaderboard seed.

        All rows are written in a single store transaction.
        """
        name = name.strip()
        if not name:
            raise InvalidInputError("Circle name is required")
        slug = slugify(name)
        circle_id = new_id()
        created_at = now_utc().isoformat()

        circle = {
            "id": circle_id,
            "name": name,
            "slug": slug,
            "description": description,
            "image_url": image_url,
            "banner_url": banner_url,
            "creator_address": creator,
            "category": Category(category).value,
            "visibility": Visibility(visibility).value,
            "member_count": 1,
            "metadata": metadata or {},
            "created_at": created_at,
            "updated_at": created_at,
        }
        children = {
            ROLE_PERMISSIONS: default_role_rows(circle_id),
            MEMBERS: [membership_row(circle_id, creator, Role.ADMIN, joined_at=created_at)],
            LEADERBOARD: [zero_entry(circle_id, creator)],
            ACTIVITY: [activity_row(circle_id, creator, ActivityType.JOINED, f"Created {name}")],
        }
        try:
            created = self.store.insert_with_children(CIRCLES, circle, children)
        except ConflictError as exc:
            raise ConflictError(
                f"A circle with the handle '{slug}' already exists", code="SLUG_TAKEN"
            ) from exc

        logger.info("Circle %s (%s) created by %s", circle_id, slug, creator)
        return created

    def get(self, circle_id: str) -> dict[str, Any]:
        return self.store.select_one(CIRCLES, {"id": circle_id}, not_found_label="Circle")

    def get_by_slug(self, slug: str) -> dict[str, Any]:
        return self.store.select_one(CIRCLES, {"slug": slug}, not_found_label="Circle")

    def list_public(self, limit: int = 50, offset: int = 0) -> list[dict[str, Any]]:
        """Return public circles, newest first."""
        return self.store.select_many(
            CIRCLES,
            filters={"visibility": Visibility.PUBLIC.value},
            order_by="created_at",
            descending=True,
            limit=limit,
            offset=offset,
        )

    def list_by_creator(self, creator: str) -> list[dict[str, Any]]:
        return self.store.select_many(
            CIRCLES,
            filters={"creator_address": creator},
            order_by="created_at",
            descending=True,
        )

    def list_for_member(self, identity: str) -> list[dict[str, Any]]:
        """Return the circles ``identity`` is an active member of, latest joined first."""
        memberships = self.store.select_many(
            MEMBERS,
            filters={"member_address": identity, "is_active": True},
            columns="circle_id,joined_at",
            order_by="joined_at",
            descending=True,
        )
        circle_ids = [str(row["circle_id"]) for row in memberships]
        if not circle_ids:
            return []
        circles = {
            str(row["id"]): row
            for row in self.store.select_many(CIRCLES, in_filters={"id": circle_ids})
        }
        return [circles[circle_id] for circle_id in circle_ids if circle_id in circles]

    def search(self, query: str, limit: int = 20) -> list[dict[str, Any]]:
        """Search public circles by name or description."""
        return self.store.search(
            CIRCLES,
            columns=("name", "description"),
            term=query,
            filters={"visibility": Visibility.PUBLIC.value},
            limit=limit,
        )

    def role_permissions(self, circle_id: str) -> list[dict[str, Any]]:
        self.get(circle_id)
        return self.permissions.table(circle_id)

    def add_gating_rule(
        self, acting: str, circle_id: str, rule: GatingRuleCreate
    ) -> dict[str, Any]:
        """Attach a validated gating rule; requires ``can_manage_roles``."""
        self.get(circle_id)
        self.permissions.ensure_capability(acting, circle_id, Capability.MANAGE_ROLES)
        row: dict[str, Any] = {column: None for column in _RULE_PARAM_COLUMNS}
        row.update(rule_columns(rule))
        row.update(
            {
                "id": new_id(),
                "circle_id": circle_id,
                "is_active": True,
                "created_at": now_utc().isoformat(),
            }
        )
        created = self.store.insert_one(GATING_RULES, row)
        logger.info("Gating rule %s (%s) added to circle %s", created["id"], row["rule_type"], circle_id)
        return created

    def list_gating_rules(self, circle_id: str) -> list[dict[str, Any]]:
        self.get(circle_id)
        return self.store.select_many(
            GATING_RULES,
            filters={"circle_id": circle_id, "is_active": True},
            order_by="created_at",
        )

    def remove_gating_rule(self, acting: str, circle_id: str, rule_id: str) -> dict[str, Any]:
        """Deactivate a gating rule; requires ``can_manage_roles``."""
        self.get(circle_id)
        self.permissions.ensure_capability(acting, circle_id, Capability.MANAGE_ROLES)
        rows = self.store.update(
            GATING_RULES,
            {"id": rule_id, "circle_id": circle_id, "is_active": True},
            {"is_active": False},
        )
        if not rows:
            raise NotFoundError("Gating rule")
        return rows[0]
