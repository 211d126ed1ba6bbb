"""Role capability table for circles."""

from __future__ import annotations

from typing import Any

from app.schemas.common import Capability, Role
from app.services.store import MEMBERS, ROLE_PERMISSIONS, CircleStore, new_id
from app.utils.errors import ForbiddenError

ROLE_PRIORITY = {Role.ADMIN: 0, Role.MODERATOR: 1, Role.MEMBER: 2, Role.VIEWER: 3}

DEFAULT_ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.ADMIN: frozenset(Capability),
    Role.MODERATOR: frozenset(
        {
            Capability.POST,
            Capability.COMMENT,
            Capability.INVITE,
            Capability.MODERATE,
            Capability.VOTE,
        }
    ),
    Role.MEMBER: frozenset({Capability.POST, Capability.COMMENT, Capability.VOTE}),
    Role.VIEWER: frozenset(),
}

_ACTION_LABELS = {
    Capability.POST: "post",
    Capability.COMMENT: "comment or react",
    Capability.INVITE: "invite members",
    Capability.MODERATE: "moderate content",
    Capability.MANAGE_TREASURY: "manage the treasury",
    Capability.CREATE_PROPOSAL: "create proposals",
    Capability.VOTE: "vote",
    Capability.MANAGE_ROLES: "manage roles",
}


def default_role_rows(circle_id: str) -> list[dict[str, Any]]:
    """Build the four permission rows every new circle is seeded with."""
    rows = []
    for role, granted in DEFAULT_ROLE_CAPABILITIES.items():
        row: dict[str, Any] = {"id": new_id(), "circle_id": circle_id, "role": role.value}
        row.update({capability.value: capability in granted for capability in Capability})
        rows.append(row)
    return rows


class RoleCapabilityTable:
    """Resolve (circle, role) capability bits and a caller's role in a circle."""

    def __init__(self, store: CircleStore) -> None:
        self.store = store

    def get_member_role(self, identity: str, circle_id: str) -> Role | None:
        """Return the caller's active role in the circle, or None."""
        rows = self.store.select_many(
            MEMBERS,
            filters={"circle_id": circle_id, "member_address": identity, "is_active": True},
            columns="role",
            limit=1,
        )
        return Role(rows[0]["role"]) if rows else None

    def capabilities_for_role(self, circle_id: str, role: Role) -> dict[Capability, bool]:
        """Return the capability bits seeded for ``role``; unknown rows grant nothing."""
        rows = self.store.select_many(
            ROLE_PERMISSIONS,
            filters={"circle_id": circle_id, "role": role.value},
            limit=1,
        )
        row = rows[0] if rows else {}
        return {capability: bool(row.get(capability.value)) for capability in Capability}

    def table(self, circle_id: str) -> list[dict[str, Any]]:
        """Return every role row of a circle, most privileged first."""
        rows = self.store.select_many(ROLE_PERMISSIONS, filters={"circle_id": circle_id})
        return sorted(rows, key=lambda row: ROLE_PRIORITY.get(Role(row["role"]), 99))

    def has_capability(self, identity: str, circle_id: str, capability: Capability) -> bool:
        role = self.get_member_role(identity, circle_id)
        if role is None:
            return False
        return self.capabilities_for_role(circle_id, role)[capability]

    def ensure_capability(self, identity: str, circle_id: str, capability: Capability) -> Role:
        """Raise ForbiddenError unless the caller's role grants ``capability``."""
        role = self.get_member_role(identity, circle_id)
        if role is None:
            raise ForbiddenError("You are not a member of this circle", code="NOT_A_MEMBER")
        if not self.capabilities_for_role(circle_id, role)[capability]:
            raise ForbiddenError(
                f"Your role ({role.value}) cannot {_ACTION_LABELS[capability]} in this circle",
                code="CAPABILITY_MISSING",
            )
        return role
