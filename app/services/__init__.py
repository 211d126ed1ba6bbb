"""Service package exports with lazy loading."""

from __future__ import annotations

from importlib import import_module
from typing import Any

_EXPORTS = {
    "ActivityService": "app.services.activity_service",
    "CircleService": "app.services.circle_service",
    "CircleStore": "app.services.store",
    "ContentService": "app.services.content_service",
    "GatingEngine": "app.services.gating_service",
    "InMemoryStore": "app.services.memory_store",
    "InviteService": "app.services.invite_service",
    "LeaderboardService": "app.services.leaderboard_service",
    "MembershipService": "app.services.membership_service",
    "RoleCapabilityTable": "app.services.permissions",
    "StaticFactProvider": "app.services.facts",
    "SupabaseFactProvider": "app.services.facts",
    "SupabaseStore": "app.services.store",
}

__all__ = sorted(_EXPORTS.keys())


def __getattr__(name: str) -> Any:
    if name not in _EXPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module = import_module(_EXPORTS[name])
    return getattr(module, name)
