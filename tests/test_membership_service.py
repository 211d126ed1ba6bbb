"""Membership lifecycle tests."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Any

import pytest

from app.schemas.common import ActivityType, Role
from app.services.activity_service import ActivityService
from app.services.circle_service import CircleService
from app.services.content_service import ContentService
from app.services.leaderboard_service import LeaderboardService
from app.services.membership_service import MembershipService
from app.services.memory_store import InMemoryStore
from app.services.store import LEADERBOARD
from app.utils.errors import ForbiddenError, NotFoundError, UnavailableError

ALICE = "0xa11ce"


def test_join_is_idempotent(
    membership: MembershipService, circles: CircleService, circle: dict[str, Any]
) -> None:
    """Joining twice keeps one membership and counts it once."""
    _, created = membership.join(ALICE, circle["id"])
    _, created_again = membership.join(ALICE, circle["id"])

    assert created is True
    assert created_again is False
    assert circles.get(circle["id"])["member_count"] == 2


def test_concurrent_joins_count_once(
    membership: MembershipService, circles: CircleService, circle: dict[str, Any]
) -> None:
    """Racing joins for one identity create exactly one membership."""
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: membership.join(ALICE, circle["id"]), range(16)))

    assert sum(1 for _, created in results if created) == 1
    assert circles.get(circle["id"])["member_count"] == 2
    assert len(membership.list_members(circle["id"])) == 2


def test_join_missing_circle(membership: MembershipService) -> None:
    with pytest.raises(NotFoundError):
        membership.join(ALICE, "missing")


def test_leave_and_rejoin_keeps_leaderboard_history(
    membership: MembershipService,
    content: ContentService,
    leaderboard: LeaderboardService,
    circles: CircleService,
    circle: dict[str, Any],
) -> None:
    """Points earned before leaving are still there after re-joining."""
    membership.join(ALICE, circle["id"])
    content.create_post(circle["id"], ALICE, "first")
    content.create_post(circle["id"], ALICE, "second")

    membership.leave(ALICE, circle["id"])
    assert circles.get(circle["id"])["member_count"] == 1
    with pytest.raises(NotFoundError):
        leaderboard.get_rank(circle["id"], ALICE)

    membership.join(ALICE, circle["id"])
    entry = leaderboard.get_rank(circle["id"], ALICE)
    assert entry["points"] == 20
    assert entry["posts_count"] == 2


def test_leave_requires_membership(membership: MembershipService, circle: dict[str, Any]) -> None:
    with pytest.raises(NotFoundError):
        membership.leave(ALICE, circle["id"])


def test_creator_cannot_leave(
    membership: MembershipService, circle: dict[str, Any], creator: str
) -> None:
    with pytest.raises(ForbiddenError) as exc_info:
        membership.leave(creator, circle["id"])
    assert exc_info.value.code == "CREATOR_CANNOT_LEAVE"


def test_assign_role_changes_capabilities(
    membership: MembershipService,
    content: ContentService,
    circle: dict[str, Any],
    creator: str,
) -> None:
    """Demoting a member to viewer removes their ability to post."""
    membership.join(ALICE, circle["id"])
    updated = membership.assign_role(creator, ALICE, circle["id"], Role.VIEWER)
    assert updated["role"] == "viewer"

    with pytest.raises(ForbiddenError) as exc_info:
        content.create_post(circle["id"], ALICE, "hello")
    assert exc_info.value.code == "CAPABILITY_MISSING"


def test_assign_role_requires_manage_roles(
    membership: MembershipService, circle: dict[str, Any], creator: str
) -> None:
    membership.join(ALICE, circle["id"])
    with pytest.raises(ForbiddenError):
        membership.assign_role(ALICE, creator, circle["id"], Role.VIEWER)


def test_creator_role_is_locked(
    membership: MembershipService, circle: dict[str, Any], creator: str
) -> None:
    with pytest.raises(ForbiddenError) as exc_info:
        membership.assign_role(creator, creator, circle["id"], Role.MEMBER)
    assert exc_info.value.code == "CREATOR_ROLE_LOCKED"


def test_assign_role_to_non_member(
    membership: MembershipService, circle: dict[str, Any], creator: str
) -> None:
    with pytest.raises(NotFoundError):
        membership.assign_role(creator, ALICE, circle["id"], Role.MODERATOR)


def test_membership_events_are_logged_in_order(
    store: InMemoryStore, membership: MembershipService, circle: dict[str, Any], creator: str
) -> None:
    membership.join(ALICE, circle["id"])
    membership.assign_role(creator, ALICE, circle["id"], Role.MODERATOR)
    membership.leave(ALICE, circle["id"])

    history = ActivityService(store).list_for_member(circle["id"], ALICE)
    assert [row["type"] for row in history] == [
        ActivityType.JOINED,
        ActivityType.ROLE_CHANGED,
        ActivityType.LEFT,
    ]


def test_failed_join_writes_nothing_and_retry_completes(
    store: InMemoryStore,
    fail_once,
    membership: MembershipService,
    leaderboard: LeaderboardService,
    circles: CircleService,
    circle: dict[str, Any],
) -> None:
    """A join interrupted by the store leaves no half-applied membership."""
    fail_once(store, "insert_with_children")
    with pytest.raises(UnavailableError):
        membership.join(ALICE, circle["id"])

    assert not membership.is_member(ALICE, circle["id"])
    assert circles.get(circle["id"])["member_count"] == 1
    assert ActivityService(store).list_for_member(circle["id"], ALICE) == []

    _, created = membership.join(ALICE, circle["id"])
    assert created is True
    assert circles.get(circle["id"])["member_count"] == 2
    history = ActivityService(store).list_for_member(circle["id"], ALICE)
    assert [row["type"] for row in history] == [ActivityType.JOINED]
    assert leaderboard.get_rank(circle["id"], ALICE)["points"] == 0


def test_join_retry_restores_missing_leaderboard_entry(
    store: InMemoryStore,
    fail_once,
    membership: MembershipService,
    leaderboard: LeaderboardService,
    circles: CircleService,
    circle: dict[str, Any],
) -> None:
    """A retried join finishes the leaderboard entry without counting twice."""
    fail_once(store, "insert_if_absent", lambda table, *args, **kwargs: table == LEADERBOARD)
    with pytest.raises(UnavailableError):
        membership.join(ALICE, circle["id"])
    assert membership.is_member(ALICE, circle["id"])

    _, created = membership.join(ALICE, circle["id"])
    assert created is False
    assert circles.get(circle["id"])["member_count"] == 2
    assert leaderboard.get_rank(circle["id"], ALICE)["rank"] == 2
    history = ActivityService(store).list_for_member(circle["id"], ALICE)
    assert [row["type"] for row in history] == [ActivityType.JOINED]


def test_failed_leave_can_be_retried(
    store: InMemoryStore,
    fail_once,
    membership: MembershipService,
    circles: CircleService,
    circle: dict[str, Any],
) -> None:
    """A leave interrupted by the store is applied in full by the retry."""
    membership.join(ALICE, circle["id"])
    fail_once(store, "delete_with_children")
    with pytest.raises(UnavailableError):
        membership.leave(ALICE, circle["id"])
    assert membership.is_member(ALICE, circle["id"])
    assert circles.get(circle["id"])["member_count"] == 2

    membership.leave(ALICE, circle["id"])
    assert circles.get(circle["id"])["member_count"] == 1
    history = ActivityService(store).list_for_member(circle["id"], ALICE)
    assert [row["type"] for row in history] == [ActivityType.JOINED, ActivityType.LEFT]
