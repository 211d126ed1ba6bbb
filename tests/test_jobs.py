"""Periodic maintenance job tests."""

from __future__ import annotations

from typing import Any

from app.jobs.leaderboard_refresh import refresh_leaderboards
from app.jobs.member_counts import reconcile_member_counts
from app.jobs.scheduler import register_jobs, scheduler
from app.services.circle_service import CircleService
from app.services.content_service import ContentService
from app.services.membership_service import MembershipService
from app.services.memory_store import InMemoryStore
from app.services.store import CIRCLES, LEADERBOARD


def test_reconcile_member_counts_fixes_drift(
    store: InMemoryStore, membership: MembershipService, circles: CircleService, circle: dict[str, Any]
) -> None:
    membership.join("0xa11ce", circle["id"])
    store.update(CIRCLES, {"id": circle["id"]}, {"member_count": 7})

    assert reconcile_member_counts(store) == 1
    assert circles.get(circle["id"])["member_count"] == 2
    assert reconcile_member_counts(store) == 0


def test_refresh_leaderboards_covers_every_circle(
    store: InMemoryStore,
    circles: CircleService,
    content: ContentService,
    circle: dict[str, Any],
    creator: str,
) -> None:
    other = circles.create(creator=creator, name="Second Circle")
    content.create_post(other["id"], creator, "gm")
    store.update(LEADERBOARD, {"member_address": creator}, {"points": 0})

    assert refresh_leaderboards(store) == 2
    entry = store.select_one(LEADERBOARD, {"circle_id": other["id"], "member_address": creator})
    assert entry["points"] == 10


def test_register_jobs_is_idempotent() -> None:
    register_jobs()
    register_jobs()
    assert {job.id for job in scheduler.get_jobs()} == {"member_count_reconcile", "leaderboard_refresh"}
