"""Periodic reconciliation of the cached circle member_count."""

from __future__ import annotations

import logging

from app.dependencies import get_store
from app.services.store import CIRCLES, MEMBERS, CircleStore

logger = logging.getLogger(__name__)


def reconcile_member_counts(store: CircleStore) -> int:
    """Reset each circle's member_count to its active membership count.

    The write is conditioned on the value read, so a join or leave landing
    in between is left for the next run. Returns how many circles changed.
    """
    corrected = 0
    for circle in store.select_many(CIRCLES, columns="id,member_count"):
        actual = store.count(MEMBERS, {"circle_id": circle["id"], "is_active": True})
        if int(circle["member_count"] or 0) == actual:
            continue
        rows = store.update(
            CIRCLES,
            {"id": circle["id"], "member_count": circle["member_count"]},
            {"member_count": actual},
        )
        if rows:
            corrected += 1
            logger.warning(
                "Circle %s member_count drifted from %s to %s",
                circle["id"],
                circle["member_count"],
                actual,
            )
    return corrected


async def member_count_reconcile() -> None:
    """Scheduled entrypoint."""
    corrected = reconcile_member_counts(get_store())
    logger.info("member_count_reconcile completed, %s circles corrected", corrected)
