"""Activity feed endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_current_address, get_store
from app.services.activity_service import ActivityService
from app.services.circle_service import CircleService
from app.services.store import CircleStore

router = APIRouter()


@router.get("")
def get_activity(
    circle_id: str,
    member: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    _: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
) -> dict:
    """Return circle activity, newest first, or one member's history in commit order."""
    CircleService(store).get(circle_id)
    service = ActivityService(store)
    if member:
        return {"activity": service.list_for_member(circle_id, member.strip().lower(), limit=limit)}
    return {"activity": service.list_for_circle(circle_id, limit=limit, offset=offset)}
