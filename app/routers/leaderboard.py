"""Leaderboard endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_current_address, get_store
from app.schemas.leaderboard import LeaderboardEntryResponse
from app.services.circle_service import CircleService
from app.services.leaderboard_service import LeaderboardService
from app.services.store import CircleStore

router = APIRouter()


@router.get("")
def get_leaderboard(
    circle_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    _: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
) -> dict:
    """Return the circle's ranked leaderboard."""
    CircleService(store).get(circle_id)
    return {"leaderboard": LeaderboardService(store).get_leaderboard(circle_id, limit=limit)}


@router.get("/{member_address}", response_model=LeaderboardEntryResponse)
def get_rank(
    circle_id: str,
    member_address: str,
    _: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
) -> dict:
    """Return one member's entry with its rank."""
    return LeaderboardService(store).get_rank(circle_id, member_address.strip().lower())
