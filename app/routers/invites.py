"""Invite endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.dependencies import get_current_address, get_fact_provider, get_store
from app.schemas.invite import InviteCreateRequest, InviteRedeemRequest, InviteRedeemResponse
from app.services.facts import FactProvider
from app.services.invite_service import InviteService
from app.services.store import CircleStore

router = APIRouter()


@router.post("/circles/{circle_id}/invites")
def create_invite(
    circle_id: str,
    payload: InviteCreateRequest,
    address: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
    facts: FactProvider = Depends(get_fact_provider),
) -> dict:
    """Create an invite. Requires ``can_invite``."""
    invite = InviteService(store, facts).create_invite(
        circle_id=circle_id,
        invited_by=address,
        invited_address=payload.invited_address,
        expires_in_days=payload.expires_in_days,
    )
    return {"invite": invite}


@router.get("/circles/{circle_id}/invites")
def list_invites(
    circle_id: str,
    address: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
    facts: FactProvider = Depends(get_fact_provider),
) -> dict:
    return {"invites": InviteService(store, facts).list_invites(address, circle_id)}


@router.post("/invites/redeem", response_model=InviteRedeemResponse)
def redeem_invite(
    payload: InviteRedeemRequest,
    address: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
    facts: FactProvider = Depends(get_fact_provider),
) -> InviteRedeemResponse:
    """Redeem a single-use invite and join its circle."""
    circle_id = InviteService(store, facts).redeem_invite(payload.invite_code, address)
    return InviteRedeemResponse(circle_id=circle_id)
