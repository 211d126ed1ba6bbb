"""Membership endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_current_address, get_fact_provider, get_store
from app.schemas.membership import RoleAssignRequest
from app.services.facts import FactProvider
from app.services.membership_service import MembershipService
from app.services.store import CircleStore

router = APIRouter()


@router.post("/join")
def join_circle(
    circle_id: str,
    address: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
    facts: FactProvider = Depends(get_fact_provider),
) -> dict:
    """Join a circle after its gating rules admit the caller."""
    member, created = MembershipService(store, facts).join(address, circle_id)
    return {"member": member, "joined": created}


@router.post("/leave")
def leave_circle(
    circle_id: str,
    address: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
    facts: FactProvider = Depends(get_fact_provider),
) -> dict:
    member = MembershipService(store, facts).leave(address, circle_id)
    return {"member": member, "left": True}


@router.get("")
def list_members(
    circle_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    _: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
    facts: FactProvider = Depends(get_fact_provider),
) -> dict:
    """List active circle members."""
    members = MembershipService(store, facts).list_members(circle_id, limit=limit, offset=offset)
    return {"members": members}


@router.put("/{member_address}/role")
def assign_role(
    circle_id: str,
    member_address: str,
    payload: RoleAssignRequest,
    address: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
    facts: FactProvider = Depends(get_fact_provider),
) -> dict:
    """Change a member's role. Requires ``can_manage_roles``."""
    member = MembershipService(store, facts).assign_role(
        acting=address,
        target=member_address.strip().lower(),
        circle_id=circle_id,
        new_role=payload.role,
    )
    return {"member": member}
