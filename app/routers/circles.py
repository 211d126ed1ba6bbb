"""Circle endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_current_address, get_fact_provider, get_store
from app.schemas.circle import CircleCreate
from app.schemas.gating import AccessCheckResponse
from app.services.circle_service import CircleService
from app.services.facts import FactProvider
from app.services.gating_service import GatingEngine
from app.services.permissions import RoleCapabilityTable
from app.services.store import CircleStore

router = APIRouter()


@router.post("")
def create_circle(
    payload: CircleCreate,
    address: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
) -> dict:
    """Create a circle owned by the caller."""
    service = CircleService(store)
    circle = service.create(
        creator=address,
        name=payload.name,
        description=payload.description,
        category=payload.category,
        visibility=payload.visibility,
        image_url=payload.image_url,
        banner_url=payload.banner_url,
        metadata=payload.metadata,
    )
    return {"circle": circle}


@router.get("")
def list_circles(
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    _: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
) -> dict:
    """List public circles, newest first."""
    return {"circles": CircleService(store).list_public(limit=limit, offset=offset)}


@router.get("/search")
def search_circles(
    q: str = Query(..., min_length=1, max_length=100),
    limit: int = Query(default=20, ge=1, le=50),
    _: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
) -> dict:
    return {"circles": CircleService(store).search(q, limit=limit)}


@router.get("/mine")
def list_my_circles(
    address: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
) -> dict:
    """List circles the caller is an active member of."""
    return {"circles": CircleService(store).list_for_member(address)}


@router.get("/created")
def list_created_circles(
    creator: str | None = Query(default=None),
    address: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
) -> dict:
    """List circles created by ``creator`` (defaults to the caller)."""
    target = creator.strip().lower() if creator else address
    return {"circles": CircleService(store).list_by_creator(target)}


@router.get("/{circle_id}")
def get_circle(
    circle_id: str,
    _: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
) -> dict:
    return {"circle": CircleService(store).get(circle_id)}


@router.get("/{circle_id}/access", response_model=AccessCheckResponse)
def check_access(
    circle_id: str,
    address: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
    facts: FactProvider = Depends(get_fact_provider),
) -> AccessCheckResponse:
    """Evaluate the circle's gating rules for the caller without joining."""
    decision = GatingEngine(store, facts).check_access(address, circle_id)
    return AccessCheckResponse(
        allowed=decision.allowed,
        basis=decision.basis,
        reasons=decision.reasons,
    )


@router.get("/{circle_id}/permissions")
def get_permissions(
    circle_id: str,
    address: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
) -> dict:
    """Return the circle's role table and the caller's own role and capabilities."""
    roles = CircleService(store).role_permissions(circle_id)
    table = RoleCapabilityTable(store)
    role = table.get_member_role(address, circle_id)
    capabilities = {}
    if role:
        bits = table.capabilities_for_role(circle_id, role)
        capabilities = {capability.value: allowed for capability, allowed in bits.items()}
    return {
        "roles": roles,
        "role": role.value if role else None,
        "capabilities": capabilities,
    }
