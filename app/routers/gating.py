"""Gating rule endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from app.dependencies import get_current_address, get_store
from app.schemas.gating import parse_rule
from app.services.circle_service import CircleService
from app.services.store import CircleStore

router = APIRouter()


@router.get("")
def list_rules(
    circle_id: str,
    _: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
) -> dict:
    return {"rules": CircleService(store).list_gating_rules(circle_id)}


@router.post("")
def add_rule(
    circle_id: str,
    payload: dict[str, Any] = Body(...),
    address: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
) -> dict:
    """Attach a gating rule. The body is validated against its ``rule_type``."""
    rule = parse_rule(payload)
    created = CircleService(store).add_gating_rule(address, circle_id, rule)
    return {"rule": created}


@router.delete("/{rule_id}")
def remove_rule(
    circle_id: str,
    rule_id: str,
    address: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
) -> dict:
    removed = CircleService(store).remove_gating_rule(address, circle_id, rule_id)
    return {"rule": removed}
