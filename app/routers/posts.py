"""Post, comment and interaction endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_current_address, get_store
from app.schemas.content import CommentCreate, InteractionRequest, PinRequest, PostCreate
from app.services.content_service import ContentService
from app.services.store import CircleStore

router = APIRouter()


@router.post("/circles/{circle_id}/posts")
def create_post(
    circle_id: str,
    payload: PostCreate,
    address: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
) -> dict:
    """Create a post. Requires ``can_post``."""
    post = ContentService(store).create_post(
        circle_id=circle_id,
        author=address,
        content=payload.content,
        title=payload.title,
        media_urls=payload.media_urls,
        is_pinned=payload.is_pinned,
    )
    return {"post": post}


@router.get("/circles/{circle_id}/posts")
def list_posts(
    circle_id: str,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    _: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
) -> dict:
    """Return the circle feed, pinned posts first."""
    return {"posts": ContentService(store).list_posts(circle_id, limit=limit, offset=offset)}


@router.get("/posts/{post_id}")
def get_post(
    post_id: str,
    _: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
) -> dict:
    return {"post": ContentService(store).get_post(post_id)}


@router.put("/posts/{post_id}/pin")
def pin_post(
    post_id: str,
    payload: PinRequest,
    address: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
) -> dict:
    """Pin or unpin a post. Requires ``can_moderate``."""
    return {"post": ContentService(store).pin_post(address, post_id, payload.pinned)}


@router.post("/posts/{post_id}/comments")
def add_comment(
    post_id: str,
    payload: CommentCreate,
    address: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
) -> dict:
    comment = ContentService(store).add_comment(
        post_id=post_id,
        author=address,
        content=payload.content,
        parent_comment_id=payload.parent_comment_id,
    )
    return {"comment": comment}


@router.get("/posts/{post_id}/comments")
def list_comments(
    post_id: str,
    _: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
) -> dict:
    return {"comments": ContentService(store).list_comments(post_id)}


@router.post("/posts/{post_id}/interactions")
def interact(
    post_id: str,
    payload: InteractionRequest,
    address: str = Depends(get_current_address),
    store: CircleStore = Depends(get_store),
) -> dict:
    """Like, dislike or share a post. Repeats are no-ops."""
    interaction, created = ContentService(store).interact(post_id, address, payload.interaction_type)
    return {"interaction": interaction, "created": created}
