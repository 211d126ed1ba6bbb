"""Post, comment and interaction schemas."""

from pydantic import BaseModel, Field

from app.schemas.common import InteractionType


class PostCreate(BaseModel):
    """Request body for creating a post."""

    content: str = Field(..., min_length=1, max_length=10000)
    title: str | None = Field(None, max_length=200)
    media_urls: list[str] = Field(default_factory=list, max_length=10)
    is_pinned: bool = False


class PinRequest(BaseModel):
    pinned: bool = True


class CommentCreate(BaseModel):
    """Request body for commenting on a post."""

    content: str = Field(..., min_length=1, max_length=5000)
    parent_comment_id: str | None = None


class InteractionRequest(BaseModel):
    """Request body for reacting to or sharing a post."""

    interaction_type: InteractionType
