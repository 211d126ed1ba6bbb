"""Circle schemas."""

from typing import Any

from pydantic import BaseModel, Field

from app.schemas.common import Category, Visibility


class CircleCreate(BaseModel):
    """Request body for creating a circle."""

    name: str = Field(..., min_length=1, max_length=80)
    description: str | None = Field(None, max_length=500)
    category: Category = Category.GENERAL
    visibility: Visibility = Visibility.PUBLIC
    image_url: str | None = None
    banner_url: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
