"""Membership schemas."""

from pydantic import BaseModel

from app.schemas.common import Role


class RoleAssignRequest(BaseModel):
    """Request body for changing a member's role."""

    role: Role
