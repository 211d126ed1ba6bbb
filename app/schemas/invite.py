"""Invite schemas."""

from pydantic import BaseModel, Field


class InviteCreateRequest(BaseModel):
    """Request body for creating an invite.

    ``invited_address`` reserves the invite for one address; omit it for an
    open invite anyone holding the code can redeem.
    """

    invited_address: str | None = Field(None, min_length=1, max_length=128)
    expires_in_days: int | None = Field(None, ge=1, le=365)


class InviteRedeemRequest(BaseModel):
    """Request body for redeeming one invite code."""

    invite_code: str = Field(..., min_length=4, max_length=128)


class InviteRedeemResponse(BaseModel):
    """Result of redeeming an invite code."""

    circle_id: str
    joined: bool = True
