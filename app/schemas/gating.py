"""Gating rule schemas.

Each rule type is its own model; ``GatingRuleCreate`` is the tagged union
over ``rule_type`` so parameters are validated against the type they belong to.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from app.schemas.common import RuleType
from app.utils.errors import InvalidInputError

EVM_ADDRESS_PATTERN = r"^0x[0-9a-fA-F]{40}$"


class _RuleBase(BaseModel):
    model_config = ConfigDict(extra="forbid")


class BadgeRule(_RuleBase):
    rule_type: Literal["badge"]
    badge_id: str = Field(..., min_length=1)


class NftRule(_RuleBase):
    rule_type: Literal["nft"]
    nft_contract: str = Field(..., pattern=EVM_ADDRESS_PATTERN)


class FollowerCountRule(_RuleBase):
    rule_type: Literal["follower_count"]
    min_follower_count: int = Field(..., ge=0)


class BadgePointsRule(_RuleBase):
    rule_type: Literal["badge_points"]
    min_badge_points: int = Field(..., ge=0)


class TokenBalanceRule(_RuleBase):
    """Token threshold in raw on-chain units, kept as a string to preserve precision."""

    rule_type: Literal["token_balance"]
    token_address: str = Field(..., pattern=EVM_ADDRESS_PATTERN)
    min_token_balance: str = Field(..., pattern=r"^\d+$")

    @field_validator("min_token_balance", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class VerificationRule(_RuleBase):
    rule_type: Literal["verification"]


class InviteOnlyRule(_RuleBase):
    rule_type: Literal["invite_only"]


GatingRuleCreate = Annotated[
    BadgeRule
    | NftRule
    | FollowerCountRule
    | BadgePointsRule
    | TokenBalanceRule
    | VerificationRule
    | InviteOnlyRule,
    Field(discriminator="rule_type"),
]

_RULE_ADAPTER: TypeAdapter[GatingRuleCreate] = TypeAdapter(GatingRuleCreate)


def parse_rule(payload: dict[str, Any]) -> GatingRuleCreate:
    """Validate a raw rule payload, raising InvalidInputError with the first problem."""
    try:
        return _RULE_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", "Invalid gating rule")
        raise InvalidInputError(f"Invalid gating rule ({location}): {message}") from exc


def rule_columns(rule: GatingRuleCreate) -> dict[str, Any]:
    """Flatten a validated rule into ``circle_gating_rules`` column values."""
    columns = rule.model_dump()
    columns["rule_type"] = RuleType(rule.rule_type).value
    columns["requires_verification"] = rule.rule_type == RuleType.VERIFICATION
    return columns


class AccessCheckResponse(BaseModel):
    """Outcome of an access evaluation for the caller."""

    allowed: bool
    basis: str
    reasons: list[str] = Field(default_factory=list)
