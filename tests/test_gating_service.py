"""Gating engine policy tests."""

from __future__ import annotations

from typing import Any

import pytest

from app.schemas.common import Visibility
from app.schemas.gating import parse_rule
from app.services.circle_service import CircleService
from app.services.facts import StaticFactProvider
from app.services.gating_service import GatingEngine
from app.services.membership_service import MembershipService
from app.services.memory_store import InMemoryStore
from app.utils.errors import ForbiddenError, UnavailableError

NFT = "0x" + "b" * 40
TOKEN = "0x" + "c" * 40
BOB = "0xb0b"


def _add(circles: CircleService, creator: str, circle_id: str, **payload: Any) -> dict[str, Any]:
    return circles.add_gating_rule(creator, circle_id, parse_rule(payload))


def test_public_circle_without_rules_is_open(
    store: InMemoryStore, facts: StaticFactProvider, circle: dict[str, Any]
) -> None:
    decision = GatingEngine(store, facts).check_access(BOB, circle["id"])
    assert decision.allowed is True
    assert decision.basis == "public"


def test_private_circle_without_rules_admits_members_only(
    store: InMemoryStore, facts: StaticFactProvider, circles: CircleService, creator: str
) -> None:
    private = circles.create(creator=creator, name="Inner", visibility=Visibility.PRIVATE)
    engine = GatingEngine(store, facts)
    assert engine.can_access(creator, private["id"]) is True
    decision = engine.check_access(BOB, private["id"])
    assert decision.allowed is False
    assert decision.reasons == ["This circle is private"]


def test_follower_threshold_denial_names_the_gap(
    facts: StaticFactProvider,
    circles: CircleService,
    membership: MembershipService,
    circle: dict[str, Any],
    creator: str,
) -> None:
    """Joining with 300 followers against a 500 minimum is Forbidden with both numbers."""
    _add(circles, creator, circle["id"], rule_type="follower_count", min_follower_count=500)
    facts.followers[BOB] = 300

    with pytest.raises(ForbiddenError) as exc_info:
        membership.join(BOB, circle["id"])
    assert exc_info.value.code == "ACCESS_DENIED"
    assert "requires 500+ followers, you have 300" in exc_info.value.message


def test_rules_are_conjunctive(
    store: InMemoryStore,
    facts: StaticFactProvider,
    circles: CircleService,
    circle: dict[str, Any],
    creator: str,
) -> None:
    """Every rule must hold; each unmet rule contributes a reason."""
    _add(circles, creator, circle["id"], rule_type="follower_count", min_follower_count=10)
    _add(circles, creator, circle["id"], rule_type="verification")
    engine = GatingEngine(store, facts)

    facts.followers[BOB] = 50
    decision = engine.check_access(BOB, circle["id"])
    assert decision.allowed is False
    assert decision.reasons == ["requires a verified profile"]

    facts.verified.add(BOB)
    assert engine.can_access(BOB, circle["id"]) is True

    facts.followers[BOB] = 1
    decision = engine.check_access(BOB, circle["id"])
    assert decision.reasons == ["requires 10+ followers, you have 1"]


def test_adding_an_unmet_rule_revokes_access(
    store: InMemoryStore,
    facts: StaticFactProvider,
    circles: CircleService,
    circle: dict[str, Any],
    creator: str,
) -> None:
    engine = GatingEngine(store, facts)
    assert engine.can_access(BOB, circle["id"]) is True
    _add(circles, creator, circle["id"], rule_type="badge", badge_id="og")
    assert engine.can_access(BOB, circle["id"]) is False
    facts.badges[BOB] = {"og"}
    assert engine.can_access(BOB, circle["id"]) is True


@pytest.mark.parametrize(
    ("rule", "grant"),
    [
        ({"rule_type": "badge_points", "min_badge_points": 100}, {"badge_points_by_address": {BOB: 100}}),
        ({"rule_type": "nft", "nft_contract": NFT}, {"nfts": {BOB: {"0x" + "B" * 40}}}),
        (
            {"rule_type": "token_balance", "token_address": TOKEN, "min_token_balance": "1000000000000000000"},
            {"token_balances": {(BOB, TOKEN): 10**18}},
        ),
    ],
)
def test_each_rule_type_passes_when_fact_holds(
    store: InMemoryStore,
    circles: CircleService,
    circle: dict[str, Any],
    creator: str,
    rule: dict[str, Any],
    grant: dict[str, Any],
) -> None:
    circles.add_gating_rule(creator, circle["id"], parse_rule(rule))
    assert GatingEngine(store, StaticFactProvider()).can_access(BOB, circle["id"]) is False
    assert GatingEngine(store, StaticFactProvider(**grant)).can_access(BOB, circle["id"]) is True


def test_unverifiable_nft_fails_closed(
    store: InMemoryStore, circles: CircleService, circle: dict[str, Any], creator: str
) -> None:
    """An unreachable fact source is Unavailable, never a silent grant or a Forbidden."""
    _add(circles, creator, circle["id"], rule_type="nft", nft_contract=NFT)
    engine = GatingEngine(store, StaticFactProvider(unavailable={"owns_nft"}))
    with pytest.raises(UnavailableError):
        engine.check_access(BOB, circle["id"])


def test_confirmed_unmet_rule_wins_over_unverifiable_one(
    store: InMemoryStore, circles: CircleService, circle: dict[str, Any], creator: str
) -> None:
    _add(circles, creator, circle["id"], rule_type="nft", nft_contract=NFT)
    _add(circles, creator, circle["id"], rule_type="follower_count", min_follower_count=5)
    engine = GatingEngine(store, StaticFactProvider(unavailable={"owns_nft"}))
    decision = engine.check_access(BOB, circle["id"])
    assert decision.allowed is False
    assert decision.reasons == ["requires 5+ followers, you have 0"]


def test_invite_only_circle_blocks_direct_join(
    store: InMemoryStore,
    facts: StaticFactProvider,
    circles: CircleService,
    membership: MembershipService,
    circle: dict[str, Any],
    creator: str,
) -> None:
    _add(circles, creator, circle["id"], rule_type="invite_only")
    engine = GatingEngine(store, facts)
    assert engine.can_access(creator, circle["id"]) is True
    with pytest.raises(ForbiddenError):
        membership.join(BOB, circle["id"])
