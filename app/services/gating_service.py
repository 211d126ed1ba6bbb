"""Circle access gating.

Access policy, evaluated against the circle's active rules:

* any ``invite_only`` rule: only active members (who joined through an
  invite) have access;
* no rules: public circles admit everyone, private circles only members;
* otherwise the rules are conjunctive and every one must hold.

A rule whose fact source cannot answer is unverifiable. A confirmed unmet
rule still denies with ``Forbidden``; if nothing was confirmed unmet but
something was unverifiable the check fails closed with ``UnavailableError``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from app.schemas.common import RuleType, Visibility
from app.services.facts import FactProvider
from app.services.store import CIRCLES, GATING_RULES, MEMBERS, CircleStore
from app.utils.errors import ForbiddenError, UnavailableError

logger = logging.getLogger(__name__)


@dataclass
class RuleOutcome:
    rule_id: str
    rule_type: RuleType
    passed: bool | None
    reason: str | None = None
    error: UnavailableError | None = None


@dataclass
class AccessDecision:
    allowed: bool
    basis: str
    reasons: list[str] = field(default_factory=list)


class GatingEngine:
    """Evaluate whether an address may join or access a circle. Read-only."""

    def __init__(self, store: CircleStore, facts: FactProvider) -> None:
        self.store = store
        self.facts = facts
        self._checks: dict[RuleType, Callable[[str, dict[str, Any]], tuple[bool, str]]] = {
            RuleType.BADGE: self._check_badge,
            RuleType.NFT: self._check_nft,
            RuleType.FOLLOWER_COUNT: self._check_followers,
            RuleType.BADGE_POINTS: self._check_badge_points,
            RuleType.TOKEN_BALANCE: self._check_token_balance,
            RuleType.VERIFICATION: self._check_verification,
        }

    def active_rules(self, circle_id: str) -> list[dict[str, Any]]:
        return self.store.select_many(
            GATING_RULES,
            filters={"circle_id": circle_id, "is_active": True},
            order_by="created_at",
        )

    def _is_active_member(self, identity: str, circle_id: str) -> bool:
        return (
            self.store.count(
                MEMBERS,
                {"circle_id": circle_id, "member_address": identity, "is_active": True},
            )
            > 0
        )

    def evaluate(self, identity: str, circle: dict[str, Any]) -> AccessDecision:
        """Evaluate access for an already-loaded circle row."""
        circle_id = str(circle["id"])
        rules = self.active_rules(circle_id)

        if any(rule["rule_type"] == RuleType.INVITE_ONLY for rule in rules):
            if self._is_active_member(identity, circle_id):
                return AccessDecision(allowed=True, basis="membership")
            return AccessDecision(
                allowed=False,
                basis="invite_only",
                reasons=["This circle is invite-only; redeem an invite to join"],
            )

        if not rules:
            if circle.get("visibility", Visibility.PUBLIC) == Visibility.PUBLIC:
                return AccessDecision(allowed=True, basis="public")
            if self._is_active_member(identity, circle_id):
                return AccessDecision(allowed=True, basis="membership")
            return AccessDecision(
                allowed=False, basis="private", reasons=["This circle is private"]
            )

        outcomes = [self.check_rule(identity, rule) for rule in rules]
        unmet = [outcome.reason for outcome in outcomes if outcome.passed is False]
        if unmet:
            logger.debug("Access denied for %s in circle %s: %s", identity, circle_id, unmet)
            return AccessDecision(allowed=False, basis="rules", reasons=unmet)

        unverifiable = [outcome for outcome in outcomes if outcome.passed is None]
        if unverifiable:
            raise unverifiable[0].error or UnavailableError("Access could not be verified")
        return AccessDecision(allowed=True, basis="rules")

    def check_access(self, identity: str, circle_id: str) -> AccessDecision:
        circle = self.store.select_one(CIRCLES, {"id": circle_id}, not_found_label="Circle")
        return self.evaluate(identity, circle)

    def can_access(self, identity: str, circle_id: str) -> bool:
        """Return whether ``identity`` may access the circle.

        Raises UnavailableError when a required fact cannot be established.
        """
        return self.check_access(identity, circle_id).allowed

    def ensure_access(self, identity: str, circle: dict[str, Any]) -> AccessDecision:
        """Raise ForbiddenError listing every unmet requirement."""
        decision = self.evaluate(identity, circle)
        if not decision.allowed:
            raise ForbiddenError("; ".join(decision.reasons), code="ACCESS_DENIED")
        return decision

    def check_rule(self, identity: str, rule: dict[str, Any]) -> RuleOutcome:
        rule_type = RuleType(rule["rule_type"])
        check = self._checks[rule_type]
        try:
            passed, reason = check(identity, rule)
        except UnavailableError as exc:
            logger.warning("Rule %s (%s) unverifiable: %s", rule["id"], rule_type, exc.message)
            return RuleOutcome(str(rule["id"]), rule_type, passed=None, reason=exc.message, error=exc)
        return RuleOutcome(str(rule["id"]), rule_type, passed=passed, reason=None if passed else reason)

    def _check_badge(self, identity: str, rule: dict[str, Any]) -> tuple[bool, str]:
        badge_id = str(rule["badge_id"])
        return self.facts.holds_badge(identity, badge_id), f"requires badge {badge_id}"

    def _check_nft(self, identity: str, rule: dict[str, Any]) -> tuple[bool, str]:
        contract = str(rule["nft_contract"])
        return self.facts.owns_nft(identity, contract), f"requires an NFT from {contract}"

    def _check_followers(self, identity: str, rule: dict[str, Any]) -> tuple[bool, str]:
        threshold = int(rule.get("min_follower_count") or 0)
        count = self.facts.follower_count(identity)
        return count >= threshold, f"requires {threshold}+ followers, you have {count}"

    def _check_badge_points(self, identity: str, rule: dict[str, Any]) -> tuple[bool, str]:
        threshold = int(rule.get("min_badge_points") or 0)
        points = self.facts.badge_points(identity)
        return points >= threshold, f"requires {threshold}+ badge points, you have {points}"

    def _check_token_balance(self, identity: str, rule: dict[str, Any]) -> tuple[bool, str]:
        token = str(rule["token_address"])
        threshold = int(rule.get("min_token_balance") or 0)
        balance = self.facts.token_balance(identity, token)
        return (
            balance >= threshold,
            f"requires a balance of {threshold}+ of token {token}, you have {balance}",
        )

    def _check_verification(self, identity: str, rule: dict[str, Any]) -> tuple[bool, str]:
        return self.facts.is_verified(identity), "requires a verified profile"
