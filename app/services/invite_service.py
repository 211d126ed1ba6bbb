"""Circle invite creation and single-use redemption."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Any

from app.config import settings
from app.schemas.common import Capability
from app.services.facts import FactProvider
from app.services.membership_service import MembershipService
from app.services.permissions import RoleCapabilityTable
from app.services.store import CIRCLES, INVITES, CircleStore, new_id
from app.utils.errors import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from app.utils.time import days_from_now, is_past, now_utc, parse_timestamp

logger = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 5


def generate_invite_code(num_bytes: int | None = None) -> str:
    """Return an unguessable URL-safe invite code."""
    return secrets.token_urlsafe(num_bytes or settings.invite_code_bytes)


class InviteService:
    """Invite lifecycle.

    Redemption is exactly-once: the invite is first claimed by a
    compare-and-swap on its claim columns, the join runs, and only then is
    the invite marked used. A failed join releases the claim. When the join
    succeeded but the mark did not, the next redemption attempt finishes the
    invite for the original claimant. A claim older than
    ``claim_ttl_seconds`` whose claimant never joined is treated as
    abandoned and may be taken over.
    """

    def __init__(
        self,
        store: CircleStore,
        facts: FactProvider,
        expiry_days: int | None = None,
        claim_ttl_seconds: int | None = None,
    ) -> None:
        self.store = store
        self.membership = MembershipService(store, facts)
        self.permissions = RoleCapabilityTable(store)
        self.expiry_days = expiry_days or settings.invite_expiry_days
        self.claim_ttl = timedelta(seconds=claim_ttl_seconds or settings.invite_claim_ttl_seconds)

    def create_invite(
        self,
        circle_id: str,
        invited_by: str,
        invited_address: str | None = None,
        expires_in_days: int | None = None,
    ) -> dict[str, Any]:
        """Create an invite; the inviter needs ``can_invite``."""
        self.store.select_one(CIRCLES, {"id": circle_id}, not_found_label="Circle")
        self.permissions.ensure_capability(invited_by, circle_id, Capability.INVITE)

        days = expires_in_days if expires_in_days is not None else self.expiry_days
        if days <= 0:
            raise InvalidInputError("Invite expiry must be at least one day")

        created_at = now_utc()
        payload = {
            "id": new_id(),
            "circle_id": circle_id,
            "invited_by": invited_by,
            "invited_address": invited_address.strip().lower() if invited_address else None,
            "is_used": False,
            "used_by": None,
            "used_at": None,
            "claimed_by": None,
            "claimed_at": None,
            "expires_at": days_from_now(days, base=created_at).isoformat(),
            "created_at": created_at.isoformat(),
            "metadata": {},
        }
        for _attempt in range(MAX_CODE_ATTEMPTS):
            payload["invite_code"] = generate_invite_code()
            try:
                return self.store.insert_one(INVITES, payload)
            except ConflictError:
                continue
        raise ConflictError("Could not allocate a unique invite code", code="INVITE_CODE_EXHAUSTED")

    def list_invites(self, acting: str, circle_id: str) -> list[dict[str, Any]]:
        self.permissions.ensure_capability(acting, circle_id, Capability.INVITE)
        return self.store.select_many(
            INVITES,
            filters={"circle_id": circle_id},
            order_by="created_at",
            descending=True,
        )

    def get_by_code(self, code: str) -> dict[str, Any]:
        rows = self.store.select_many(INVITES, filters={"invite_code": code}, limit=1)
        if not rows:
            raise NotFoundError("Invite", code="INVITE_NOT_FOUND")
        return rows[0]

    def redeem_invite(self, code: str, identity: str) -> str:
        """Redeem ``code`` for ``identity`` and return the joined circle id."""
        normalized = code.strip()
        if not normalized:
            raise InvalidInputError("Invite code is required")

        invite = self.get_by_code(normalized)
        circle_id = str(invite["circle_id"])
        now = now_utc()

        finished_by = self._finish_interrupted(invite)
        if finished_by == identity:
            return circle_id
        if finished_by:
            raise ConflictError("Invite has already been used", code="INVITE_ALREADY_USED")

        self._validate(invite, identity, now)
        if self.membership.is_member(identity, circle_id):
            # Nothing to join; the invite stays open for someone else.
            return circle_id

        claimed_at = self._claim(invite, identity, now)
        try:
            _, created = self.membership.join(identity, circle_id, bypass_gating=True)
        except Exception:
            self._release(str(invite["id"]), identity, claimed_at)
            raise

        if not self._complete(invite, identity, claimed_at):
            logger.warning("Invite %s claim by %s was lost before completion", invite["id"], identity)
            if created:
                self.membership.leave(identity, circle_id)
            raise ConflictError("Invite has already been used", code="INVITE_ALREADY_USED")
        logger.info("Invite %s redeemed by %s into circle %s", invite["id"], identity, circle_id)
        return circle_id

    def _claim_is_live(self, invite: dict[str, Any], now: datetime) -> bool:
        if not invite.get("claimed_by") or not invite.get("claimed_at"):
            return False
        return parse_timestamp(invite["claimed_at"]) + self.claim_ttl > now

    def _finish_interrupted(self, invite: dict[str, Any]) -> str | None:
        """Mark an invite used when its claimant already joined but the mark was lost.

        Returns the claimant when the invite now belongs to them.
        """
        claimant = invite.get("claimed_by")
        if invite.get("is_used") or not claimant or not invite.get("claimed_at"):
            return None
        if not self.membership.is_member(claimant, str(invite["circle_id"])):
            return None
        if self._complete(invite, claimant, invite["claimed_at"]):
            logger.info("Invite %s completed for earlier claimant %s", invite["id"], claimant)
            return claimant
        return None

    def _complete(self, invite: dict[str, Any], identity: str, claimed_at: str) -> bool:
        """Mark the invite used by ``identity`` if it still holds the claim."""
        marked = self.store.update(
            INVITES,
            {"id": invite["id"], "claimed_by": identity, "claimed_at": claimed_at, "is_used": False},
            {"is_used": True, "used_by": identity, "used_at": now_utc().isoformat()},
        )
        if marked:
            return True
        current = self.store.select_one(INVITES, {"id": invite["id"]}, not_found_label="Invite")
        return bool(current.get("is_used")) and current.get("used_by") == identity

    def _validate(self, invite: dict[str, Any], identity: str, now: datetime) -> None:
        if invite.get("is_used") or self._claim_is_live(invite, now):
            raise ConflictError("Invite has already been used", code="INVITE_ALREADY_USED")
        if is_past(invite.get("expires_at"), at=now):
            raise ConflictError("Invite has expired", code="INVITE_EXPIRED")
        invited_address = invite.get("invited_address")
        if invited_address and invited_address != identity:
            raise ForbiddenError(
                "This invite is reserved for a different address",
                code="INVITE_ADDRESS_MISMATCH",
            )

    def _claim(self, invite: dict[str, Any], identity: str, now: datetime) -> str:
        claimed_at = now.isoformat()
        rows = self.store.update(
            INVITES,
            {
                "id": invite["id"],
                "is_used": False,
                "claimed_by": invite.get("claimed_by"),
                "claimed_at": invite.get("claimed_at"),
            },
            {"claimed_by": identity, "claimed_at": claimed_at},
        )
        if not rows:
            raise ConflictError("Invite has already been used", code="INVITE_ALREADY_USED")
        return claimed_at

    def _release(self, invite_id: str, identity: str, claimed_at: str) -> None:
        self.store.update(
            INVITES,
            {"id": invite_id, "claimed_by": identity, "claimed_at": claimed_at, "is_used": False},
            {"claimed_by": None, "claimed_at": None},
        )
