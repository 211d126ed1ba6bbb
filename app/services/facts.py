"""Read-only fact providers consulted by the gating engine.

A provider answers questions about an address (followers, badges,
verification, on-chain holdings). Providers raise ``UnavailableError`` when
a fact cannot be established; they never guess.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Protocol

import httpx

from app.config import settings
from app.services.store import SupabaseStore
from app.utils.errors import UnavailableError
from supabase import Client

logger = logging.getLogger(__name__)

EVM_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40}$")
BALANCE_OF_SELECTOR = "0x70a08231"


class FactProvider(Protocol):
    def holds_badge(self, address: str, badge_id: str) -> bool: ...

    def owns_nft(self, address: str, contract: str) -> bool: ...

    def follower_count(self, address: str) -> int: ...

    def badge_points(self, address: str) -> int: ...

    def token_balance(self, address: str, token_address: str) -> int: ...

    def is_verified(self, address: str) -> bool: ...


class EvmRpcClient:
    """Minimal JSON-RPC client for ERC-20/ERC-721 ``balanceOf`` calls."""

    def __init__(self, rpc_url: str, timeout_seconds: float) -> None:
        self.rpc_url = rpc_url
        self._client = httpx.Client(timeout=httpx.Timeout(timeout_seconds))

    def balance_of(self, contract: str, owner: str) -> int:
        """Return ``contract.balanceOf(owner)`` in raw token units."""
        if not EVM_ADDRESS.match(owner):
            return 0
        call_data = BALANCE_OF_SELECTOR + owner[2:].lower().rjust(64, "0")
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "eth_call",
            "params": [{"to": contract, "data": call_data}, "latest"],
        }
        try:
            response = self._client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as exc:
            raise UnavailableError(
                f"Timed out verifying holdings at {contract}", code="FACT_TIMEOUT"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise UnavailableError(
                f"Could not verify holdings at {contract}", code="FACT_UNAVAILABLE"
            ) from exc

        if "error" in body:
            logger.warning("eth_call to %s failed: %s", contract, body["error"])
            raise UnavailableError(
                f"Could not verify holdings at {contract}", code="FACT_UNAVAILABLE"
            )
        result = str(body.get("result") or "0x")
        return int(result, 16) if result not in {"0x", ""} else 0


class SupabaseFactProvider:
    """Facts from the profile tables plus an optional chain RPC endpoint."""

    def __init__(self, client: Client, chain: EvmRpcClient | None = None) -> None:
        self.db = SupabaseStore(client)
        self.chain = chain

    def _require_chain(self, subject: str) -> EvmRpcClient:
        if self.chain is None:
            raise UnavailableError(
                f"On-chain verification is not configured; cannot check {subject}",
                code="FACT_UNAVAILABLE",
            )
        return self.chain

    def holds_badge(self, address: str, badge_id: str) -> bool:
        return self.db.count("user_badges", {"user_address": address, "badge_id": badge_id}) > 0

    def owns_nft(self, address: str, contract: str) -> bool:
        return self._require_chain(f"NFT {contract}").balance_of(contract, address) > 0

    def follower_count(self, address: str) -> int:
        return self.db.count("followers", {"following_address": address})

    def badge_points(self, address: str) -> int:
        rows = self.db.execute(
            self.db.client.table("user_badges")
            .select("badge_id,badges(points)")
            .eq("user_address", address),
            default=[],
        )
        return sum(int((row.get("badges") or {}).get("points") or 0) for row in rows)

    def token_balance(self, address: str, token_address: str) -> int:
        return self._require_chain(f"token {token_address}").balance_of(token_address, address)

    def is_verified(self, address: str) -> bool:
        rows = self.db.select_many(
            "profiles", filters={"address": address}, columns="is_verified", limit=1
        )
        return bool(rows and rows[0].get("is_verified"))


class StaticFactProvider:
    """Dictionary-backed provider for local runs and tests.

    Facts listed in ``unavailable`` (by method name) raise ``UnavailableError``.
    """

    def __init__(
        self,
        followers: dict[str, int] | None = None,
        badges: dict[str, set[str]] | None = None,
        badge_points_by_address: dict[str, int] | None = None,
        nfts: dict[str, set[str]] | None = None,
        token_balances: dict[tuple[str, str], int] | None = None,
        verified: Iterable[str] = (),
        unavailable: Iterable[str] = (),
    ) -> None:
        self.followers = followers or {}
        self.badges = badges or {}
        self.badge_points_by_address = badge_points_by_address or {}
        self.nfts = nfts or {}
        self.token_balances = token_balances or {}
        self.verified = set(verified)
        self.unavailable = set(unavailable)

    def _guard(self, fact: str) -> None:
        if fact in self.unavailable:
            raise UnavailableError(f"Fact source for {fact} is unavailable", code="FACT_UNAVAILABLE")

    def holds_badge(self, address: str, badge_id: str) -> bool:
        self._guard("holds_badge")
        return badge_id in self.badges.get(address, set())

    def owns_nft(self, address: str, contract: str) -> bool:
        self._guard("owns_nft")
        return contract.lower() in {c.lower() for c in self.nfts.get(address, set())}

    def follower_count(self, address: str) -> int:
        self._guard("follower_count")
        return self.followers.get(address, 0)

    def badge_points(self, address: str) -> int:
        self._guard("badge_points")
        return self.badge_points_by_address.get(address, 0)

    def token_balance(self, address: str, token_address: str) -> int:
        self._guard("token_balance")
        return self.token_balances.get((address, token_address.lower()), 0)

    def is_verified(self, address: str) -> bool:
        self._guard("is_verified")
        return address in self.verified


def build_fact_provider(client: Client) -> SupabaseFactProvider:
    """Create the production provider from settings."""
    chain = (
        EvmRpcClient(settings.chain_rpc_url, settings.fact_provider_timeout_seconds)
        if settings.chain_rpc_url
        else None
    )
    return SupabaseFactProvider(client, chain=chain)
