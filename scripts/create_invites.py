"""Create circle invites from the command line."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def parse_args() -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Create invites for a circle in public.circle_invites.",
    )
    parser.add_argument("circle_id", type=str, help="Circle to invite into.")
    parser.add_argument(
        "count",
        type=int,
        help="How many invites to create.",
    )
    parser.add_argument(
        "--invited-by",
        type=str,
        required=True,
        help="Address of a member with the can_invite capability.",
    )
    parser.add_argument(
        "--invited-address",
        type=str,
        default=None,
        help="Reserve every invite for this address (default: open invites).",
    )
    parser.add_argument(
        "--expires-in-days",
        type=int,
        default=None,
        help="Days until the invites expire (default: INVITE_EXPIRY_DAYS).",
    )
    return parser.parse_args()


def create_invites(
    circle_id: str,
    count: int,
    invited_by: str,
    invited_address: str | None = None,
    expires_in_days: int | None = None,
) -> list[dict[str, Any]]:
    """Create ``count`` invites and return the stored rows."""
    if count <= 0:
        raise ValueError("count must be >= 1")

    from app.dependencies import get_fact_provider, get_store
    from app.services.invite_service import InviteService

    service = InviteService(get_store(), get_fact_provider())
    return [
        service.create_invite(
            circle_id=circle_id,
            invited_by=invited_by.strip().lower(),
            invited_address=invited_address,
            expires_in_days=expires_in_days,
        )
        for _ in range(count)
    ]


def print_invites(invites: Sequence[dict[str, Any]]) -> None:
    """Print invite codes in copy-friendly form."""
    print(f"Created {len(invites)} invite(s):")
    for invite in invites:
        print(f"{invite['invite_code']}  expires {invite['expires_at']}")


def main() -> None:
    """CLI entry point."""
    args = parse_args()
    invites = create_invites(
        circle_id=args.circle_id,
        count=args.count,
        invited_by=args.invited_by,
        invited_address=args.invited_address,
        expires_in_days=args.expires_in_days,
    )
    print_invites(invites)


if __name__ == "__main__":
    main()
