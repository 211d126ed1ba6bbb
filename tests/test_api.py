"""End-to-end HTTP tests against the in-memory store."""

from __future__ import annotations

from fastapi.testclient import TestClient

from app.services.facts import StaticFactProvider

CREATOR = {"X-Address": "0xC0FFEE"}
ALICE = {"X-Address": "0xa11ce"}
BOB = {"X-Address": "0xb0b"}


def _create_circle(api_client: TestClient, name: str = "DAO Founders") -> dict:
    response = api_client.post("/circles", json={"name": name, "category": "dao"}, headers=CREATOR)
    assert response.status_code == 200
    return response.json()["circle"]


def test_protected_routes_require_authorization(client: TestClient) -> None:
    """Without a bearer token every circle route is rejected."""
    response = client.get("/circles")
    assert response.status_code == 401
    assert response.json()["code"] == "UNAUTHORIZED"


def test_create_get_and_search(api_client: TestClient) -> None:
    circle = _create_circle(api_client)
    assert circle["slug"] == "dao-founders"
    assert circle["creator_address"] == "0xc0ffee"

    fetched = api_client.get(f"/circles/{circle['id']}", headers=ALICE).json()["circle"]
    assert fetched["id"] == circle["id"]

    found = api_client.get("/circles/search", params={"q": "founders"}, headers=ALICE).json()
    assert [row["id"] for row in found["circles"]] == [circle["id"]]

    duplicate = api_client.post("/circles", json={"name": "dao founders"}, headers=CREATOR)
    assert duplicate.status_code == 409
    assert duplicate.json()["code"] == "SLUG_TAKEN"


def test_gated_join_flow(api_client: TestClient, facts: StaticFactProvider) -> None:
    circle = _create_circle(api_client)
    rule = api_client.post(
        f"/circles/{circle['id']}/gating-rules",
        json={"rule_type": "follower_count", "min_follower_count": 500},
        headers=CREATOR,
    )
    assert rule.status_code == 200

    facts.followers["0xa11ce"] = 120
    access = api_client.get(f"/circles/{circle['id']}/access", headers=ALICE).json()
    assert access["allowed"] is False
    assert access["reasons"] == ["requires 500+ followers, you have 120"]

    denied = api_client.post(f"/circles/{circle['id']}/members/join", headers=ALICE)
    assert denied.status_code == 403
    assert denied.json()["error"] == "requires 500+ followers, you have 120"

    facts.followers["0xa11ce"] = 800
    joined = api_client.post(f"/circles/{circle['id']}/members/join", headers=ALICE)
    assert joined.status_code == 200
    assert joined.json()["joined"] is True

    members = api_client.get(f"/circles/{circle['id']}/members", headers=ALICE).json()["members"]
    assert {row["member_address"] for row in members} == {"0xc0ffee", "0xa11ce"}


def test_malformed_rule_is_invalid(api_client: TestClient) -> None:
    circle = _create_circle(api_client)
    response = api_client.post(
        f"/circles/{circle['id']}/gating-rules",
        json={"rule_type": "nft", "nft_contract": "0x123"},
        headers=CREATOR,
    )
    assert response.status_code == 422
    assert response.json()["code"] == "INVALID_INPUT"


def test_unverifiable_rule_is_retryable(api_client: TestClient, facts: StaticFactProvider) -> None:
    circle = _create_circle(api_client)
    api_client.post(
        f"/circles/{circle['id']}/gating-rules",
        json={"rule_type": "nft", "nft_contract": "0x" + "b" * 40},
        headers=CREATOR,
    )
    facts.unavailable.add("owns_nft")

    response = api_client.post(f"/circles/{circle['id']}/members/join", headers=ALICE)
    assert response.status_code == 503
    assert response.headers["Retry-After"] == "1"


def test_invite_redeem_flow(api_client: TestClient) -> None:
    circle = _create_circle(api_client)
    api_client.post(
        f"/circles/{circle['id']}/gating-rules", json={"rule_type": "invite_only"}, headers=CREATOR
    )
    invite = api_client.post(
        f"/circles/{circle['id']}/invites", json={"invited_address": "0xB0B"}, headers=CREATOR
    ).json()["invite"]

    wrong = api_client.post("/invites/redeem", json={"invite_code": invite["invite_code"]}, headers=ALICE)
    assert wrong.status_code == 403

    redeemed = api_client.post("/invites/redeem", json={"invite_code": invite["invite_code"]}, headers=BOB)
    assert redeemed.status_code == 200
    assert redeemed.json() == {"circle_id": circle["id"], "joined": True}

    again = api_client.post("/invites/redeem", json={"invite_code": invite["invite_code"]}, headers=BOB)
    assert again.status_code == 409


def test_posting_feeds_leaderboard_and_activity(api_client: TestClient) -> None:
    circle = _create_circle(api_client)
    api_client.post(f"/circles/{circle['id']}/members/join", headers=ALICE)

    post = api_client.post(
        f"/circles/{circle['id']}/posts", json={"content": "gm", "title": "Hello"}, headers=ALICE
    ).json()["post"]
    api_client.post(f"/posts/{post['id']}/comments", json={"content": "gm!"}, headers=CREATOR)
    for _ in range(2):
        liked = api_client.post(
            f"/posts/{post['id']}/interactions", json={"interaction_type": "like"}, headers=CREATOR
        )
        assert liked.status_code == 200

    assert api_client.get(f"/posts/{post['id']}", headers=ALICE).json()["post"]["like_count"] == 1

    rank = api_client.get(f"/circles/{circle['id']}/leaderboard/0xA11CE", headers=ALICE).json()
    assert (rank["rank"], rank["points"]) == (1, 12)

    board = api_client.get(f"/circles/{circle['id']}/leaderboard", headers=ALICE).json()["leaderboard"]
    assert [row["member_address"] for row in board] == ["0xa11ce", "0xc0ffee"]

    activity = api_client.get(f"/circles/{circle['id']}/activity", headers=ALICE).json()["activity"]
    assert {row["type"] for row in activity} >= {"joined", "posted", "commented", "reacted"}


def test_role_assignment_and_permissions(api_client: TestClient) -> None:
    circle = _create_circle(api_client)
    api_client.post(f"/circles/{circle['id']}/members/join", headers=ALICE)

    response = api_client.put(
        f"/circles/{circle['id']}/members/0xA11CE/role", json={"role": "viewer"}, headers=CREATOR
    )
    assert response.status_code == 200

    permissions = api_client.get(f"/circles/{circle['id']}/permissions", headers=ALICE).json()
    assert permissions["role"] == "viewer"
    assert permissions["capabilities"]["can_post"] is False
    assert [row["role"] for row in permissions["roles"]] == ["admin", "moderator", "member", "viewer"]

    post = api_client.post(f"/circles/{circle['id']}/posts", json={"content": "gm"}, headers=ALICE)
    assert post.status_code == 403


def test_leave_and_my_circles(api_client: TestClient) -> None:
    circle = _create_circle(api_client)
    api_client.post(f"/circles/{circle['id']}/members/join", headers=ALICE)
    mine = api_client.get("/circles/mine", headers=ALICE).json()["circles"]
    assert [row["id"] for row in mine] == [circle["id"]]

    left = api_client.post(f"/circles/{circle['id']}/members/leave", headers=ALICE)
    assert left.status_code == 200
    assert api_client.get("/circles/mine", headers=ALICE).json()["circles"] == []

    creator_leave = api_client.post(f"/circles/{circle['id']}/members/leave", headers=CREATOR)
    assert creator_leave.status_code == 403


def test_unknown_circle_is_not_found(api_client: TestClient) -> None:
    response = api_client.get("/circles/does-not-exist", headers=ALICE)
    assert response.status_code == 404
    assert response.json() == {"error": "Circle not found", "code": "NOT_FOUND"}
