"""Pytest fixtures for backend tests."""

from __future__ import annotations

import os
from collections.abc import Iterator
from typing import Any

import pytest
from fastapi import Header
from fastapi.testclient import TestClient


def _set_default_env() -> None:
    os.environ.setdefault("SUPABASE_URL", "https://example.supabase.co")
    os.environ.setdefault("SUPABASE_ANON_KEY", "anon-key")
    os.environ.setdefault("SUPABASE_SERVICE_KEY", "service-key")
    os.environ.setdefault("ENABLE_SCHEDULER", "false")
    os.environ.setdefault("STORAGE_BACKEND", "memory")


# Settings are read at import time, so the environment must be ready before
# any test module imports the app package.
_set_default_env()

from app.services.circle_service import CircleService  # noqa: E402
from app.services.content_service import ContentService  # noqa: E402
from app.services.facts import StaticFactProvider  # noqa: E402
from app.services.invite_service import InviteService  # noqa: E402
from app.services.leaderboard_service import LeaderboardService  # noqa: E402
from app.services.membership_service import MembershipService  # noqa: E402
from app.services.memory_store import InMemoryStore  # noqa: E402
from app.utils.errors import UnavailableError  # noqa: E402

CREATOR = "0xc0ffee0000000000000000000000000000000001"


@pytest.fixture(scope="session")
def client() -> TestClient:
    """Create a FastAPI test client."""
    from app.main import app

    return TestClient(app)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def facts() -> StaticFactProvider:
    return StaticFactProvider()


@pytest.fixture
def circles(store: InMemoryStore) -> CircleService:
    return CircleService(store)


@pytest.fixture
def membership(store: InMemoryStore, facts: StaticFactProvider) -> MembershipService:
    return MembershipService(store, facts)


@pytest.fixture
def invites(store: InMemoryStore, facts: StaticFactProvider) -> InviteService:
    return InviteService(store, facts)


@pytest.fixture
def content(store: InMemoryStore) -> ContentService:
    return ContentService(store)


@pytest.fixture
def leaderboard(store: InMemoryStore) -> LeaderboardService:
    return LeaderboardService(store)


@pytest.fixture
def creator() -> str:
    return CREATOR


@pytest.fixture
def circle(circles: CircleService, creator: str) -> dict[str, Any]:
    """A public circle with no gating rules."""
    return circles.create(creator=creator, name="DAO Founders", description="Builders only")


@pytest.fixture
def api_client(store: InMemoryStore, facts: StaticFactProvider) -> Iterator[TestClient]:
    """Test client bound to a fresh in-memory store.

    The caller identity is taken from the ``X-Address`` header instead of a
    Supabase token.
    """
    from app.dependencies import get_current_address, get_fact_provider, get_store
    from app.main import app

    def _address(x_address: str = Header(...)) -> str:
        return x_address.strip().lower()

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_fact_provider] = lambda: facts
    app.dependency_overrides[get_current_address] = _address
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def fail_once(monkeypatch: pytest.MonkeyPatch):
    """Make the next matching call to a store method raise ``UnavailableError``.

    ``matches`` receives the call's arguments; the default matches any call.
    """

    def _arm(store: InMemoryStore, method: str, matches=lambda *args, **kwargs: True) -> None:
        original = getattr(store, method)
        armed = [True]

        def _wrapper(*args: Any, **kwargs: Any) -> Any:
            if armed[0] and matches(*args, **kwargs):
                armed[0] = False
                raise UnavailableError("Circle store is unreachable", code="STORE_UNAVAILABLE")
            return original(*args, **kwargs)

        monkeypatch.setattr(store, method, _wrapper)

    return _arm
