"""Supabase store error mapping tests using a stand-in PostgREST client."""

from __future__ import annotations

import logging
import time
from types import SimpleNamespace
from typing import Any

import httpx
import pytest

from app.config import settings
from app.services.store import MEMBERS, SupabaseStore
from app.utils.errors import UnavailableError


class _Query:
    def __init__(self, outcome: Any, delay: float = 0.0) -> None:
        self.outcome = outcome
        self.delay = delay

    def select(self, *args: Any, **kwargs: Any) -> _Query:
        return self

    def eq(self, *args: Any) -> _Query:
        return self

    def execute(self) -> Any:
        time.sleep(self.delay)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


class _Client:
    def __init__(self, outcome: Any, delay: float = 0.0) -> None:
        self.outcome = outcome
        self.delay = delay

    def table(self, name: str) -> _Query:
        return _Query(self.outcome, self.delay)


@pytest.mark.parametrize(
    ("error", "code"),
    [
        (httpx.ReadTimeout("read timed out"), "STORE_TIMEOUT"),
        (httpx.ConnectError("connection refused"), "STORE_UNAVAILABLE"),
    ],
)
def test_count_maps_transport_errors(error: Exception, code: str) -> None:
    """Counts share the same timeout and transport mapping as other reads."""
    store = SupabaseStore(_Client(error))
    with pytest.raises(UnavailableError) as exc_info:
        store.count(MEMBERS, {"circle_id": "c1"})
    assert exc_info.value.code == code


def test_slow_count_is_logged(monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
    monkeypatch.setattr(settings, "slow_query_log_threshold_ms", 1)
    store = SupabaseStore(_Client(SimpleNamespace(count=3, data=None), delay=0.01))

    with caplog.at_level(logging.WARNING, logger="app.services.store"):
        assert store.count(MEMBERS, {"circle_id": "c1"}) == 3
    assert any("count(circle_members)" in record.getMessage() for record in caplog.records)
