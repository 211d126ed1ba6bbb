"""Persistent store interface and its Supabase implementation.

Every engine service talks to a ``CircleStore``. The store owns the atomic
primitives the engine relies on instead of in-process locks:

* ``insert_one`` / ``insert_if_absent`` honour unique constraints and raise
  ``ConflictError`` on a duplicate key.
* ``update`` and ``delete`` treat their filters as a compare-and-swap
  predicate and return only the rows they actually changed.
* ``increment`` is a single atomic counter update floored at zero.
* ``insert_with_children`` and ``delete_with_children`` change a row, write
  its dependants and apply counter deltas in one transaction.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from collections.abc import Sequence
from typing import Any, Protocol

import httpx
from postgrest import APIError

from app.config import settings
from app.utils.errors import ConflictError, InvalidInputError, NotFoundError, UnavailableError
from supabase import Client

logger = logging.getLogger(__name__)

CIRCLES = "circles"
MEMBERS = "circle_members"
ROLE_PERMISSIONS = "circle_role_permissions"
GATING_RULES = "circle_gating_rules"
INVITES = "circle_invites"
POSTS = "circle_posts"
COMMENTS = "circle_comments"
INTERACTIONS = "circle_post_interactions"
LEADERBOARD = "circle_leaderboard"
ACTIVITY = "circle_activity"

# Mirrors the UNIQUE constraints in supabase/migrations/001_circles_engine.sql.
UNIQUE_KEYS: dict[str, tuple[tuple[str, ...], ...]] = {
    CIRCLES: (("id",), ("slug",)),
    MEMBERS: (("id",), ("circle_id", "member_address")),
    ROLE_PERMISSIONS: (("id",), ("circle_id", "role")),
    GATING_RULES: (("id",),),
    INVITES: (("id",), ("invite_code",)),
    POSTS: (("id",),),
    COMMENTS: (("id",),),
    INTERACTIONS: (("id",), ("post_id", "user_address", "interaction_type")),
    LEADERBOARD: (("id",), ("circle_id", "member_address")),
    ACTIVITY: (("id",),),
}

UNIQUE_VIOLATION = "23505"
_SEARCH_UNSAFE = re.compile(r"[,()*%:\\]")

Filters = dict[str, Any]
OrderBy = Sequence[tuple[str, bool]]
# (table, row id, column, delta)
CounterDelta = tuple[str, str, str, int]


def new_id() -> str:
    """Return a fresh row identifier."""
    return str(uuid.uuid4())


class CircleStore(Protocol):
    """Keyed storage with conditional-insert, CAS and atomic-increment primitives."""

    def select_one(
        self,
        table: str,
        filters: Filters,
        columns: str = "*",
        not_found_label: str | None = None,
    ) -> dict[str, Any]: ...

    def select_many(
        self,
        table: str,
        filters: Filters | None = None,
        columns: str = "*",
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        offset: int | None = None,
        in_filters: dict[str, Sequence[Any]] | None = None,
        then_by: OrderBy = (),
    ) -> list[dict[str, Any]]: ...

    def count(
        self,
        table: str,
        filters: Filters | None = None,
        in_filters: dict[str, Sequence[Any]] | None = None,
    ) -> int: ...

    def search(
        self,
        table: str,
        columns: Sequence[str],
        term: str,
        filters: Filters | None = None,
        limit: int = 20,
    ) -> list[dict[str, Any]]: ...

    def insert_one(self, table: str, payload: dict[str, Any]) -> dict[str, Any]: ...

    def insert_if_absent(
        self, table: str, payload: dict[str, Any], unique_on: Sequence[str]
    ) -> tuple[dict[str, Any], bool]: ...

    def insert_with_children(
        self,
        table: str,
        payload: dict[str, Any],
        children: dict[str, list[dict[str, Any]]],
        counters: Sequence[CounterDelta] = (),
    ) -> dict[str, Any]: ...

    def delete_with_children(
        self,
        table: str,
        filters: Filters,
        children: dict[str, list[dict[str, Any]]],
        counters: Sequence[CounterDelta] = (),
    ) -> list[dict[str, Any]]: ...

    def update(
        self, table: str, filters: Filters, payload: dict[str, Any]
    ) -> list[dict[str, Any]]: ...

    def upsert(
        self, table: str, payload: dict[str, Any], on_conflict: Sequence[str]
    ) -> dict[str, Any]: ...

    def delete(self, table: str, filters: Filters) -> list[dict[str, Any]]: ...

    def increment(self, table: str, row_id: str, column: str, delta: int) -> int: ...


def _filter_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def _apply_filters(query, filters: Filters | None, in_filters=None):
    for key, value in (filters or {}).items():
        if value is None:
            query = query.is_(key, "null")
        else:
            query = query.eq(key, _filter_value(value))
    for key, values in (in_filters or {}).items():
        query = query.in_(key, list(values))
    return query


def _translate_api_error(exc: APIError) -> Exception:
    code = str(getattr(exc, "code", "") or "")
    message = str(getattr(exc, "message", "") or "Database request failed")
    if code == UNIQUE_VIOLATION or "duplicate key value" in message.lower():
        return ConflictError(message, code="DUPLICATE")
    return InvalidInputError(message)


def _counter_payload(counters: Sequence[CounterDelta]) -> list[dict[str, Any]]:
    return [
        {"table": table, "id": row_id, "column": column, "delta": delta}
        for table, row_id, column, delta in counters
    ]


class SupabaseStore:
    """``CircleStore`` backed by Supabase PostgREST."""

    def __init__(self, client: Client) -> None:
        self.client = client

    def _run(self, query, label: str = "query") -> Any:
        """Run a query, mapping API and transport errors and logging slow calls."""
        started = time.perf_counter()
        try:
            response = query.execute()
        except APIError as exc:
            raise _translate_api_error(exc) from exc
        except httpx.TimeoutException as exc:
            raise UnavailableError("Circle store timed out", code="STORE_TIMEOUT") from exc
        except httpx.HTTPError as exc:
            raise UnavailableError("Circle store is unreachable", code="STORE_UNAVAILABLE") from exc

        elapsed_ms = (time.perf_counter() - started) * 1000
        threshold_ms = settings.slow_query_log_threshold_ms
        if threshold_ms > 0 and elapsed_ms >= threshold_ms:
            logger.warning("Slow Supabase %s %.1fms", label, elapsed_ms)
        return response

    def execute(self, query, default: Any = None) -> Any:
        """Execute a Supabase query and return its data."""
        data = self._run(query).data
        return default if data is None and default is not None else data

    def select_one(
        self,
        table: str,
        filters: Filters,
        columns: str = "*",
        not_found_label: str | None = None,
    ) -> dict[str, Any]:
        """Select a single row and raise NotFoundError when missing."""
        query = _apply_filters(self.client.table(table).select(columns), filters)
        rows = self.execute(query.limit(1), default=[])
        if not rows:
            raise NotFoundError(not_found_label or table)
        return rows[0]

    def select_many(
        self,
        table: str,
        filters: Filters | None = None,
        columns: str = "*",
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        offset: int | None = None,
        in_filters: dict[str, Sequence[Any]] | None = None,
        then_by: OrderBy = (),
    ) -> list[dict[str, Any]]:
        """Select many rows from a table with optional filters and paging."""
        query = _apply_filters(self.client.table(table).select(columns), filters, in_filters)
        if order_by:
            query = query.order(order_by, desc=descending)
        for column, desc in then_by:
            query = query.order(column, desc=desc)
        if offset:
            query = query.offset(offset)
        if limit:
            query = query.limit(limit)
        return self.execute(query, default=[])

    def count(
        self,
        table: str,
        filters: Filters | None = None,
        in_filters: dict[str, Sequence[Any]] | None = None,
    ) -> int:
        """Count rows in a table with optional equality filters."""
        query = self.client.table(table).select("*", count="exact", head=True)
        query = _apply_filters(query, filters, in_filters)
        return self._run(query, label=f"count({table})").count or 0

    def search(
        self,
        table: str,
        columns: Sequence[str],
        term: str,
        filters: Filters | None = None,
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        """Case-insensitive substring search across ``columns``."""
        cleaned = _SEARCH_UNSAFE.sub(" ", term).strip()
        query = _apply_filters(self.client.table(table).select("*"), filters)
        if cleaned:
            query = query.or_(",".join(f"{column}.ilike.%{cleaned}%" for column in columns))
        return self.execute(query.limit(limit), default=[])

    def insert_one(self, table: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Insert one row and return the created object."""
        rows = self.execute(self.client.table(table).insert(payload), default=[])
        if not rows:
            raise InvalidInputError(f"Failed to insert into {table}")
        return rows[0]

    def insert_if_absent(
        self, table: str, payload: dict[str, Any], unique_on: Sequence[str]
    ) -> tuple[dict[str, Any], bool]:
        """Insert unless a row with the same unique key exists.

        Returns the stored row and whether this call created it.
        """
        try:
            return self.insert_one(table, payload), True
        except ConflictError:
            existing = self.select_one(table, {key: payload[key] for key in unique_on})
            return existing, False

    def insert_with_children(
        self,
        table: str,
        payload: dict[str, Any],
        children: dict[str, list[dict[str, Any]]],
        counters: Sequence[CounterDelta] = (),
    ) -> dict[str, Any]:
        """Insert a parent row, dependent rows and counter deltas in one transaction."""
        row = self.execute(
            self.client.rpc(
                "insert_with_children",
                {
                    "p_table": table,
                    "p_row": payload,
                    "p_children": children,
                    "p_counters": _counter_payload(counters),
                },
            )
        )
        if not row:
            raise InvalidInputError(f"Failed to insert into {table}")
        return row[0] if isinstance(row, list) else row

    def delete_with_children(
        self,
        table: str,
        filters: Filters,
        children: dict[str, list[dict[str, Any]]],
        counters: Sequence[CounterDelta] = (),
    ) -> list[dict[str, Any]]:
        """Delete matching rows; dependants and deltas apply only if a row was removed."""
        return self.execute(
            self.client.rpc(
                "delete_with_children",
                {
                    "p_table": table,
                    "p_filters": filters,
                    "p_children": children,
                    "p_counters": _counter_payload(counters),
                },
            ),
            default=[],
        )

    def update(
        self, table: str, filters: Filters, payload: dict[str, Any]
    ) -> list[dict[str, Any]]:
        """Update rows matching ``filters`` and return the rows that changed."""
        query = _apply_filters(self.client.table(table).update(payload), filters)
        return self.execute(query, default=[])

    def upsert(
        self, table: str, payload: dict[str, Any], on_conflict: Sequence[str]
    ) -> dict[str, Any]:
        """Insert or overwrite the row identified by ``on_conflict``."""
        rows = self.execute(
            self.client.table(table).upsert(payload, on_conflict=",".join(on_conflict)),
            default=[],
        )
        if not rows:
            raise InvalidInputError(f"Failed to upsert into {table}")
        return rows[0]

    def delete(self, table: str, filters: Filters) -> list[dict[str, Any]]:
        """Delete rows by equality filters and return removed rows."""
        query = _apply_filters(self.client.table(table).delete(), filters)
        return self.execute(query, default=[])

    def increment(self, table: str, row_id: str, column: str, delta: int) -> int:
        """Atomically add ``delta`` to a counter column, never below zero."""
        value = self.execute(
            self.client.rpc(
                "increment_counter",
                {"p_table": table, "p_id": row_id, "p_column": column, "p_delta": delta},
            )
        )
        if value is None:
            raise NotFoundError(table)
        return int(value)
