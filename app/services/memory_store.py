"""Thread-safe in-process ``CircleStore`` for local runs and tests."""

from __future__ import annotations

import threading
from collections import defaultdict
from collections.abc import Sequence
from typing import Any

from app.services.store import UNIQUE_KEYS, CounterDelta, Filters, OrderBy, new_id
from app.utils.errors import ConflictError, NotFoundError


def _matches(row: dict[str, Any], filters: Filters | None, in_filters=None) -> bool:
    for key, value in (filters or {}).items():
        if row.get(key) != value:
            return False
    for key, values in (in_filters or {}).items():
        if row.get(key) not in set(values):
            return False
    return True


def _project(row: dict[str, Any], columns: str) -> dict[str, Any]:
    if columns.strip() == "*":
        return dict(row)
    wanted = [column.strip() for column in columns.split(",") if column.strip()]
    return {column: row.get(column) for column in wanted}


def _sort(rows: list[dict[str, Any]], keys: OrderBy) -> list[dict[str, Any]]:
    # Stable sorts applied from the least to the most significant key.
    for column, descending in reversed(list(keys)):
        present = [row for row in rows if row.get(column) is not None]
        missing = [row for row in rows if row.get(column) is None]
        present.sort(key=lambda row: row[column], reverse=descending)
        rows = present + missing
    return rows


class InMemoryStore:
    """Dictionary-of-lists store enforcing the same unique keys as Postgres."""

    def __init__(self, unique_keys: dict[str, tuple[tuple[str, ...], ...]] | None = None) -> None:
        self._tables: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self._unique_keys = unique_keys if unique_keys is not None else UNIQUE_KEYS
        self._lock = threading.RLock()

    def _check_unique(self, table: str, payload: dict[str, Any], ignore: dict | None = None) -> None:
        for key in self._unique_keys.get(table, ()):
            values = tuple(payload.get(column) for column in key)
            if any(value is None for value in values):
                continue
            for row in self._tables[table]:
                if row is ignore:
                    continue
                if tuple(row.get(column) for column in key) == values:
                    raise ConflictError(
                        f"duplicate key value violates unique constraint on {table}({', '.join(key)})",
                        code="DUPLICATE",
                    )

    def select_one(
        self,
        table: str,
        filters: Filters,
        columns: str = "*",
        not_found_label: str | None = None,
    ) -> dict[str, Any]:
        with self._lock:
            for row in self._tables[table]:
                if _matches(row, filters):
                    return _project(row, columns)
        raise NotFoundError(not_found_label or table)

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
        with self._lock:
            rows = [row for row in self._tables[table] if _matches(row, filters, in_filters)]
            keys = ([(order_by, descending)] if order_by else []) + list(then_by)
            rows = _sort(rows, keys)
            start = offset or 0
            end = start + limit if limit else None
            return [_project(row, columns) for row in rows[start:end]]

    def count(
        self,
        table: str,
        filters: Filters | None = None,
        in_filters: dict[str, Sequence[Any]] | None = None,
    ) -> int:
        with self._lock:
            return sum(1 for row in self._tables[table] if _matches(row, filters, in_filters))

    def search(
        self,
        table: str,
        columns: Sequence[str],
        term: str,
        filters: Filters | None = None,
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        needle = term.strip().lower()
        with self._lock:
            results = []
            for row in self._tables[table]:
                if not _matches(row, filters):
                    continue
                haystacks = [str(row.get(column) or "").lower() for column in columns]
                if not needle or any(needle in value for value in haystacks):
                    results.append(dict(row))
                if len(results) >= limit:
                    break
            return results

    def insert_one(self, table: str, payload: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            self._check_unique(table, payload)
            row = dict(payload)
            self._tables[table].append(row)
            return dict(row)

    def insert_if_absent(
        self, table: str, payload: dict[str, Any], unique_on: Sequence[str]
    ) -> tuple[dict[str, Any], bool]:
        with self._lock:
            key = {column: payload[column] for column in unique_on}
            for row in self._tables[table]:
                if _matches(row, key):
                    return dict(row), False
            return self.insert_one(table, payload), True

    def insert_with_children(
        self,
        table: str,
        payload: dict[str, Any],
        children: dict[str, list[dict[str, Any]]],
        counters: Sequence[CounterDelta] = (),
    ) -> dict[str, Any]:
        with self._lock:
            # Validate everything first so a failure leaves no partial writes.
            self._check_unique(table, payload)
            self._check_children(children)
            targets = self._counter_targets(counters)
            self._tables[table].append(dict(payload))
            self._write_children(children)
            self._apply_counters(targets)
            return dict(payload)

    def delete_with_children(
        self,
        table: str,
        filters: Filters,
        children: dict[str, list[dict[str, Any]]],
        counters: Sequence[CounterDelta] = (),
    ) -> list[dict[str, Any]]:
        with self._lock:
            if not any(_matches(row, filters) for row in self._tables[table]):
                return []
            self._check_children(children)
            targets = self._counter_targets(counters)
            removed = self.delete(table, filters)
            self._write_children(children)
            self._apply_counters(targets)
            return removed

    def _check_children(self, children: dict[str, list[dict[str, Any]]]) -> None:
        for child_table, rows in children.items():
            for index, child in enumerate(rows):
                self._check_unique(child_table, child)
                for sibling in rows[:index]:
                    for key in self._unique_keys.get(child_table, ()):
                        if all(child.get(c) is not None for c in key) and all(
                            child.get(c) == sibling.get(c) for c in key
                        ):
                            raise ConflictError(
                                f"duplicate key value in {child_table}", code="DUPLICATE"
                            )

    def _write_children(self, children: dict[str, list[dict[str, Any]]]) -> None:
        for child_table, rows in children.items():
            self._tables[child_table].extend(dict(child) for child in rows)

    def _counter_targets(
        self, counters: Sequence[CounterDelta]
    ) -> list[tuple[dict[str, Any], str, int]]:
        targets = []
        for table, row_id, column, delta in counters:
            row = next((row for row in self._tables[table] if row.get("id") == row_id), None)
            if row is None:
                raise NotFoundError(table)
            targets.append((row, column, delta))
        return targets

    @staticmethod
    def _apply_counters(targets: list[tuple[dict[str, Any], str, int]]) -> None:
        for row, column, delta in targets:
            row[column] = max(0, int(row.get(column) or 0) + delta)

    def update(
        self, table: str, filters: Filters, payload: dict[str, Any]
    ) -> list[dict[str, Any]]:
        with self._lock:
            changed = []
            for row in self._tables[table]:
                if _matches(row, filters):
                    self._check_unique(table, {**row, **payload}, ignore=row)
                    row.update(payload)
                    changed.append(dict(row))
            return changed

    def upsert(
        self, table: str, payload: dict[str, Any], on_conflict: Sequence[str]
    ) -> dict[str, Any]:
        with self._lock:
            key = {column: payload[column] for column in on_conflict}
            for row in self._tables[table]:
                if _matches(row, key):
                    row.update({k: v for k, v in payload.items() if k != "id"})
                    return dict(row)
            return self.insert_one(table, {"id": new_id(), **payload})

    def delete(self, table: str, filters: Filters) -> list[dict[str, Any]]:
        with self._lock:
            kept, removed = [], []
            for row in self._tables[table]:
                (removed if _matches(row, filters) else kept).append(row)
            self._tables[table] = kept
            return [dict(row) for row in removed]

    def increment(self, table: str, row_id: str, column: str, delta: int) -> int:
        with self._lock:
            for row in self._tables[table]:
                if row.get("id") == row_id:
                    row[column] = max(0, int(row.get(column) or 0) + delta)
                    return row[column]
        raise NotFoundError(table)
