"""Record-store collaborators backing the catalogue and the blog.

``RecordStore`` is the narrow interface the rest of the code talks to: list,
get-one, insert, update, delete over named tables. ``LocalRecordStore`` keeps
each table in a JSON list file next to the application, using atomic writes
and rotating ``.bakN`` backups so an interrupted write never loses the
catalogue. The Firestore implementation lives in :mod:`shoplib.firebase`.
"""
from __future__ import annotations

import datetime
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Protocol, Sequence
from uuid import uuid4

from .errors import NotFoundError, StoreError

logger = logging.getLogger(__name__)

PRODUCTS = "products"
CATEGORIES = "categories"
BLOG_POSTS = "blog_posts"
TABLES = (PRODUCTS, CATEGORIES, BLOG_POSTS)


def utc_now_iso() -> str:
    return datetime.datetime.now(datetime.UTC).isoformat()


class RecordStore(Protocol):
    def list(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict]: ...

    def get_one(self, table: str, filters: Mapping[str, Any]) -> dict: ...

    def insert(self, table: str, record: Mapping[str, Any]) -> dict: ...

    def update(self, table: str, record_id: str, fields: Mapping[str, Any]) -> dict: ...

    def delete(self, table: str, record_id: str) -> bool: ...


def _sort_value(value: Any) -> tuple:
    # None sorts before everything else instead of raising TypeError.
    return (0, "") if value is None else (1, value)


def sort_rows(rows: Sequence[dict], order_by: str | None, descending: bool = False) -> list[dict]:
    """Order rows by one field; ties keep insertion order (newest first when descending)."""

    if not order_by:
        return list(rows)
    decorated = sorted(
        enumerate(rows),
        key=lambda pair: (_sort_value(pair[1].get(order_by)), pair[0]),
        reverse=descending,
    )
    return [row for _, row in decorated]


def matches(row: Mapping[str, Any], filters: Mapping[str, Any] | None) -> bool:
    if not filters:
        return True
    return all(row.get(key) == value for key, value in filters.items())


def pick_one(table: str, rows: Sequence[dict]) -> dict:
    if not rows:
        raise NotFoundError(f"No rows found in {table}")
    if len(rows) > 1:
        raise StoreError(f"Multiple rows found in {table} where one was expected")
    return rows[0]


class ListStore:
    """JSON list store with atomic writes and backup recovery."""

    def __init__(
        self,
        path: Path | str,
        backups: int = 2,
        *,
        recovery_label: str | None = None,
    ) -> None:
        self.path = Path(path)
        self.backups = max(0, backups)
        self._recovery_label = recovery_label
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------
    def _backup_path(self, index: int) -> Path:
        return self.path.with_suffix(self.path.suffix + f".bak{index}")

    def _candidate_paths(self) -> list[Path]:
        return [self.path] + [self._backup_path(idx) for idx in range(1, self.backups + 1)]

    def _read_json(self, path: Path) -> List[Dict[str, Any]] | None:
        if not path.exists():
            return None
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as exc:  # pragma: no cover - surfaced to callers
            raise StoreError(str(exc)) from exc
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            return None
        return data if isinstance(data, list) else None

    def _write_json(self, path: Path, data: Sequence[Dict[str, Any]]) -> None:
        payload = json.dumps(list(data), indent=2)
        tmp_path: Path | None = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=path.parent, prefix=path.name + ".", suffix=".tmp", delete=False
            ) as fh:
                tmp_path = Path(fh.name)
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, path)
        except OSError as exc:  # pragma: no cover - bubbled up to callers
            if tmp_path is not None and tmp_path.exists():
                tmp_path.unlink()
            raise StoreError(str(exc)) from exc

    def _rotate_backups(self) -> None:
        if self.backups <= 0:
            return
        for idx in range(self.backups, 0, -1):
            src = self.path if idx == 1 else self._backup_path(idx - 1)
            if src.exists():
                try:
                    os.replace(src, self._backup_path(idx))
                except OSError:
                    continue

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def load(self) -> List[Dict[str, Any]]:
        with self._lock:
            for candidate in self._candidate_paths():
                data = self._read_json(candidate)
                if data is not None:
                    if candidate != self.path and self._recovery_label:
                        logger.warning("Recovered %s from backup %s", self._recovery_label, candidate.name)
                    return [dict(item) for item in data if isinstance(item, dict)]
            return []

    def mutate(
        self,
        mutator: Callable[[List[Dict[str, Any]]], Iterable[Dict[str, Any]] | None],
    ) -> List[Dict[str, Any]]:
        """Load, apply ``mutator`` and write back while holding the file lock."""

        with self._lock:
            snapshot = self.load()
            outcome = mutator(snapshot)
            updated = snapshot if outcome is None else [dict(item) for item in outcome]
            self._rotate_backups()
            self._write_json(self.path, updated)
            return updated


class LocalRecordStore:
    """``RecordStore`` backed by one :class:`ListStore` file per table."""

    def __init__(self, data_dir: Path | str, backups: int = 2):
        self.data_dir = Path(data_dir)
        self.backups = backups
        self._tables: dict[str, ListStore] = {}
        self._tables_lock = threading.Lock()

    def _table(self, table: str) -> ListStore:
        with self._tables_lock:
            if table not in self._tables:
                self._tables[table] = ListStore(
                    self.data_dir / f"{table}.json",
                    backups=self.backups,
                    recovery_label=table.replace("_", " "),
                )
            return self._tables[table]

    def list(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict]:
        rows = [row for row in self._table(table).load() if matches(row, filters)]
        return sort_rows(rows, order_by, descending)

    def get_one(self, table: str, filters: Mapping[str, Any]) -> dict:
        return pick_one(table, self.list(table, filters))

    def insert(self, table: str, record: Mapping[str, Any]) -> dict:
        now = utc_now_iso()
        stored = {**dict(record), "id": str(uuid4()), "created_at": now, "updated_at": now}

        def mutator(items: list[dict]) -> None:
            items.append(stored)

        self._table(table).mutate(mutator)
        return dict(stored)

    def update(self, table: str, record_id: str, fields: Mapping[str, Any]) -> dict:
        target = str(record_id)
        updated: dict | None = None
        changes = {k: v for k, v in fields.items() if k not in {"id", "created_at"}}

        def mutator(items: list[dict]) -> None:
            nonlocal updated
            for item in items:
                if str(item.get("id")) == target:
                    item.update(changes)
                    item["updated_at"] = utc_now_iso()
                    updated = dict(item)
                    break

        self._table(table).mutate(mutator)
        if updated is None:
            raise NotFoundError(f"No rows found in {table} with id {target}")
        return updated

    def delete(self, table: str, record_id: str) -> bool:
        target = str(record_id)
        removed = False

        def mutator(items: list[dict]) -> Iterable[dict]:
            nonlocal removed
            kept = [item for item in items if str(item.get("id")) != target]
            removed = len(kept) != len(items)
            return kept

        self._table(table).mutate(mutator)
        return removed
