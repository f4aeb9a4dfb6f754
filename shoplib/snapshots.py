"""Immutable list snapshots refreshed by full re-fetch."""

from __future__ import annotations

import threading
from typing import Generic, Iterable, TypeVar

T = TypeVar("T")


class SnapshotCache(Generic[T]):
    """Holds the last fetched rows of one table.

    Every fetch takes a generation token from :meth:`begin`; the result is
    applied only if no newer fetch started and the cache was not closed in
    the meantime. Snapshots are tuples and are replaced, never merged.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._generation = 0
        self._items: tuple[T, ...] = ()
        self._loaded = False
        self._closed = False

    @property
    def items(self) -> tuple[T, ...]:
        return self._items

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def generation(self) -> int:
        return self._generation

    def begin(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def commit(self, token: int, items: Iterable[T]) -> bool:
        with self._lock:
            if self._closed or token != self._generation:
                return False
            self._items = tuple(items)
            self._loaded = True
            return True

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._generation += 1
