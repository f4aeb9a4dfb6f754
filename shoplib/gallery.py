"""Cyclic image navigation shared by product cards, product pages and posts."""

from __future__ import annotations

from typing import Sequence


class Gallery:
    """Current position within an ordered list of image URLs."""

    def __init__(self, urls: Sequence[str] = (), index: int = 0):
        self.urls: tuple[str, ...] = tuple(urls)
        self.index = 0
        self.select(index)

    @classmethod
    def from_param(cls, urls: Sequence[str], raw: str | None) -> "Gallery":
        try:
            index = int(raw) if raw is not None else 0
        except ValueError:
            index = 0
        gallery = cls(urls)
        if gallery.urls:
            gallery.index = min(max(index, 0), len(gallery.urls) - 1)
        return gallery

    def __len__(self) -> int:
        return len(self.urls)

    @property
    def has_multiple(self) -> bool:
        return len(self.urls) > 1

    @property
    def current(self) -> str | None:
        return self.urls[self.index] if self.urls else None

    @property
    def next_index(self) -> int:
        if not self.has_multiple:
            return self.index
        return (self.index + 1) % len(self.urls)

    @property
    def prev_index(self) -> int:
        if not self.has_multiple:
            return self.index
        return (self.index - 1 + len(self.urls)) % len(self.urls)

    def next(self) -> int:
        self.index = self.next_index
        return self.index

    def prev(self) -> int:
        self.index = self.prev_index
        return self.index

    def select(self, index: int) -> int:
        if 0 <= index < len(self.urls):
            self.index = index
        return self.index

    def reset(self, urls: Sequence[str]) -> None:
        self.urls = tuple(urls)
        self.index = 0
