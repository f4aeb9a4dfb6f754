"""Search, category filter and sort for the public catalogue.

The whole product list is fetched and filtered in memory on every request;
the result is rendered in full.
"""

from __future__ import annotations

import unicodedata
from typing import Callable, Iterable, Optional, Sequence

from .models import Product

ALL_CATEGORIES = "all"
SORT_KEYS = ("name", "price", "category", "featured")
DEFAULT_SORT = "name"

SEARCH_FIELDS = ("name", "description", "category", "color", "fabric")


def locale_key(text: Optional[str]) -> tuple[str, str]:
    """Collation key approximating a locale-aware compare.

    Accents and case are folded for the primary comparison; the raw string
    breaks ties so the order stays total.
    """

    raw = text or ""
    decomposed = unicodedata.normalize("NFKD", raw)
    folded = "".join(ch for ch in decomposed if not unicodedata.combining(ch)).casefold()
    return folded, raw


def matches_query(product: Product, query: str) -> bool:
    needle = (query or "").strip().lower()
    if not needle:
        return True
    for field in SEARCH_FIELDS:
        value = getattr(product, field, None)
        if value is None:
            continue
        if needle in str(value).lower():
            return True
    return False


def in_category(product: Product, category: Optional[str]) -> bool:
    if not category or category == ALL_CATEGORIES:
        return True
    return product.category == category


_SORTERS: dict[str, Callable[[Product], object]] = {
    "name": lambda p: locale_key(p.name),
    "price": lambda p: p.price or 0,
    "category": lambda p: locale_key(p.category),
    # False sorts first, so negate to put featured items ahead.
    "featured": lambda p: not p.is_featured,
}


def sort_products(products: Iterable[Product], sort_key: str = DEFAULT_SORT) -> list[Product]:
    key = _SORTERS.get(sort_key)
    if key is None:
        return list(products)
    return sorted(products, key=key)


def filter_products(
    products: Sequence[Product],
    query: str = "",
    category: str = ALL_CATEGORIES,
    sort_key: str = DEFAULT_SORT,
) -> list[Product]:
    """Return the displayed subset of ``products`` in display order."""

    selected = [p for p in products if matches_query(p, query) and in_category(p, category)]
    return sort_products(selected, sort_key)
