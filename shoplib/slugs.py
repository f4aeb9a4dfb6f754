"""URL slugs for products, categories and blog posts.

Three transforms are in use and they are deliberately not interchangeable:

* blog posts: :func:`slugify`, which keeps only ``[a-z0-9]`` runs;
* products: :func:`product_slug`, which keeps underscores and letters of both
  cases and is "reversed" by :func:`name_from_product_slug` for lookups;
* categories: :func:`category_slug`, which only swaps whitespace for hyphens.

Product slugs are not stored. The detail page rebuilds a name from the slug
and matches it against stored names, so two names that share a slug resolve
to whichever product the store lists first.
"""

from __future__ import annotations

import re
from typing import Iterable, Mapping, Optional, TypeVar

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_WHITESPACE = re.compile(r"\s+")
_PRODUCT_UNSAFE = re.compile(r"[^A-Za-z0-9_-]")

T = TypeVar("T")


def slugify(text: str) -> str:
    return _NON_ALNUM.sub("-", (text or "").lower()).strip("-")


def product_slug(name: str) -> str:
    return _PRODUCT_UNSAFE.sub("", _WHITESPACE.sub("-", (name or "").lower()))


def category_slug(name: str) -> str:
    return _WHITESPACE.sub("-", (name or "").lower())


def name_from_product_slug(slug: str) -> str:
    return (slug or "").replace("-", " ")


def _name_of(item: object) -> str:
    if isinstance(item, Mapping):
        return str(item.get("name") or "")
    return str(getattr(item, "name", "") or "")


def match_product_slug(slug: str, products: Iterable[T]) -> Optional[T]:
    """Return the first product whose name matches the rebuilt slug name.

    Exact (case-insensitive) matches win over prefix matches; within each
    tier the store's order decides.
    """

    wanted = name_from_product_slug(slug).strip().casefold()
    if not wanted:
        return None
    candidates = list(products)
    for item in candidates:
        if _name_of(item).casefold() == wanted:
            return item
    for item in candidates:
        if _name_of(item).casefold().startswith(wanted):
            return item
    return None
