"""Catalogue, blog and back-office helpers shared by the storefront app."""

from .errors import NotFoundError, StoreError, UploadError, ValidationError  # noqa: F401
from .catalogue import ALL_CATEGORIES, SORT_KEYS, filter_products
from .gallery import Gallery
from .slugs import category_slug, match_product_slug, product_slug, slugify
from .storage import LocalRecordStore, RecordStore

__all__ = [
    "NotFoundError",
    "StoreError",
    "UploadError",
    "ValidationError",
    "ALL_CATEGORIES",
    "SORT_KEYS",
    "filter_products",
    "Gallery",
    "category_slug",
    "match_product_slug",
    "product_slug",
    "slugify",
    "LocalRecordStore",
    "RecordStore",
]
