"""Catalogue and blog operations used by the storefront and admin views."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Type

from shoplib.errors import ValidationError
from shoplib.forms import EntityForm, SubmitOutcome, blog_post_form, category_form, product_form
from shoplib.media import BLOG_BUCKET, BLOG_PREFIX, PRODUCT_BUCKET, PRODUCT_PREFIX, ObjectStorage
from shoplib.models import BlogPost, Category, Product, Record
from shoplib.slugs import match_product_slug
from shoplib.snapshots import SnapshotCache
from shoplib.storage import BLOG_POSTS, CATEGORIES, PRODUCTS, RecordStore
from shoplib.uploads import PendingUpload, UploadOutcome, upload_images


@dataclass(slots=True)
class ShopService:
    """Reads go straight to the record store; writes re-fetch the table afterwards."""

    store: RecordStore
    media: ObjectStorage
    _products: SnapshotCache = field(init=False, repr=False, default_factory=SnapshotCache)
    _categories: SnapshotCache = field(init=False, repr=False, default_factory=SnapshotCache)
    _posts: SnapshotCache = field(init=False, repr=False, default_factory=SnapshotCache)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def _refresh(
        self,
        cache: SnapshotCache,
        table: str,
        model: Type[Record],
        filters: Optional[dict] = None,
        order_by: str = "created_at",
        descending: bool = True,
    ) -> tuple:
        token = cache.begin()
        rows = self.store.list(table, filters=filters, order_by=order_by, descending=descending)
        items = tuple(model.model_validate(row) for row in rows)
        cache.commit(token, items)
        return items

    def products(self) -> tuple[Product, ...]:
        return self._refresh(self._products, PRODUCTS, Product)

    def categories(self) -> tuple[Category, ...]:
        return self._refresh(self._categories, CATEGORIES, Category, order_by="name", descending=False)

    def all_posts(self) -> tuple[BlogPost, ...]:
        return self._refresh(self._posts, BLOG_POSTS, BlogPost)

    def published_posts(self) -> tuple[BlogPost, ...]:
        rows = self.store.list(BLOG_POSTS, filters={"is_published": True}, order_by="created_at", descending=True)
        return tuple(BlogPost.model_validate(row) for row in rows)

    def published_post(self, slug: str) -> BlogPost:
        return BlogPost.model_validate(self.store.get_one(BLOG_POSTS, {"slug": slug, "is_published": True}))

    def find_product(self, slug: str) -> Optional[Product]:
        return match_product_slug(slug, self.products())

    def get_record(self, table: str, record_id: str) -> dict:
        return self.store.get_one(table, {"id": record_id})

    # Last successfully fetched snapshots, shown when a fetch fails.
    def cached_products(self) -> tuple[Product, ...]:
        return self._products.items

    def cached_categories(self) -> tuple[Category, ...]:
        return self._categories.items

    def cached_posts(self) -> tuple[BlogPost, ...]:
        return self._posts.items

    # ------------------------------------------------------------------
    # Forms
    # ------------------------------------------------------------------
    def product_form(self) -> EntityForm:
        return product_form(self.store, on_saved=self.products)

    def category_form(self) -> EntityForm:
        return category_form(self.store, on_saved=self.categories)

    def blog_post_form(self) -> EntityForm:
        return blog_post_form(self.store, on_saved=self.all_posts)

    def save_product(
        self,
        form: EntityForm,
        files: Iterable[PendingUpload] = (),
    ) -> tuple[SubmitOutcome, UploadOutcome]:
        """Upload new images, then write the product with old + new URLs.

        A draft that fails validation is rejected before anything is uploaded.
        """

        existing = list((form.editing or {}).get("image_urls") or [])
        rejected = _precheck(form, existing)
        if rejected is not None:
            return rejected
        uploads = upload_images(self.media, PRODUCT_BUCKET, PRODUCT_PREFIX, files, existing)
        outcome = form.submit(extra={"image_urls": uploads.urls})
        return outcome, uploads

    def save_blog_post(
        self,
        form: EntityForm,
        image: Optional[PendingUpload] = None,
        pasted_url: str = "",
    ) -> tuple[SubmitOutcome, UploadOutcome]:
        """Write a post; a pasted image URL is used only when no file was chosen."""

        existing = list((form.editing or {}).get("image_urls") or [])
        rejected = _precheck(form, existing)
        if rejected is not None:
            return rejected
        files = [image] if image is not None else []
        uploads = upload_images(self.media, BLOG_BUCKET, BLOG_PREFIX, files, existing)
        urls = list(uploads.urls)
        pasted_url = (pasted_url or "").strip()
        if image is None and pasted_url and pasted_url not in urls:
            urls.append(pasted_url)
        outcome = form.submit(extra={"image_urls": urls})
        return outcome, uploads

    def close(self) -> None:
        """Cancel in-flight fetches; the app calls this at interpreter exit."""

        for cache in (self._products, self._categories, self._posts):
            cache.close()


def _precheck(form: EntityForm, existing: list[str]) -> Optional[tuple[SubmitOutcome, UploadOutcome]]:
    try:
        form.validate()
    except ValidationError as exc:
        return SubmitOutcome(ok=False, message=str(exc), error=exc), UploadOutcome(urls=existing)
    return None
