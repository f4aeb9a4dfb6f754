"""Draft state and submission for the admin create/edit forms.

A single :class:`EntityForm` drives products, categories and blog posts. Each
entity is described by a tuple of :class:`FieldSpec` entries; the draft holds
display strings (and booleans for switches) until :meth:`EntityForm.submit`
converts them into a typed record and writes it to the store.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence, Type

from pydantic import ValidationError as PayloadError

from .errors import StoreError, ValidationError
from .models import BlogPost, Category, Product, Record
from .slugs import category_slug, slugify
from .storage import BLOG_POSTS, CATEGORIES, PRODUCTS, RecordStore

logger = logging.getLogger(__name__)

TEXT = "text"
FLOAT = "float"
CSV = "csv"
BOOL = "bool"

_TRUTHY = {"1", "true", "yes", "on"}


def parse_price(text: Any) -> Optional[float]:
    """Parse a price input; anything unusable becomes ``None``."""

    raw = str(text if text is not None else "").strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return value


def split_csv(text: Any) -> list[str]:
    return [piece.strip() for piece in str(text or "").split(",") if piece.strip()]


def join_csv(values: Optional[Sequence[str]]) -> str:
    return ", ".join(values or [])


def as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in _TRUTHY


@dataclass(frozen=True)
class FieldSpec:
    name: str
    kind: str = TEXT
    required: bool = False
    default: Any = None
    blank_as_none: bool = False
    # Fills the stored value from the converted record when left blank.
    derive: Optional[Callable[[dict], Any]] = None

    def blank(self) -> Any:
        if self.kind == BOOL:
            return bool(self.default)
        return "" if self.default is None else self.default

    def to_draft(self, value: Any) -> Any:
        if self.kind == BOOL:
            return bool(value)
        if self.kind == CSV:
            return join_csv(value)
        if value is None:
            return self.blank()
        return str(value)

    def convert(self, value: Any) -> Any:
        if self.kind == BOOL:
            return as_bool(value)
        if self.kind == CSV:
            return split_csv(value)
        if self.kind == FLOAT:
            return parse_price(value)
        text = str(value if value is not None else "").strip()
        if not text and self.blank_as_none:
            return None
        return text


PRODUCT_FIELDS = (
    FieldSpec("name", required=True),
    FieldSpec("price", FLOAT),
    FieldSpec("description", blank_as_none=True),
    FieldSpec("category"),
    FieldSpec("color", blank_as_none=True),
    FieldSpec("fabric", blank_as_none=True),
    FieldSpec("sizes", CSV),
    FieldSpec("is_featured", BOOL),
)

CATEGORY_FIELDS = (
    FieldSpec("name", required=True),
    FieldSpec("description", blank_as_none=True),
    FieldSpec("slug", derive=lambda record: category_slug(record["name"])),
)

BLOG_POST_FIELDS = (
    FieldSpec("title", required=True),
    FieldSpec("content", required=True),
    FieldSpec("excerpt", blank_as_none=True),
    FieldSpec("author_name", required=True, default="Admin"),
    FieldSpec("slug", derive=lambda record: slugify(record["title"])),
    FieldSpec("is_published", BOOL),
)


@dataclass
class SubmitOutcome:
    ok: bool
    message: str = ""
    record: Optional[dict] = None
    created: bool = False
    error: Optional[Exception] = None


class EntityForm:
    """Create-or-update controller for one table."""

    def __init__(
        self,
        label: str,
        table: str,
        fields: Sequence[FieldSpec],
        model: Type[Record],
        store: RecordStore,
        on_saved: Optional[Callable[[], Any]] = None,
    ):
        self.label = label
        self.table = table
        self.fields = tuple(fields)
        self.model = model
        self.store = store
        self.on_saved = on_saved
        self.draft: dict[str, Any] = {}
        self.editing: Optional[dict] = None
        self.reset()

    @property
    def is_editing(self) -> bool:
        return self.editing is not None

    @property
    def editing_id(self) -> Optional[str]:
        return str(self.editing.get("id")) if self.editing else None

    def reset(self) -> None:
        self.draft = {spec.name: spec.blank() for spec in self.fields}
        self.editing = None

    def load_for_edit(self, record: Mapping[str, Any] | Record) -> None:
        data = record.model_dump() if isinstance(record, Record) else dict(record)
        self.editing = data
        self.draft = {spec.name: spec.to_draft(data.get(spec.name)) for spec in self.fields}

    def update(self, values: Mapping[str, Any], *, checkboxes_absent_means_false: bool = True) -> None:
        """Merge user input into the draft.

        HTML forms omit unchecked checkboxes, so by default a missing boolean
        field is read as ``False``.
        """

        for spec in self.fields:
            if spec.kind == BOOL:
                if spec.name in values:
                    self.draft[spec.name] = as_bool(values[spec.name])
                elif checkboxes_absent_means_false:
                    self.draft[spec.name] = False
            elif spec.name in values:
                value = values[spec.name]
                self.draft[spec.name] = "" if value is None else str(value)

    def validate(self) -> None:
        for spec in self.fields:
            if spec.required and not str(self.draft.get(spec.name) or "").strip():
                raise ValidationError(spec.name)

    def to_record(self, extra: Optional[Mapping[str, Any]] = None) -> dict:
        record = {spec.name: spec.convert(self.draft.get(spec.name)) for spec in self.fields}
        for spec in self.fields:
            if spec.derive is not None and not record.get(spec.name):
                record[spec.name] = spec.derive(record)
        record.update(extra or {})
        try:
            return self.model.model_validate(record).payload()
        except PayloadError as err:
            first = err.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or "record"
            raise ValidationError(field, f"{field}: {first.get('msg')}") from err

    def submit(self, extra: Optional[Mapping[str, Any]] = None) -> SubmitOutcome:
        """Validate the draft and write the full field set.

        Validation failures never reach the store. Store failures leave the
        draft and edit mode untouched so the admin can retry.
        """

        try:
            self.validate()
            record = self.to_record(extra)
        except ValidationError as exc:
            return SubmitOutcome(ok=False, message=str(exc), error=exc)

        created = not self.is_editing
        try:
            if created:
                stored = self.store.insert(self.table, record)
            else:
                stored = self.store.update(self.table, self.editing_id, record)
        except StoreError as exc:
            logger.warning("Saving %s failed: %s", self.table, exc)
            return SubmitOutcome(ok=False, message=str(exc), error=exc)

        self.reset()
        self._refresh()
        verb = "created" if created else "updated"
        return SubmitOutcome(
            ok=True,
            message=f"{self.label} {verb} successfully",
            record=stored,
            created=created,
        )

    def _refresh(self) -> None:
        if self.on_saved is None:
            return
        try:
            self.on_saved()
        except StoreError as exc:
            # The write went through; the list will catch up on the next fetch.
            logger.warning("Refreshing %s failed: %s", self.table, exc)

    def delete(self, record_id: str, confirmed: bool) -> SubmitOutcome:
        if not confirmed:
            return SubmitOutcome(ok=False, message="Deletion cancelled")
        try:
            removed = self.store.delete(self.table, record_id)
        except StoreError as exc:
            logger.warning("Deleting from %s failed: %s", self.table, exc)
            return SubmitOutcome(ok=False, message=str(exc), error=exc)
        if not removed:
            return SubmitOutcome(ok=False, message=f"{self.label} not found")
        self._refresh()
        return SubmitOutcome(ok=True, message=f"{self.label} deleted successfully")


def product_form(store: RecordStore, on_saved: Optional[Callable[[], Any]] = None) -> EntityForm:
    return EntityForm("Product", PRODUCTS, PRODUCT_FIELDS, Product, store, on_saved)


def category_form(store: RecordStore, on_saved: Optional[Callable[[], Any]] = None) -> EntityForm:
    return EntityForm("Category", CATEGORIES, CATEGORY_FIELDS, Category, store, on_saved)


def blog_post_form(store: RecordStore, on_saved: Optional[Callable[[], Any]] = None) -> EntityForm:
    return EntityForm("Blog post", BLOG_POSTS, BLOG_POST_FIELDS, BlogPost, store, on_saved)
