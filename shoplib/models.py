"""Pydantic models for catalogue and blog records."""

from __future__ import annotations

import datetime
from typing import Annotated, Any, Optional

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
    model_validator,
)

from .slugs import product_slug

STORE_MANAGED = frozenset({"id", "created_at", "updated_at"})


class Record(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None

    def payload(self) -> dict[str, Any]:
        """Field set sent to the store on insert/update."""
        return self.model_dump(mode="json", exclude=set(STORE_MANAGED))


def _list_or_empty(value: Any) -> Any:
    return [] if value is None else value


StrList = Annotated[list[str], BeforeValidator(_list_or_empty)]


class Product(Record):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    sizes: StrList = Field(default_factory=list)
    category: str = ""
    color: Optional[str] = None
    fabric: Optional[str] = None
    image_urls: StrList = Field(default_factory=list)
    is_featured: bool = False

    @field_validator("category", mode="before")
    @classmethod
    def blank_category(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def slug(self) -> str:
        return product_slug(self.name)

    @property
    def has_price(self) -> bool:
        return bool(self.price and self.price > 0)

    @property
    def cover_url(self) -> Optional[str]:
        return self.image_urls[0] if self.image_urls else None


class Category(Record):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    slug: Optional[str] = None


class BlogPost(Record):
    title: str = Field(..., min_length=1)
    content: str = ""
    excerpt: Optional[str] = None
    author_name: str = "Admin"
    slug: str = ""
    image_urls: StrList = Field(default_factory=list)
    is_published: bool = False

    @model_validator(mode="before")
    @classmethod
    def single_image_variant(cls, data: Any) -> Any:
        # Older posts carry one featured_image_url instead of a list.
        if isinstance(data, dict) and not data.get("image_urls") and data.get("featured_image_url"):
            data = {**data, "image_urls": [data["featured_image_url"]]}
        return data

    @property
    def paragraphs(self) -> list[str]:
        return [line for line in self.content.split("\n") if line.strip()]

    @property
    def cover_url(self) -> Optional[str]:
        return self.image_urls[0] if self.image_urls else None


class ContactMessage(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    subject: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=5000)

    @field_validator("name", "subject", "message", mode="before")
    @classmethod
    def strip_text(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value
