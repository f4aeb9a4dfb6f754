"""Object storage collaborators for product and blog images."""
from __future__ import annotations

import os
from pathlib import Path, PurePosixPath
from typing import Protocol

from .errors import UploadError

PRODUCT_BUCKET = "product-images"
PRODUCT_PREFIX = "products"
BLOG_BUCKET = "blog-images"
BLOG_PREFIX = "blog"


class ObjectStorage(Protocol):
    def upload(self, bucket: str, path: str, data: bytes, content_type: str | None = None) -> None: ...

    def public_url(self, bucket: str, path: str) -> str: ...


class LocalObjectStorage:
    """Stores uploads on disk; the app serves them under ``/media``."""

    def __init__(self, root: Path | str, base_url: str = "/media"):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def resolve(self, bucket: str, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts:
            raise UploadError(f"Invalid object path: {path}", path=path)
        return self.root / bucket / Path(*relative.parts)

    def upload(self, bucket: str, path: str, data: bytes, content_type: str | None = None) -> None:
        target = self.resolve(bucket, path)
        tmp_path = target.with_suffix(target.suffix + ".part")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(data)
            os.replace(tmp_path, target)
        except OSError as exc:
            if tmp_path.exists():
                tmp_path.unlink()
            raise UploadError(str(exc), path=path) from exc

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/{bucket}/{path}"
