"""Upload selected image files and collect their public URLs."""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from werkzeug.utils import secure_filename

from .errors import UploadError
from .media import ObjectStorage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingUpload:
    filename: str
    data: bytes
    content_type: Optional[str] = None


@dataclass
class UploadOutcome:
    """Final URL list plus what happened to the new files."""

    urls: list[str] = field(default_factory=list)
    uploaded: list[str] = field(default_factory=list)
    error: Optional[UploadError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def file_extension(filename: str) -> str:
    cleaned = secure_filename(filename or "")
    if "." not in cleaned:
        return "bin"
    return cleaned.rsplit(".", 1)[1].lower() or "bin"


def build_object_path(
    prefix: str,
    filename: str,
    now: Optional[float] = None,
    token: Optional[str] = None,
) -> str:
    """``<prefix>/<epoch-millis>-<token>.<ext>``"""

    millis = int((time.time() if now is None else now) * 1000)
    token = token or secrets.token_hex(6)
    return f"{prefix}/{millis}-{token}.{file_extension(filename)}"


def upload_images(
    storage: ObjectStorage,
    bucket: str,
    prefix: str,
    files: Iterable[PendingUpload],
    existing_urls: Sequence[str] = (),
) -> UploadOutcome:
    """Upload ``files`` one after another and append their URLs to ``existing_urls``.

    The first failure stops the batch; files uploaded before it stay in
    storage and their URLs are still returned.
    """

    outcome = UploadOutcome(urls=list(existing_urls))
    for upload in files:
        path = build_object_path(prefix, upload.filename)
        try:
            storage.upload(bucket, path, upload.data, upload.content_type)
            url = storage.public_url(bucket, path)
        except UploadError as exc:
            logger.warning("Upload of %s to %s failed: %s", upload.filename, bucket, exc)
            outcome.error = exc
            break
        outcome.uploaded.append(url)
        outcome.urls.append(url)
    return outcome
