import pytest

from shoplib.errors import UploadError
from shoplib.media import LocalObjectStorage, PRODUCT_BUCKET, PRODUCT_PREFIX
from shoplib.uploads import PendingUpload, build_object_path, file_extension, upload_images


class FlakyStorage:
    """Accepts uploads until ``fail_at`` (1-based), then raises."""

    def __init__(self, fail_at=None):
        self.fail_at = fail_at
        self.paths = []

    def upload(self, bucket, path, data, content_type=None):
        if self.fail_at is not None and len(self.paths) + 1 == self.fail_at:
            raise UploadError("bucket unavailable", path=path)
        self.paths.append(path)

    def public_url(self, bucket, path):
        return f"https://cdn.example.com/{bucket}/{path}"


def files(count):
    return [PendingUpload(f"photo{i}.JPG", b"img", "image/jpeg") for i in range(count)]


def test_build_object_path_layout():
    path = build_object_path("products", "Front View.PNG", now=1700000000.5, token="abc123")
    assert path == "products/1700000000500-abc123.png"


def test_build_object_path_uses_random_token():
    first = build_object_path("blog", "a.jpg", now=1.0)
    second = build_object_path("blog", "a.jpg", now=1.0)
    assert first != second
    assert first.startswith("blog/1000-") and first.endswith(".jpg")


@pytest.mark.parametrize(
    "filename, expected",
    [("shirt.jpeg", "jpeg"), ("archive.tar.GZ", "gz"), ("README", "bin"), ("", "bin"), ("../../etc/x.Png", "png")],
)
def test_file_extension(filename, expected):
    assert file_extension(filename) == expected


@pytest.mark.parametrize("existing, new, fail_at", [(0, 3, None), (2, 3, None), (2, 3, 2), (1, 2, 1), (3, 0, None)])
def test_result_keeps_existing_then_successful_uploads(existing, new, fail_at):
    current = [f"https://cdn.example.com/old{i}.jpg" for i in range(existing)]
    storage = FlakyStorage(fail_at)
    outcome = upload_images(storage, PRODUCT_BUCKET, PRODUCT_PREFIX, files(new), current)

    succeeded = new if fail_at is None else fail_at - 1
    assert len(outcome.urls) == existing + succeeded
    assert outcome.urls[:existing] == current
    assert outcome.uploaded == outcome.urls[existing:]
    assert outcome.ok is (fail_at is None)


def test_failure_stops_the_batch_without_rollback():
    storage = FlakyStorage(fail_at=2)
    outcome = upload_images(storage, PRODUCT_BUCKET, PRODUCT_PREFIX, files(3))
    assert len(storage.paths) == 1
    assert isinstance(outcome.error, UploadError)
    assert str(outcome.error) == "bucket unavailable"
    assert outcome.urls == [f"https://cdn.example.com/{PRODUCT_BUCKET}/{storage.paths[0]}"]


def test_uploads_to_local_storage_in_order(tmp_path):
    storage = LocalObjectStorage(tmp_path)
    uploads = [PendingUpload("a.jpg", b"first"), PendingUpload("b.jpg", b"second")]
    outcome = upload_images(storage, PRODUCT_BUCKET, PRODUCT_PREFIX, uploads)
    assert outcome.ok
    stored = [
        (tmp_path / PRODUCT_BUCKET / url.split(f"/media/{PRODUCT_BUCKET}/", 1)[1]).read_bytes()
        for url in outcome.urls
    ]
    assert stored == [b"first", b"second"]
