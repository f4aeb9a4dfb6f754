"""Error taxonomy shared by the storefront and the admin back office."""

from __future__ import annotations


class StoreError(RuntimeError):
    """Raised when the record store rejects or fails an operation.

    The message is shown to the admin verbatim, so adapters keep the
    backend's own wording instead of wrapping it.
    """


class NotFoundError(StoreError):
    """A single-record fetch matched no rows."""


class UploadError(RuntimeError):
    """Raised when object storage fails to accept a file."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path


class ValidationError(ValueError):
    """A required form field was left empty."""

    def __init__(self, field: str, message: str | None = None):
        super().__init__(message or f"{field} is required")
        self.field = field
