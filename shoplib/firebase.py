"""Firebase-backed record store and object storage."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Optional
import json
import logging

import firebase_admin
from firebase_admin import credentials, firestore, storage
from google.api_core.exceptions import GoogleAPICallError
from google.auth.exceptions import GoogleAuthError
from google.cloud.firestore_v1.base_query import FieldFilter

from .errors import NotFoundError, StoreError, UploadError
from .storage import matches, pick_one, utc_now_iso

logger = logging.getLogger(__name__)

_BACKEND_ERRORS = (GoogleAPICallError, GoogleAuthError)


def _load_service_account_file(path: Path) -> Optional[dict[str, Any]]:
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        return None
    if data.get("type") != "service_account":
        return None
    return data


def load_service_account(base_dir: Path, env: Mapping[str, str] | None = None) -> Optional[dict[str, Any]]:
    """Load Firebase service account credentials from disk or env."""

    base_dir = Path(base_dir)
    env_map = dict(env or {})

    for candidate in ("firebase-auth.json", "clientSecret.json"):
        data = _load_service_account_file(base_dir / candidate)
        if data:
            return data

    project_id = (env_map.get("FIREBASE_PROJECT_ID") or "").strip()
    private_key = (env_map.get("FIREBASE_PRIVATE_KEY") or "").strip()
    client_email = (env_map.get("FIREBASE_CLIENT_EMAIL") or "").strip()

    if project_id and private_key and client_email:
        return {
            "type": "service_account",
            "project_id": project_id,
            # env vars usually carry newlines escaped as \n
            "private_key": private_key.replace("\\n", "\n"),
            "client_email": client_email,
            "token_uri": "https://oauth2.googleapis.com/token",
        }

    return None


def initialize_firebase(
    base_dir: Path,
    env: Mapping[str, str] | None = None,
    storage_bucket: str = "",
) -> bool:
    """Initialise the default Firebase app; return ``False`` when unconfigured."""

    try:
        firebase_admin.get_app()
        return True
    except ValueError:
        pass

    account = load_service_account(base_dir, env)
    if account is None:
        logger.info("Firebase credentials not found; using local stores")
        return False
    options = {"storageBucket": storage_bucket} if storage_bucket else None
    try:
        firebase_admin.initialize_app(credentials.Certificate(account), options)
    except (ValueError, OSError) as exc:
        logger.warning("Firebase Admin disabled: %s", exc)
        return False
    return True


class FirestoreRecordStore:
    """``RecordStore`` over Firestore collections, one collection per table."""

    def __init__(self, client: Any = None):
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = firestore.client()
        return self._client

    @staticmethod
    def _row(snapshot: Any) -> dict:
        data = snapshot.to_dict() or {}
        data["id"] = snapshot.id
        return data

    def list(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict]:
        filters = dict(filters or {})
        if "id" in filters:
            # Document ids are not stored as fields; fetch the document directly.
            try:
                snapshot = self.client.collection(table).document(str(filters.pop("id"))).get()
            except _BACKEND_ERRORS as exc:
                raise StoreError(str(exc)) from exc
            if not snapshot.exists:
                return []
            row = self._row(snapshot)
            return [row] if matches(row, filters) else []

        query = self.client.collection(table)
        for field, value in filters.items():
            query = query.where(filter=FieldFilter(field, "==", value))
        if order_by:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            query = query.order_by(order_by, direction=direction)
        try:
            return [self._row(doc) for doc in query.stream()]
        except _BACKEND_ERRORS as exc:
            raise StoreError(str(exc)) from exc

    def get_one(self, table: str, filters: Mapping[str, Any]) -> dict:
        return pick_one(table, self.list(table, filters))

    def insert(self, table: str, record: Mapping[str, Any]) -> dict:
        now = utc_now_iso()
        data = {**dict(record), "created_at": now, "updated_at": now}
        data.pop("id", None)
        try:
            ref = self.client.collection(table).document()
            ref.set(data)
        except _BACKEND_ERRORS as exc:
            raise StoreError(str(exc)) from exc
        return {**data, "id": ref.id}

    def update(self, table: str, record_id: str, fields: Mapping[str, Any]) -> dict:
        changes = {k: v for k, v in fields.items() if k not in {"id", "created_at"}}
        changes["updated_at"] = utc_now_iso()
        ref = self.client.collection(table).document(str(record_id))
        try:
            snapshot = ref.get()
            if not snapshot.exists:
                raise NotFoundError(f"No rows found in {table} with id {record_id}")
            ref.update(changes)
        except _BACKEND_ERRORS as exc:
            raise StoreError(str(exc)) from exc
        return {**(snapshot.to_dict() or {}), **changes, "id": str(record_id)}

    def delete(self, table: str, record_id: str) -> bool:
        ref = self.client.collection(table).document(str(record_id))
        try:
            if not ref.get().exists:
                return False
            ref.delete()
        except _BACKEND_ERRORS as exc:
            raise StoreError(str(exc)) from exc
        return True


class FirebaseObjectStorage:
    """Object storage on a Cloud Storage bucket; logical buckets become folders."""

    def __init__(self, bucket_name: str = "", bucket: Any = None):
        self.bucket_name = bucket_name
        self._bucket = bucket

    @property
    def bucket(self) -> Any:
        if self._bucket is None:
            self._bucket = storage.bucket(self.bucket_name or None)
        return self._bucket

    def upload(self, bucket: str, path: str, data: bytes, content_type: str | None = None) -> None:
        blob = self.bucket.blob(f"{bucket}/{path}")
        try:
            blob.upload_from_string(data, content_type=content_type or "application/octet-stream")
            blob.make_public()
        except _BACKEND_ERRORS as exc:
            raise UploadError(str(exc), path=path) from exc

    def public_url(self, bucket: str, path: str) -> str:
        return self.bucket.blob(f"{bucket}/{path}").public_url
