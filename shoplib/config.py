"""Configuration helpers for the storefront application.

Values are read from the process environment (primed from a ``.env`` file
next to the application) once at start-up and frozen into a dataclass so the
app and tests can pass configuration around explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping
import os

from dotenv import load_dotenv


def env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class ShopConfig:
    """Strongly typed configuration for the storefront service."""

    base_dir: Path
    secret_key: str
    admin_emails: tuple[str, ...]
    google_client_id: str
    google_client_secret: str
    firebase_storage_bucket: str
    data_dir: Path
    media_dir: Path
    backups: int
    force_tls: bool
    trust_proxy_headers: bool
    allowed_origins: tuple[str, ...]
    public_base_url: str
    contact_delay_seconds: float
    host: str
    port: int
    tls_cert_file: str = ""
    tls_key_file: str = ""

    @property
    def oauth_configured(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)


def _coerce_list(raw: str | Iterable[str]) -> tuple[str, ...]:
    if isinstance(raw, str):
        items = [piece.strip() for piece in raw.split(",")]
    else:
        items = [piece.strip() for piece in raw]
    return tuple(filter(None, items))


def _coerce_origins(raw: str | Iterable[str]) -> tuple[str, ...]:
    return _coerce_list(raw) or (
        "https://localhost",
        "https://127.0.0.1",
        "http://localhost",
        "http://127.0.0.1",
    )


def load_shop_config(base_dir: Path, env: Mapping[str, str] | None = None) -> ShopConfig:
    """Load configuration from ``base_dir/.env`` and the given env mapping."""

    base_dir = Path(base_dir)
    load_dotenv(base_dir / ".env")
    env_map = dict(os.environ if env is None else env)

    data_dir = Path(env_map.get("DATA_DIR") or base_dir / "data")
    media_dir = Path(env_map.get("MEDIA_DIR") or data_dir / "media")
    try:
        contact_delay = float(env_map.get("CONTACT_DELAY_SECONDS", "1.0"))
    except ValueError:
        contact_delay = 1.0

    return ShopConfig(
        base_dir=base_dir,
        secret_key=env_map.get("SECRET_KEY", "dev-change-me"),
        admin_emails=tuple(email.lower() for email in _coerce_list(env_map.get("ADMIN_EMAILS", ""))),
        google_client_id=env_map.get("GOOGLE_CLIENT_ID", ""),
        google_client_secret=env_map.get("GOOGLE_CLIENT_SECRET", ""),
        firebase_storage_bucket=env_map.get("FIREBASE_STORAGE_BUCKET", "").strip(),
        data_dir=data_dir,
        media_dir=media_dir,
        backups=max(0, int(env_map.get("STORE_BACKUPS", "2"))),
        force_tls=env_bool(env_map.get("FORCE_TLS"), True),
        trust_proxy_headers=env_bool(env_map.get("TRUST_PROXY_HEADERS"), True),
        allowed_origins=_coerce_origins(env_map.get("ALLOWED_ORIGINS", "")),
        public_base_url=env_map.get("PUBLIC_BASE_URL", "").strip().rstrip("/"),
        contact_delay_seconds=max(0.0, contact_delay),
        host=env_map.get("APP_HOST", "0.0.0.0"),
        port=int(env_map.get("APP_PORT", "7890")),
        tls_cert_file=env_map.get("TLS_CERT_FILE", "").strip(),
        tls_key_file=env_map.get("TLS_KEY_FILE", "").strip(),
    )
