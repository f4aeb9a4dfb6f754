import pytest

from shoplib.media import LocalObjectStorage
from shoplib.storage import LocalRecordStore
from storefront import app as flask_app
from storefront.services.shop import ShopService

ADMIN_EMAIL = "owner@example.com"


@pytest.fixture(autouse=True)
def configure_test_env(tmp_path, monkeypatch):
    flask_app.app.config.update(TESTING=True, SESSION_COOKIE_SECURE=False)
    flask_app.talisman.force_https = False
    shop = ShopService(
        store=LocalRecordStore(tmp_path / "data", backups=2),
        media=LocalObjectStorage(tmp_path / "media"),
    )
    monkeypatch.setattr(flask_app, "SHOP", shop)
    monkeypatch.setattr(flask_app, "FIREBASE_READY", False)
    monkeypatch.setattr(flask_app, "CONTACT_DELAY_SECONDS", 0)
    monkeypatch.setattr(flask_app, "ADMIN_EMAILS", frozenset({ADMIN_EMAIL}))
    yield shop
    shop.close()


@pytest.fixture
def client():
    return flask_app.app.test_client()


@pytest.fixture
def admin_client(client):
    with client.session_transaction() as session:
        session["user"] = {"email": ADMIN_EMAIL}
        session["is_admin"] = True
    return client
