"""Server-rendered storefront with an admin back office.

- Public pages: home, catalogue with search/category/sort, product detail,
  the participation blog and a contact form.
- Products, categories and blog posts live in Firestore when Firebase Admin
  credentials are available, otherwise in local JSON stores with redundant
  backups. Images go to Cloud Storage or the local media directory.
- Admin access uses server-side Google OAuth (OIDC) with Authlib. An account
  is an admin when its email is listed in ``ADMIN_EMAILS`` or its Firebase
  user carries the ``is_admin`` custom claim.
- A small read-only JSON API mirrors the public pages.
"""

from __future__ import annotations

import atexit
import datetime
import logging
import os
import time
from functools import wraps
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

from authlib.integrations.base_client.errors import OAuthError
from authlib.integrations.flask_client import OAuth
from firebase_admin import auth as fb_auth
from firebase_admin import exceptions as fb_exceptions
from flask import (
    Flask,
    abort,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    send_from_directory,
    session,
    url_for,
)
from flask_cors import CORS
from flask_talisman import Talisman
from pydantic import ValidationError as PayloadError
from werkzeug.middleware.proxy_fix import ProxyFix

from shoplib.catalogue import ALL_CATEGORIES, DEFAULT_SORT, SORT_KEYS, filter_products
from shoplib.config import load_shop_config
from shoplib.errors import NotFoundError, StoreError, ValidationError
from shoplib.firebase import FirebaseObjectStorage, FirestoreRecordStore, initialize_firebase
from shoplib.gallery import Gallery
from shoplib.media import LocalObjectStorage
from shoplib.models import ContactMessage
from shoplib.slugs import match_product_slug
from shoplib.storage import BLOG_POSTS, CATEGORIES, PRODUCTS, LocalRecordStore
from shoplib.uploads import PendingUpload
from storefront.services.shop import ShopService

BASE_DIR = Path(__file__).resolve().parent
TEMPLATE_DIR = BASE_DIR / "templates"
STATIC_DIR = BASE_DIR / "static"

# ---------------------------------------------------------------------------
# Config / Secrets
# ---------------------------------------------------------------------------
CONFIG = load_shop_config(BASE_DIR)
FORCE_TLS = CONFIG.force_tls
ADMIN_EMAILS = frozenset(CONFIG.admin_emails)
CONTACT_DELAY_SECONDS = CONFIG.contact_delay_seconds

# ---------------------------------------------------------------------------
# Flask app
# ---------------------------------------------------------------------------
app = Flask(
    __name__,
    template_folder=str(TEMPLATE_DIR),
    static_folder=str(STATIC_DIR),
)
app.config.update(
    SECRET_KEY=CONFIG.secret_key,
    SESSION_COOKIE_SAMESITE="Lax",
    PREFERRED_URL_SCHEME="https" if FORCE_TLS else "http",
    PUBLIC_BASE_URL=CONFIG.public_base_url,
    MAX_CONTENT_LENGTH=32 * 1024 * 1024,
)

CORS(app, resources={r"/api/*": {"origins": list(CONFIG.allowed_origins)}})

# Security headers
talisman = Talisman(
    app,
    content_security_policy=None,
    force_https=FORCE_TLS,
    session_cookie_secure=FORCE_TLS,
)

if CONFIG.trust_proxy_headers:
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)  # type: ignore[assignment]

for tls_file in (CONFIG.tls_cert_file, CONFIG.tls_key_file):
    if tls_file and not Path(tls_file).exists():
        app.logger.warning("TLS file not found at %s", tls_file)

# ---------------------------------------------------------------------------
# Google OAuth (server-side)
# ---------------------------------------------------------------------------
if not CONFIG.oauth_configured:
    app.logger.warning("GOOGLE_CLIENT_ID/SECRET not set; /login will 503")

oauth = OAuth(app)
oauth.register(
    name="google",
    client_id=CONFIG.google_client_id,
    client_secret=CONFIG.google_client_secret,
    server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
    client_kwargs={"scope": "openid email profile"},
)

# ---------------------------------------------------------------------------
# Record store and object storage
# ---------------------------------------------------------------------------
FIREBASE_READY = initialize_firebase(BASE_DIR, os.environ, CONFIG.firebase_storage_bucket)


def build_shop_service(firebase_ready: bool) -> ShopService:
    """Firestore/Cloud Storage when Firebase is configured, local files otherwise."""

    if firebase_ready:
        store = FirestoreRecordStore()
    else:
        store = LocalRecordStore(CONFIG.data_dir, backups=CONFIG.backups)
    if firebase_ready and CONFIG.firebase_storage_bucket:
        media = FirebaseObjectStorage(CONFIG.firebase_storage_bucket)
    else:
        media = LocalObjectStorage(CONFIG.media_dir)
    app.logger.info(
        "Using %s with %s",
        type(store).__name__,
        type(media).__name__,
    )
    return ShopService(store=store, media=media)


SHOP = build_shop_service(FIREBASE_READY)


@atexit.register
def shutdown_shop() -> None:
    """Stop in-flight fetches from replacing the cached snapshots on shutdown."""

    SHOP.close()


ENTITY_KINDS = {
    "products": PRODUCTS,
    "categories": CATEGORIES,
    "posts": BLOG_POSTS,
}
FORM_TEMPLATES = {
    "products": "admin/product_form.html",
    "categories": "admin/category_form.html",
    "posts": "admin/post_form.html",
}


# ---------------------------------------------------------------------------
# Template helpers
# ---------------------------------------------------------------------------
@app.template_filter("money")
def money(value) -> str:
    if value is None:
        return ""
    return f"${float(value):,.2f}"


@app.template_filter("format_date")
def format_date(value, fmt: str = "%B %d, %Y") -> str:
    if not value:
        return ""
    if isinstance(value, str):
        try:
            value = datetime.datetime.fromisoformat(value)
        except ValueError:
            return value
    return value.strftime(fmt)


@app.template_global()
def page_href(base_url: Optional[str], param: str, value, *drop: str) -> str:
    """Link setting one query argument.

    ``base_url=None`` keeps the current page and its other query arguments,
    minus any named in ``drop``.
    """

    if base_url is not None:
        return f"{base_url}?{urlencode({param: value})}"
    args = {key: val for key, val in request.args.items() if key not in drop}
    args[param] = str(value)
    return f"{request.path}?{urlencode(args)}"


@app.template_global()
def card_gallery(product) -> Gallery:
    return Gallery.from_param(product.image_urls, request.args.get(f"image_{product.id}"))


@app.context_processor
def inject_template_globals():
    return {
        "is_admin": is_admin(),
        "admin_email": current_user_email(),
        "current_year": datetime.datetime.now(datetime.UTC).year,
    }


def _wants_json_response() -> bool:
    if request.is_json or request.path.startswith("/api/"):
        return True
    accept = request.accept_mimetypes
    return bool(accept) and accept.best == "application/json"


def _fetch(loader, fallback):
    """Run a read, flashing store errors and falling back to the last snapshot."""

    try:
        return loader()
    except StoreError as exc:
        app.logger.warning("Fetch failed: %s", exc)
        flash(str(exc), "danger")
        return fallback()


def _pending_files(field_name: str) -> list[PendingUpload]:
    pending: list[PendingUpload] = []
    for storage in request.files.getlist(field_name):
        if storage and storage.filename:
            pending.append(PendingUpload(storage.filename, storage.read(), storage.mimetype))
    return pending


# ---------------------------------------------------------------------------
# Admin session helpers (Google OAuth)
# ---------------------------------------------------------------------------
def _normalise_email(value: str | None) -> str:
    return (value or "").strip().lower()


def current_user_email() -> str | None:
    user = session.get("user") or {}
    email = user.get("email")
    return _normalise_email(email) if isinstance(email, str) else None


def is_admin() -> bool:
    return bool(session.get("is_admin"))


def admin_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not is_admin():
            if _wants_json_response():
                if session.get("user"):
                    return jsonify({"error": "Admin privileges required"}), 403
                return jsonify({"error": "Authentication required"}), 401
            return redirect(url_for("admin_login"))
        return fn(*args, **kwargs)

    return wrapper


def admin_flag_for_email(email: str) -> bool:
    normalised = _normalise_email(email)
    if not normalised:
        return False
    if normalised in ADMIN_EMAILS:
        return True
    if not FIREBASE_READY:
        return False
    try:
        user = fb_auth.get_user_by_email(normalised)
    except fb_auth.UserNotFoundError:
        return False
    except (ValueError, fb_exceptions.FirebaseError) as exc:
        app.logger.warning("Admin claim lookup failed for %s: %s", normalised, exc)
        return False
    claims = user.custom_claims or {}
    return bool(claims.get("is_admin"))


def _oauth_redirect_uri(endpoint: str) -> str:
    if CONFIG.public_base_url:
        return CONFIG.public_base_url + url_for(endpoint)
    return url_for(endpoint, _external=True, _scheme="https" if FORCE_TLS else "http")


# ---------------------------------------------------------------------------
# OAuth routes (admin)
# ---------------------------------------------------------------------------
@app.route("/admin/login")
def admin_login():
    if is_admin():
        return redirect(url_for("admin_dashboard"))
    error = session.pop("login_error", None)
    return render_template("admin/login.html", error=error, oauth_ready=CONFIG.oauth_configured)


@app.route("/login")
def login():
    if not CONFIG.oauth_configured:
        return "Google OAuth not configured", 503
    return oauth.google.authorize_redirect(_oauth_redirect_uri("auth_callback"))


@app.route("/auth/callback")
def auth_callback():
    if not CONFIG.oauth_configured:
        return "Google OAuth not configured", 503

    try:
        token = oauth.google.authorize_access_token()
    except OAuthError as exc:
        app.logger.warning("Google sign-in failed: %s", exc)
        session["login_error"] = "Google sign-in failed. Please try again."
        return redirect(url_for("admin_login"))

    info = token.get("userinfo") or {}
    if not info:
        resp = oauth.google.get("https://openidconnect.googleapis.com/v1/userinfo", token=token)
        info = resp.json() if resp else {}

    email = _normalise_email(info.get("email"))
    if not admin_flag_for_email(email):
        session.clear()
        session["login_error"] = (
            "This Google account is not authorised for the admin dashboard."
        )
        return redirect(url_for("admin_login"))

    session["user"] = {"email": email, "name": info.get("name") or ""}
    session["is_admin"] = True
    return redirect(url_for("admin_dashboard"))


@app.route("/logout")
def logout():
    session.clear()
    return redirect(url_for("storefront_home"))


# ---------------------------------------------------------------------------
# Storefront views
# ---------------------------------------------------------------------------
@app.route("/")
def storefront_home():
    products = _fetch(SHOP.products, SHOP.cached_products)
    posts = _fetch(SHOP.published_posts, lambda: ())
    featured = [product for product in products if product.is_featured][:4]
    return render_template(
        "storefront/home.html",
        featured=featured or list(products[:4]),
        posts=list(posts[:3]),
    )


@app.route("/catalogue")
def catalogue():
    query = request.args.get("q", "").strip()
    category = request.args.get("category") or ALL_CATEGORIES
    sort_key = request.args.get("sort") or DEFAULT_SORT
    products = _fetch(SHOP.products, SHOP.cached_products)
    categories = _fetch(SHOP.categories, SHOP.cached_categories)

    # ?view=<slug> opens the quick-view dialog over the listing.
    quick = quick_gallery = None
    if request.args.get("view"):
        quick = match_product_slug(request.args["view"], products)
        if quick is not None:
            quick_gallery = Gallery.from_param(quick.image_urls, request.args.get("view_image"))
    close_args = {key: val for key, val in request.args.items() if key not in ("view", "view_image")}

    return render_template(
        "storefront/catalogue.html",
        products=filter_products(products, query, category, sort_key),
        quick=quick,
        quick_gallery=quick_gallery,
        close_url=url_for("catalogue", **close_args),
        categories=categories,
        query=query,
        category=category,
        sort_key=sort_key,
        sort_keys=SORT_KEYS,
        all_categories=ALL_CATEGORIES,
    )


@app.route("/catalogue/<product_slug>")
def product_detail(product_slug: str):
    try:
        product = SHOP.find_product(product_slug)
    except StoreError as exc:
        flash(str(exc), "danger")
        return redirect(url_for("catalogue"))
    if product is None:
        flash("Product not found", "warning")
        return redirect(url_for("catalogue"))
    gallery = Gallery.from_param(product.image_urls, request.args.get("image"))
    return render_template("storefront/product_detail.html", product=product, gallery=gallery)


@app.route("/participation")
def participation():
    posts = _fetch(SHOP.published_posts, lambda: ())
    return render_template("storefront/participation.html", posts=posts)


@app.route("/participation/<slug>")
def post_detail(slug: str):
    try:
        post = SHOP.published_post(slug)
    except NotFoundError:
        return render_template("storefront/not_found.html", what="Post"), 404
    except StoreError as exc:
        flash(str(exc), "danger")
        return redirect(url_for("participation"))
    # The lightbox opens only when an image index is in the query string.
    lightbox = None
    if request.args.get("image") is not None:
        lightbox = Gallery.from_param(post.image_urls, request.args.get("image"))
    return render_template("storefront/post_detail.html", post=post, lightbox=lightbox)


@app.route("/contact", methods=["GET", "POST"])
def contact():
    if request.method == "GET":
        return render_template("storefront/contact.html", values={})

    values = {key: request.form.get(key, "") for key in ("name", "email", "subject", "message")}
    try:
        ContactMessage(**values)
    except PayloadError as err:
        flash("; ".join(e["msg"] for e in err.errors()), "danger")
        return render_template("storefront/contact.html", values=values), 400
    if CONTACT_DELAY_SECONDS:
        time.sleep(CONTACT_DELAY_SECONDS)
    flash("Thank you for your message! We'll get back to you soon.", "success")
    return redirect(url_for("contact"))


@app.route("/media/<bucket>/<path:filename>")
def media(bucket: str, filename: str):
    if not isinstance(SHOP.media, LocalObjectStorage):
        abort(404)
    return send_from_directory(SHOP.media.root / bucket, filename)


# ---------------------------------------------------------------------------
# JSON read API
# ---------------------------------------------------------------------------
def _product_json(product) -> dict:
    return {**product.model_dump(mode="json"), "slug": product.slug}


@app.route("/api/products", methods=["GET"])
def api_products():
    try:
        products = SHOP.products()
    except StoreError as exc:
        return jsonify({"error": str(exc)}), 500
    selected = filter_products(
        products,
        request.args.get("q", ""),
        request.args.get("category") or ALL_CATEGORIES,
        request.args.get("sort") or DEFAULT_SORT,
    )
    return jsonify([_product_json(product) for product in selected])


@app.route("/api/products/<product_slug>", methods=["GET"])
def api_product(product_slug: str):
    try:
        product = SHOP.find_product(product_slug)
    except StoreError as exc:
        return jsonify({"error": str(exc)}), 500
    if product is None:
        return jsonify({"error": "Product not found"}), 404
    return jsonify(_product_json(product))


@app.route("/api/categories", methods=["GET"])
def api_categories():
    try:
        categories = SHOP.categories()
    except StoreError as exc:
        return jsonify({"error": str(exc)}), 500
    return jsonify([category.model_dump(mode="json") for category in categories])


@app.route("/api/posts", methods=["GET"])
def api_posts():
    try:
        posts = SHOP.published_posts()
    except StoreError as exc:
        return jsonify({"error": str(exc)}), 500
    return jsonify([post.model_dump(mode="json") for post in posts])


@app.route("/api/posts/<slug>", methods=["GET"])
def api_post(slug: str):
    try:
        post = SHOP.published_post(slug)
    except NotFoundError:
        return jsonify({"error": "Post not found"}), 404
    except StoreError as exc:
        return jsonify({"error": str(exc)}), 500
    return jsonify(post.model_dump(mode="json"))


# ---------------------------------------------------------------------------
# Admin dashboard (SSR)
# ---------------------------------------------------------------------------
def _entity_form(kind: str):
    if kind == "products":
        return SHOP.product_form()
    if kind == "categories":
        return SHOP.category_form()
    if kind == "posts":
        return SHOP.blog_post_form()
    abort(404)


def _render_form(kind: str, form, status: int = 200):
    categories = ()
    if kind == "products":
        categories = _fetch(SHOP.categories, SHOP.cached_categories)
    return render_template(FORM_TEMPLATES[kind], kind=kind, form=form, categories=categories), status


def _load_record(form, record_id: str) -> Optional[dict]:
    """Fetch one record for editing or deletion, flashing when it is missing."""

    try:
        return SHOP.get_record(form.table, record_id)
    except NotFoundError:
        flash(f"{form.label} not found", "warning")
    except StoreError as exc:
        flash(str(exc), "danger")
    return None


@app.route("/admin")
@admin_required
def admin_dashboard():
    tab = request.args.get("tab", "products")
    if tab not in ENTITY_KINDS:
        tab = "products"
    return render_template(
        "admin/dashboard.html",
        tab=tab,
        products=_fetch(SHOP.products, SHOP.cached_products),
        categories=_fetch(SHOP.categories, SHOP.cached_categories),
        posts=_fetch(SHOP.all_posts, SHOP.cached_posts),
    )


@app.route("/admin/<kind>/new")
@admin_required
def admin_new(kind: str):
    return _render_form(kind, _entity_form(kind))


@app.route("/admin/<kind>/<record_id>/edit")
@admin_required
def admin_edit(kind: str, record_id: str):
    form = _entity_form(kind)
    record = _load_record(form, record_id)
    if record is None:
        return redirect(url_for("admin_dashboard", tab=kind))
    form.load_for_edit(record)
    return _render_form(kind, form)


@app.route("/admin/<kind>", methods=["POST"])
@app.route("/admin/<kind>/<record_id>", methods=["POST"])
@admin_required
def admin_save(kind: str, record_id: Optional[str] = None):
    form = _entity_form(kind)
    if record_id is not None:
        record = _load_record(form, record_id)
        if record is None:
            return redirect(url_for("admin_dashboard", tab=kind))
        form.load_for_edit(record)
    form.update(request.form)

    uploads = None
    if kind == "products":
        outcome, uploads = SHOP.save_product(form, _pending_files("images"))
    elif kind == "posts":
        images = _pending_files("image")
        outcome, uploads = SHOP.save_blog_post(
            form,
            images[0] if images else None,
            request.form.get("image_url", ""),
        )
    else:
        outcome = form.submit()

    if uploads is not None and uploads.error is not None:
        flash(f"Image upload failed: {uploads.error}", "danger")
    if not outcome.ok:
        flash(outcome.message, "danger")
        status = 400 if isinstance(outcome.error, ValidationError) else 200
        return _render_form(kind, form, status)
    flash(outcome.message, "success")
    return redirect(url_for("admin_dashboard", tab=kind))


@app.route("/admin/<kind>/<record_id>/delete", methods=["GET", "POST"])
@admin_required
def admin_delete(kind: str, record_id: str):
    form = _entity_form(kind)
    if request.method == "GET":
        record = _load_record(form, record_id)
        if record is None:
            return redirect(url_for("admin_dashboard", tab=kind))
        return render_template(
            "admin/confirm_delete.html",
            kind=kind,
            label=form.label,
            record_id=record_id,
            title=record.get("name") or record.get("title") or record_id,
        )

    confirmed = request.form.get("confirm") == "yes"
    outcome = form.delete(record_id, confirmed)
    if outcome.ok:
        flash(outcome.message, "success")
    elif outcome.error is not None:
        flash(outcome.message, "danger")
    else:
        flash(outcome.message, "info" if not confirmed else "warning")
    return redirect(url_for("admin_dashboard", tab=kind))


# ---------------------------------------------------------------------------
# Security headers
# ---------------------------------------------------------------------------
@app.after_request
def secure_headers(resp):
    resp.headers["X-Content-Type-Options"] = "nosniff"
    resp.headers["X-Frame-Options"] = "DENY"
    return resp


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    # Prefer explicit certificate pair when provided, fall back to adhoc for local dev
    if CONFIG.tls_cert_file and CONFIG.tls_key_file:
        ssl_ctx = (CONFIG.tls_cert_file, CONFIG.tls_key_file)
    elif FORCE_TLS:
        ssl_ctx = "adhoc"
    else:
        ssl_ctx = None
    app.run(host=CONFIG.host, port=CONFIG.port, ssl_context=ssl_ctx)
