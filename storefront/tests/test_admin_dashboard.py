import io

from shoplib.errors import StoreError, UploadError
from shoplib.storage import BLOG_POSTS, CATEGORIES, PRODUCTS


def only(shop, table, **filters):
    return shop.store.get_one(table, filters)


def test_create_product_without_price(admin_client, configure_test_env):
    shop = configure_test_env
    admin_client.post("/admin/categories", data={"name": "Shirts"})

    response = admin_client.post(
        "/admin/products",
        data={"name": "Linen Shirt", "category": "Shirts", "price": "", "sizes": "S, M, L"},
        follow_redirects=True,
    )

    assert response.status_code == 200
    assert b"Product created successfully" in response.data
    stored = only(shop, PRODUCTS, name="Linen Shirt")
    assert stored["sizes"] == ["S", "M", "L"]
    assert stored["price"] is None
    catalogue = admin_client.get("/catalogue?category=Shirts")
    assert b"Linen Shirt" in catalogue.data


def test_edit_product_price_changes_sort_position(admin_client, configure_test_env):
    shop = configure_test_env
    admin_client.post("/admin/products", data={"name": "Linen Shirt", "category": "Shirts", "sizes": "S, M, L"})
    admin_client.post("/admin/products", data={"name": "Wool Scarf", "price": "10"})
    admin_client.post("/admin/products", data={"name": "Silk Tie"})
    product = only(shop, PRODUCTS, name="Linen Shirt")

    edit_page = admin_client.get(f"/admin/products/{product['id']}/edit")
    assert edit_page.status_code == 200
    assert b'value="S, M, L"' in edit_page.data

    response = admin_client.post(
        f"/admin/products/{product['id']}",
        data={"name": "Linen Shirt", "category": "Shirts", "price": "29.99", "sizes": "S, M, L"},
        follow_redirects=True,
    )

    assert b"Product updated successfully" in response.data
    stored = only(shop, PRODUCTS, id=product["id"])
    assert stored["price"] == 29.99
    assert stored["sizes"] == ["S", "M", "L"]
    assert len(shop.store.list(PRODUCTS)) == 3
    by_price = admin_client.get("/api/products?sort=price").get_json()
    assert [item["name"] for item in by_price] == ["Silk Tie", "Wool Scarf", "Linen Shirt"]


def test_delete_category_leaves_products_untouched(admin_client, configure_test_env):
    shop = configure_test_env
    admin_client.post("/admin/categories", data={"name": "Shirts"})
    admin_client.post("/admin/products", data={"name": "Linen Shirt", "category": "Shirts"})
    category = only(shop, CATEGORIES, name="Shirts")
    product_before = only(shop, PRODUCTS, name="Linen Shirt")

    confirm_page = admin_client.get(f"/admin/categories/{category['id']}/delete")
    assert confirm_page.status_code == 200
    assert b"Are you sure you want to delete <strong>Shirts</strong>?" in confirm_page.data

    response = admin_client.post(
        f"/admin/categories/{category['id']}/delete",
        data={"confirm": "yes"},
        follow_redirects=True,
    )

    assert b"Category deleted successfully" in response.data
    assert [row["name"] for row in shop.store.list(CATEGORIES)] == []
    assert only(shop, PRODUCTS, name="Linen Shirt") == product_before
    orphan = admin_client.get("/catalogue?category=Shirts")
    assert b"Linen Shirt" in orphan.data


def test_unpublished_post_is_hidden(admin_client, configure_test_env):
    shop = configure_test_env
    response = admin_client.post(
        "/admin/posts",
        data={"title": "Spring Pop-Up 2024", "slug": "", "content": "Join us in May.", "author_name": "Admin"},
        follow_redirects=True,
    )

    assert b"Blog post created successfully" in response.data
    stored = only(shop, BLOG_POSTS, title="Spring Pop-Up 2024")
    assert stored["slug"] == "spring-pop-up-2024"
    assert stored["is_published"] is False
    assert b"Spring Pop-Up 2024" not in admin_client.get("/participation").data
    detail = admin_client.get("/participation/spring-pop-up-2024")
    assert detail.status_code == 404
    assert b"Post not found" in detail.data

    # The dashboard still lists drafts.
    dashboard = admin_client.get("/admin?tab=posts")
    assert b"Spring Pop-Up 2024" in dashboard.data
    assert b"Draft" in dashboard.data


def test_missing_required_field_never_reaches_store(admin_client, configure_test_env):
    shop = configure_test_env
    response = admin_client.post(
        "/admin/products",
        data={"name": "  ", "price": "12", "images": (io.BytesIO(b"img"), "a.jpg")},
        content_type="multipart/form-data",
    )
    assert response.status_code == 400
    assert b"name is required" in response.data
    assert b'value="12"' in response.data
    assert shop.store.list(PRODUCTS) == []
    assert not (shop.media.root / "product-images").exists()


def test_product_image_upload_and_append_on_edit(admin_client, configure_test_env):
    shop = configure_test_env
    admin_client.post(
        "/admin/products",
        data={
            "name": "Linen Shirt",
            "images": [(io.BytesIO(b"front"), "Front.JPG"), (io.BytesIO(b"back"), "back.png")],
        },
        content_type="multipart/form-data",
    )
    product = only(shop, PRODUCTS, name="Linen Shirt")
    first_urls = product["image_urls"]
    assert len(first_urls) == 2
    assert first_urls[0].startswith("/media/product-images/products/") and first_urls[0].endswith(".jpg")
    assert first_urls[1].endswith(".png")
    assert admin_client.get(first_urls[0]).data == b"front"

    admin_client.post(
        f"/admin/products/{product['id']}",
        data={"name": "Linen Shirt", "images": [(io.BytesIO(b"detail"), "detail")]},
        content_type="multipart/form-data",
    )
    updated = only(shop, PRODUCTS, id=product["id"])
    assert updated["image_urls"][:2] == first_urls
    assert len(updated["image_urls"]) == 3
    assert updated["image_urls"][2].endswith(".bin")


def test_partial_upload_failure_keeps_successful_images(admin_client, configure_test_env, monkeypatch):
    shop = configure_test_env
    real_upload = shop.media.upload
    calls = []

    def flaky_upload(bucket, path, data, content_type=None):
        calls.append(path)
        if len(calls) == 2:
            raise UploadError("storage quota exceeded", path=path)
        real_upload(bucket, path, data, content_type)

    monkeypatch.setattr(shop.media, "upload", flaky_upload)
    response = admin_client.post(
        "/admin/products",
        data={
            "name": "Wool Coat",
            "images": [(io.BytesIO(b"1"), "1.jpg"), (io.BytesIO(b"2"), "2.jpg"), (io.BytesIO(b"3"), "3.jpg")],
        },
        content_type="multipart/form-data",
        follow_redirects=True,
    )

    assert b"Image upload failed: storage quota exceeded" in response.data
    assert b"Product created successfully" in response.data
    assert len(calls) == 2
    assert len(only(shop, PRODUCTS, name="Wool Coat")["image_urls"]) == 1


def test_blog_post_image_file_or_pasted_url(admin_client, configure_test_env):
    shop = configure_test_env
    admin_client.post(
        "/admin/posts",
        data={
            "title": "Pasted",
            "content": "Body",
            "author_name": "Admin",
            "image_url": "https://img.example.com/cover.jpg",
        },
    )
    assert only(shop, BLOG_POSTS, title="Pasted")["image_urls"] == ["https://img.example.com/cover.jpg"]

    admin_client.post(
        "/admin/posts",
        data={
            "title": "Uploaded",
            "content": "Body",
            "author_name": "Admin",
            "is_published": "yes",
            "image": (io.BytesIO(b"png"), "cover.png"),
            "image_url": "https://img.example.com/ignored.jpg",
        },
        content_type="multipart/form-data",
    )
    uploaded = only(shop, BLOG_POSTS, title="Uploaded")
    assert len(uploaded["image_urls"]) == 1
    assert uploaded["image_urls"][0].startswith("/media/blog-images/blog/")
    assert uploaded["is_published"] is True


def test_store_error_message_is_shown_verbatim(admin_client, configure_test_env, monkeypatch):
    shop = configure_test_env

    def rejected(table, record):
        raise StoreError('duplicate key value violates unique constraint "categories_name_key"')

    monkeypatch.setattr(shop.store, "insert", rejected)
    response = admin_client.post("/admin/categories", data={"name": "Shirts"})
    assert response.status_code == 200
    assert b"duplicate key value violates unique constraint" in response.data
    assert b'value="Shirts"' in response.data


def test_cancelled_and_missing_deletes(admin_client, configure_test_env):
    shop = configure_test_env
    admin_client.post("/admin/products", data={"name": "Linen Shirt"})
    product = only(shop, PRODUCTS, name="Linen Shirt")

    cancelled = admin_client.post(
        f"/admin/products/{product['id']}/delete",
        data={"confirm": "no"},
        follow_redirects=True,
    )
    assert b"Deletion cancelled" in cancelled.data
    assert len(shop.store.list(PRODUCTS)) == 1

    missing = admin_client.post("/admin/products/nope/delete", data={"confirm": "yes"}, follow_redirects=True)
    assert b"Product not found" in missing.data


def test_edit_missing_record_redirects_with_flash(admin_client):
    response = admin_client.get("/admin/posts/nope/edit", follow_redirects=True)
    assert response.status_code == 200
    assert b"Blog post not found" in response.data


def test_unknown_entity_kind_is_404(admin_client):
    assert admin_client.get("/admin/orders/new").status_code == 404


def test_new_product_form_offers_categories(admin_client, configure_test_env):
    shop = configure_test_env
    shop.store.insert(CATEGORIES, {"name": "Knitwear"})
    response = admin_client.get("/admin/products/new")
    assert response.status_code == 200
    assert b'<option value="Knitwear">' in response.data


def test_dashboard_summary_counts(admin_client, configure_test_env):
    shop = configure_test_env
    shop.store.insert(PRODUCTS, {"name": "Linen Shirt", "is_featured": True})
    shop.store.insert(PRODUCTS, {"name": "Wool Coat"})
    shop.store.insert(CATEGORIES, {"name": "Shirts", "slug": "shirts"})
    for title, published in (("Open Day", True), ("Market", True), ("Draft Notes", False)):
        shop.store.insert(
            BLOG_POSTS,
            {"title": title, "content": "Body", "author_name": "Admin", "is_published": published},
        )

    body = admin_client.get("/admin").data
    assert b"<dt>Total products</dt><dd>2</dd>" in body
    assert b"<dt>Featured</dt><dd>1</dd>" in body
    assert b"<dt>Total categories</dt><dd>1</dd>" in body
    assert b"<dt>Published posts</dt><dd>2 of 3</dd>" in body
