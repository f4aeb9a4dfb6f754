import pytest

from shoplib.models import Product
from shoplib.slugs import (
    category_slug,
    match_product_slug,
    name_from_product_slug,
    product_slug,
    slugify,
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Spring Pop-Up 2024", "spring-pop-up-2024"),
        ("  Hello,   World!  ", "hello-world"),
        ("Café & Co.", "caf-co"),
        ("---", ""),
        ("", ""),
    ],
)
def test_slugify(text, expected):
    assert slugify(text) == expected


@pytest.mark.parametrize(
    "text",
    ["Spring Pop-Up 2024", "--already-a-slug--", "ÀÉÎ õü", "a__b  c", "!!!", "x" * 200],
)
def test_slugify_is_idempotent(text):
    once = slugify(text)
    assert slugify(once) == once


def test_product_slug_keeps_underscores_and_drops_punctuation():
    assert product_slug("Linen Shirt") == "linen-shirt"
    assert product_slug("Wool  Coat (Navy)") == "wool-coat-navy"
    assert product_slug("snake_case item") == "snake_case-item"


def test_category_slug_only_replaces_whitespace():
    assert category_slug("Summer  Dresses!") == "summer-dresses!"
    assert category_slug("Shirts") == "shirts"


def test_name_from_product_slug_is_lossy():
    assert name_from_product_slug("linen-shirt") == "linen shirt"
    assert name_from_product_slug(product_slug("T-Shirt")) == "t shirt"


def test_match_prefers_exact_name_over_prefix():
    products = [
        Product(name="Linen Shirt Blue"),
        Product(name="Linen Shirt"),
    ]
    assert match_product_slug("linen-shirt", products).name == "Linen Shirt"


def test_match_falls_back_to_prefix():
    products = [Product(name="Linen Shirt Blue"), Product(name="Wool Coat")]
    assert match_product_slug("linen-shirt", products).name == "Linen Shirt Blue"


def test_match_ambiguous_slug_returns_first_in_store_order():
    # Both names collapse to "linen-shirt"; neither equals "linen shirt".
    products = [Product(name="Linen Shirt!"), Product(name="Linen Shirt?")]
    assert product_slug(products[0].name) == product_slug(products[1].name)
    assert match_product_slug("linen-shirt", products) is products[0]
    assert match_product_slug("linen-shirt", list(reversed(products))) is products[1]


def test_match_accepts_plain_dicts_and_misses():
    rows = [{"name": "Silk Scarf"}]
    assert match_product_slug("SILK-SCARF", rows) == {"name": "Silk Scarf"}
    assert match_product_slug("cotton", rows) is None
    assert match_product_slug("", rows) is None
