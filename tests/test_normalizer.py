import re

import pytest

from shopscrape.errors import MalformedProduct
from shopscrape.normalizer import (
    find_price_in_html,
    normalize,
    normalize_all,
    parse_count,
    parse_discount,
    parse_price,
    parse_rating,
    product_id,
    resolve_image_url,
    resolve_url,
    title_from_url,
)
from shopscrape.schema import Source

BASE = "https://www.zalora.com.ph"


@pytest.mark.parametrize("value,expected", [
    ("₱1,299.00", 1299.0),
    ("PHP 500", 500.0),
    ("php1,050.50", 1050.5),
    ("P 250", 250.0),
    ("&#8369;2,000", 2000.0),
    ("Now only 349", 349.0),
    (799, 799.0),
    (12.5, 12.5),
])
def test_parse_price(value, expected):
    assert parse_price(value) == expected


@pytest.mark.parametrize("value", [None, "", "Sold out", "₱0.00", 0, -5, True])
def test_parse_price_nothing_usable(value):
    assert parse_price(value) is None


def test_find_price_ignores_numbers_in_attributes():
    fragment = '<a href="/p/shirt-1234567"><img src="/img/99.jpg"></a><span>₱ 450.00</span>'
    assert find_price_in_html(fragment) == 450.0


def test_find_price_falls_back_to_price_class():
    assert find_price_in_html('<div class="item-price">1,150</div>') == 1150.0
    assert find_price_in_html("<div>no price here</div>") is None


def test_parse_discount_count_rating():
    assert parse_discount("-20%") == 20.0
    assert parse_discount("35% OFF") == 35.0
    assert parse_discount("150%") is None
    assert parse_discount("30") == 30.0
    assert parse_discount("-15") == 15.0
    assert parse_discount("30 pcs left") is None
    assert parse_count("1.2k sold") == 1200
    assert parse_count("(1,234)") == 1234
    assert parse_count("2M") == 2000000
    assert parse_rating("4.75 out of 5") == 4.75
    assert parse_rating("0") is None
    assert parse_rating(7) is None


def test_resolve_url():
    absolute = "https://www.zalora.com.ph/p/a-1"
    assert resolve_url(BASE, absolute) == absolute
    assert resolve_url(BASE, "/p/a-1") == BASE + "/p/a-1"
    assert resolve_url(BASE + "/", "/p/a-1") == BASE + "/p/a-1"
    assert resolve_url(BASE, "//img.zacdn.com/x.jpg") == "https://img.zacdn.com/x.jpg"
    assert resolve_url(BASE, "p/a-1") == BASE + "/p/a-1"
    assert resolve_url(BASE, "javascript:void(0)") is None
    assert resolve_url(BASE, "#") is None
    assert resolve_url(BASE, None) is None


def test_resolve_image_url_skips_inline_data():
    assert resolve_image_url(BASE, "data:image/gif;base64,AAAA") is None
    assert resolve_image_url(BASE, "/img/a.jpg") == BASE + "/img/a.jpg"


def test_product_id_is_deterministic():
    pats = [re.compile(r"i(\d+)-s(\d+)\.html")]
    url = "https://www.lazada.com.ph/products/phone-i4011-s5022.html"
    assert product_id(url, "lazada", pats) == "4011_5022"
    assert product_id("https://ph.shein.com/Floral-Dress.html", "shein") == "shein-floral-dress-html"
    assert product_id("https://ph.shein.com/", "shein") == product_id("https://ph.shein.com/", "shein")
    assert product_id("https://ph.shein.com/", "shein").startswith("shein-")


def test_title_from_url():
    assert title_from_url("https://ph.shein.com/Floral-Print-Dress-p-1234567.html") == "Floral Print Dress"
    assert title_from_url("https://www.lazada.com.ph/products/samsung-galaxy-a15-i4011-s5022.html") == "Samsung Galaxy A15"
    assert title_from_url("https://shopee.ph/Wireless-Earbuds-i.123.456") == "Wireless Earbuds"


def test_normalize_full_record():
    raw = {
        "title": "  Linen   Shirt ",
        "price": "₱1,299.00",
        "original_price": "₱1,999.00",
        "product_url": "/p/linen-shirt-1020304",
        "image_url": "//dynamic.zacdn.com/linen.jpg",
        "rating": "4.5",
        "rating_count": "(87)",
        "brand": "Mango",
    }
    p = normalize(raw, "zalora", BASE, Source.DOM_SELECTOR, [re.compile(r"-(\d+)$")])
    assert p.title == "Linen Shirt"
    assert p.price == 1299.0
    assert p.original_price == 1999.0
    assert p.discount_percentage == 35.0
    assert p.product_url == BASE + "/p/linen-shirt-1020304"
    assert p.image_url == "https://dynamic.zacdn.com/linen.jpg"
    assert p.id == "1020304"
    assert p.rating_count == 87
    assert p.source == "dom_selector"
    assert p.freshness == "live"


def test_normalize_is_idempotent():
    raw = {"title": "Duramo SL", "price": "PHP 3,200", "original_price": "PHP 4,000",
           "product_url": "/p/duramo-sl-2944410", "rating": 4.2, "rating_count": "1.1k"}
    first = normalize(raw, "zalora", BASE, Source.REGEX_EXTRACTION)
    again = normalize(
        {
            "id": first.id,
            "title": first.title,
            "price": first.price,
            "original_price": first.original_price,
            "discount": first.discount_percentage,
            "product_url": first.product_url,
            "image_url": first.image_url,
            "rating": first.rating,
            "rating_count": first.rating_count,
        },
        "zalora", BASE, Source.REGEX_EXTRACTION,
    )
    assert again == first


def test_normalize_title_falls_back_to_url():
    p = normalize({"price": 459, "product_url": "/Floral-Print-Dress-p-1234567.html"},
                  "shein", "https://ph.shein.com", Source.REGEX_EXTRACTION)
    assert p.title == "Floral Print Dress"


def test_original_price_below_price_is_dropped():
    p = normalize({"title": "Tee", "price": 500, "original_price": 400, "product_url": "/p/tee-1"},
                  "zalora", BASE, Source.DOM_SELECTOR)
    assert p.original_price is None
    assert p.discount_percentage is None


@pytest.mark.parametrize("raw", [
    {"title": "No url", "price": 10},
    {"title": "No price", "product_url": "/p/x-1"},
    {"title": "Free", "price": "₱0", "product_url": "/p/x-2"},
])
def test_normalize_rejects_incomplete_records(raw):
    with pytest.raises(MalformedProduct):
        normalize(raw, "zalora", BASE, Source.DOM_SELECTOR)


def test_normalize_all_drops_malformed_and_duplicates():
    raws = [
        {"title": "A", "price": 100, "product_url": "/p/a-1"},
        {"title": "A again", "price": 100, "product_url": BASE + "/p/a-1"},
        {"title": "B", "product_url": "/p/b-2"},
        {"title": "C", "price": "₱300", "product_url": "/p/c-3"},
    ]
    out = normalize_all(raws, "zalora", BASE, Source.DOM_SELECTOR)
    assert [p.title for p in out] == ["A", "C"]
