import json

from bs4 import BeautifulSoup

from shopscrape.fields import FieldExtractor, SelectorConfig, attr, text
from shopscrape.schema import RawPage, Source
from shopscrape.strategies import (
    DomSelectorStrategy,
    EmbeddedJsonStrategy,
    ExtractionStrategyChain,
    JsonSource,
    RegexStrategy,
)

from conftest import load_fixture


def page(html: str, platform: str = "test") -> RawPage:
    return RawPage(platform=platform, url="https://example.test/search", html=html)


class StubStrategy:
    def __init__(self, source, records):
        self.source = source
        self.records = records
        self.calls = 0

    def extract(self, page):
        self.calls += 1
        return list(self.records)


CARD_CONFIG = SelectorConfig(
    containers=[".missing", ".card"],
    fields={
        "title": text(".name"),
        "price": text(".price"),
        "product_url": attr("href", "a"),
    },
)


def test_chain_falls_through_to_regex():
    json_s = StubStrategy(Source.SCRIPT_JSON, [])
    dom_s = StubStrategy(Source.DOM_SELECTOR, [{"title": "no price", "product_url": "/x"}])
    regex_s = StubStrategy(Source.REGEX_EXTRACTION, [{"title": "t", "price": "₱100", "product_url": "/p/t-1"}])
    records, source = ExtractionStrategyChain([json_s, dom_s, regex_s]).run(page(""))
    assert source == Source.REGEX_EXTRACTION
    assert records == [{"title": "t", "price": "₱100", "product_url": "/p/t-1"}]
    assert (json_s.calls, dom_s.calls, regex_s.calls) == (1, 1, 1)


def test_chain_stops_at_first_productive_strategy():
    json_s = StubStrategy(Source.SCRIPT_JSON, [{"price": 5, "product_url": "/a"}])
    regex_s = StubStrategy(Source.REGEX_EXTRACTION, [{"price": 6, "product_url": "/b"}])
    records, source = ExtractionStrategyChain([json_s, regex_s]).run(page(""))
    assert source == Source.SCRIPT_JSON
    assert regex_s.calls == 0


def test_chain_with_nothing_returns_no_source():
    assert ExtractionStrategyChain([StubStrategy(Source.SCRIPT_JSON, [])]).run(page("")) == ([], None)


def test_chain_caps_records():
    many = [{"price": i + 1, "product_url": f"/p/{i}"} for i in range(30)]
    records, _ = ExtractionStrategyChain([StubStrategy(Source.SCRIPT_JSON, many)], limit=20).run(page(""))
    assert len(records) == 20


def test_chain_falls_through_when_every_record_is_rejected():
    dom_s = StubStrategy(Source.DOM_SELECTOR, [{"price": "₱100", "product_url": "/wishlist/add"}])
    regex_s = StubStrategy(Source.REGEX_EXTRACTION, [{"price": "₱100", "product_url": "/p/tee-1"}])
    def keep_product_pages(records, source):
        return [r for r in records if r["product_url"].startswith("/p/")]

    records, source = ExtractionStrategyChain([dom_s, regex_s]).run(page(""), keep_product_pages)
    assert source == Source.REGEX_EXTRACTION
    assert records == [{"price": "₱100", "product_url": "/p/tee-1"}]


def test_script_and_fragment_links_are_not_plausible():
    json_s = StubStrategy(Source.SCRIPT_JSON, [
        {"price": 100, "product_url": "javascript:void(0)"},
        {"price": 100, "product_url": "#"},
    ])
    assert ExtractionStrategyChain([json_s]).run(page("")) == ([], None)


def test_dom_strategy_tries_containers_in_order_and_caps():
    cards = "".join(
        f'<div class="card"><a href="/p/item-{i}"><span class="name">Item {i}</span></a>'
        f'<span class="price">₱{100 + i}</span></div>'
        for i in range(25)
    )
    records = DomSelectorStrategy(CARD_CONFIG, limit=20).extract(page(f"<html><body>{cards}</body></html>"))
    assert len(records) == 20
    assert records[0] == {"title": "Item 0", "price": "₱100", "product_url": "/p/item-0"}


def test_field_extractor_ancestor_and_self():
    html = '<p><a href="/p/self-1"><span class="tile" data-sku="SKU1"><img alt="Alt title"></span></a></p>'
    config = SelectorConfig(
        containers=[".tile"],
        fields={
            "id": attr("data-sku", None),
            "title": FieldExtractor([(".name", None), ("img", "alt")]),
            "product_url": FieldExtractor([(None, "href"), ("^a", "href")]),
        },
    )
    el = BeautifulSoup(html, "lxml").select_one(".tile")
    assert config.extract(el) == {"id": "SKU1", "title": "Alt title", "product_url": "/p/self-1"}


def test_href_extractor_skips_non_navigable_links():
    html = (
        '<div class="card"><a href="javascript:void(0)">♡</a><a href="#reviews">12</a>'
        '<a href="/p/tee-1">Tee</a></div>'
    )
    el = BeautifulSoup(html, "lxml").select_one(".card")
    assert attr("href", "a").extract(el) == "/p/tee-1"
    assert text("a").extract(el) == "♡"


def test_embedded_json_global_assignment():
    data = {"mods": {"listItems": [{"name": "Phone", "price": "999", "productUrl": "/products/phone-i1-s2.html"}]}}
    html = f"<script>var x = 1; window.pageData = {json.dumps(data)};</script>"
    strategy = EmbeddedJsonStrategy(
        [JsonSource("window.pageData", [("mods", "listItems")])],
        lambda item: {"title": item["name"], "price": item["price"], "product_url": item["productUrl"]},
    )
    assert strategy.extract(page(html)) == [
        {"title": "Phone", "price": "999", "product_url": "/products/phone-i1-s2.html"}
    ]


def test_embedded_json_reads_json_ld_item_list():
    ld = {
        "@context": "https://schema.org",
        "@type": "ItemList",
        "itemListElement": [
            {"@type": "ListItem", "position": 1, "item": {
                "@type": "Product", "name": "Linen Shirt", "url": "https://www.zalora.com.ph/p/linen-shirt-1",
                "image": ["https://img/1.jpg"], "brand": {"@type": "Brand", "name": "Mango"},
                "offers": {"@type": "Offer", "price": "1299.00", "priceCurrency": "PHP"},
            }},
        ],
    }
    html = f'<script type="application/ld+json">{json.dumps(ld)}</script>'
    records = EmbeddedJsonStrategy([], lambda item: item).extract(page(html))
    assert len(records) == 1
    assert records[0]["title"] == "Linen Shirt"
    assert records[0]["price"] == "1299.00"
    assert records[0]["brand"] == "Mango"
    assert records[0]["image_url"] == "https://img/1.jpg"


def test_embedded_json_skips_broken_payloads():
    html = "<script>window.pageData = {not json};</script>"
    strategy = EmbeddedJsonStrategy([JsonSource("window.pageData", [("mods", "listItems")])], lambda i: i)
    assert strategy.extract(page(html)) == []


def test_regex_strategy_on_zalora_markup():
    records = RegexStrategy(r"/p/").extract(page(load_fixture("zalora_search.html")))
    by_url = {r["product_url"]: r for r in records}

    pegasus = by_url["/p/nike-air-zoom-pegasus-40-running-shoes-black-3187651"]
    assert pegasus["title"] == "Air Zoom Pegasus 40 Running Shoes"
    assert pegasus["price"] == 7495.0
    assert pegasus["image_url"] == "https://dynamic.zacdn.com/pegasus-40.jpg"

    shorts = by_url["/p/cotton-on-linen-blend-shorts-beige-1020304"]
    assert shorts["title"] == "Linen Blend Shorts"
    assert shorts["image_url"] == "//dynamic.zacdn.com/linen-shorts.jpg"
    assert shorts["price"] == 899.75

    # the repeated pegasus link is not a second product, the sold-out tile has no price
    assert len(records) == 4
    assert by_url["/p/mystery-item-out-of-stock-5550001"]["price"] is None
