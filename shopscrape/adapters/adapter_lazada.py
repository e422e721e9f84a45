# adapter_lazada.py
import re
from typing import Optional

from ..fields import FieldExtractor, SelectorConfig, attr, text
from ..schema import SearchFilters
from ..strategies import JsonSource
from .base import PlatformAdapter


class LazadaAdapter(PlatformAdapter):
    """
    lazada.com.ph catalog search.

    The server-rendered page carries the whole listing in
    window.pageData.mods.listItems, which is preferred over the markup
    whenever present.
    """

    name = "lazada"
    base_url = "https://www.lazada.com.ph"
    ready_selector = '[data-qa-locator="product-item"], [data-tracking="product-card"]'
    json_sources = [
        JsonSource("window.pageData", [("mods", "listItems")]),
        JsonSource("window.__INITIAL_STATE__", [("items", "result")]),
    ]
    product_href_pattern = r"/products/"
    id_patterns = [re.compile(r"i(\d+)-s(\d+)\.html")]
    scroll_steps = 1

    selectors = SelectorConfig(
        containers=[
            '[data-qa-locator="product-item"]',
            '[data-tracking="product-card"]',
            ".Bm3ON",
            ".c1_t2i",
            ".c2prKC",
            ".c3KeDq",
            ".c16H9d",
            ".card-product",
            ".product-card",
            ".item-card",
        ],
        fields={
            "title": FieldExtractor([
                (".RfADt a", "title"),
                (".RfADt", None),
                (".c16H9d", None),
                (".c3KeDq", None),
                (".title", None),
                ("h2", None),
                (".product-title", None),
                (".item-title", None),
                ("img", "alt"),
            ]),
            "price": text(".ooOxS", ".c3gUW0", ".price", ".product-price", ".item-price"),
            "original_price": text(".WNoq3 del", "._1m41m del", ".original-price", ".old-price", "del"),
            "discount": text(".IcOsH", ".discount", ".discount-percentage"),
            "product_url": attr("href", ".RfADt a", "a[href*='/products/']", "a"),
            "image_url": FieldExtractor([("img", "src"), ("img", "data-src")]),
            "rating": attr("data-rating", ".rating"),
            "rating_count": text(".qzqFw", ".rating-count", ".review-count"),
            "location": text(".oa6ri", ".location", ".seller-location"),
            "sales": text("._1cEkb span", ".sold"),
            "id": attr("data-item-id", None),
        },
    )

    def build_search_url(self, query: str, filters: Optional[SearchFilters] = None, page: int = 1) -> str:
        params = {"q": query.strip(), "page": page if page > 1 else None}
        if filters:
            if filters.min_price is not None or filters.max_price is not None:
                lo = "" if filters.min_price is None else f"{filters.min_price:g}"
                hi = "" if filters.max_price is None else f"{filters.max_price:g}"
                params["price"] = f"{lo}-{hi}"
            params["brand"] = filters.brand
        return self._url("/catalog/", params)
