# adapter_zalora.py
import re
from typing import Optional

from ..fields import FieldExtractor, SelectorConfig, attr, text
from ..schema import SearchFilters
from .base import PlatformAdapter


class ZaloraAdapter(PlatformAdapter):
    """
    zalora.com.ph search. No listing JSON is embedded beyond the occasional
    JSON-LD ItemList, so cards and the /p/ anchor regex do most of the work.
    """

    name = "zalora"
    base_url = "https://www.zalora.com.ph"
    ready_selector = '[data-test-id="productLink"], a[href*="/p/"]'
    product_href_pattern = r"/p/"
    id_patterns = [re.compile(r"/p/[^?#]*?-(\d+)(?:\.html)?(?:[?#]|$)")]
    scroll_steps = 2

    selectors = SelectorConfig(
        containers=[
            "[data-sku]",
            '[data-test-id="productLink"]',
            ".productCard",
            ".product-card",
            '[class*="ProductCard"]',
        ],
        fields={
            "title": FieldExtractor([
                ('[data-test-id="productTitle"]', None),
                ('[class*="name"]', None),
                ('[class*="title"]', None),
                ("h3", None),
                ("h4", None),
                (None, "data-name"),
                ("img", "alt"),
            ]),
            "brand": FieldExtractor([
                ('[data-test-id="productBrandName"]', None),
                ('[class*="brand"]', None),
                (None, "data-brand"),
            ]),
            "price": text('[data-test-id="productPrice"]', '[data-test-id="specialPrice"]', '[class*="price"]'),
            "original_price": text('[data-test-id="originalPrice"]', "del", '[class*="original"]'),
            "discount": text('[data-test-id="discountPercentage"]', '[class*="discount"]'),
            "product_url": FieldExtractor([
                (None, "href"),
                ("a[href*='/p/']", "href"),
                ("^a", "href"),
                ("a", "href"),
            ]),
            "image_url": FieldExtractor([("img", "src"), ("img", "data-src")]),
            "id": attr("data-sku", None),
        },
    )

    def build_search_url(self, query: str, filters: Optional[SearchFilters] = None, page: int = 1) -> str:
        # Zalora has no brand parameter; the brand narrows the free-text query instead.
        q = query.strip()
        if filters and filters.brand and filters.brand.lower() not in q.lower():
            q = f"{filters.brand} {q}"
        return self._url("/search", {"q": q, "page": page if page > 1 else None})
