# adapter_shopee.py
import re
from typing import Any, Dict, Optional

from ..fields import FieldExtractor, SelectorConfig, attr, text
from ..schema import SearchFilters
from ..strategies import JsonSource, Raw
from .base import PlatformAdapter, first_value

PRICE_UNIT = 100000  # Shopee stores prices in 1/100000 of the currency unit
IMAGE_CDN = "https://cf.shopee.ph/file/"

_STATE_PATHS = [
    ("items", "data"),
    ("searchItems", "items"),
    ("search", "items"),
    ("data", "items"),
    ("searchResult", "items"),
    ("productList", "items"),
]


def _scaled(v: Any) -> Any:
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return v / PRICE_UNIT
    return v


class ShopeeAdapter(PlatformAdapter):
    name = "shopee"
    base_url = "https://shopee.ph"
    ready_selector = '.shopee-search-item-result__item, .col-xs-2-4, [data-sqe="item"]'
    json_sources = [
        JsonSource(g, _STATE_PATHS)
        for g in ("window.__INITIAL_STATE__", "window.__PRELOADED_STATE__",
                  "window.__REDUX_STATE__", "window.__INITIAL_DATA__")
    ]
    product_href_pattern = r"(?:-i\.\d+\.\d+|/product/\d+/\d+)"
    id_patterns = [re.compile(r"-i\.(\d+)\.(\d+)"), re.compile(r"/product/(\d+)/(\d+)")]
    scroll_steps = 4

    selectors = SelectorConfig(
        containers=[
            '[data-sqe="item"]',
            ".shopee-search-item-result__item",
            ".col-xs-2-4",
            ".shopee-item-card",
            ".shopee-search-result-item",
            '[class*="search-item"]',
            '[class*="product-card"]',
            ".shopee-result-item",
            'div[data-testid="item-card"]',
            'div[class*="item-card"]',
            'div[class*="product-item"]',
        ],
        fields={
            "title": FieldExtractor([
                ('[data-sqe="name"] > div', None),
                ('[data-sqe="name"]', None),
                (".shopee-item-card__text-name", None),
                ('[class*="name"]', None),
                ('div[class*="title"]', None),
                ('div[class*="product-name"]', None),
                ('div[class*="item-name"]', None),
                ("img", "alt"),
            ]),
            "price": text('[data-sqe="price"]', ".shopee-item-card__current-price", '[class*="price"]'),
            "original_price": text(".shopee-item-card__original-price", '[class*="original"]', "del"),
            "discount": text('[class*="discount"]', '[class*="percent"]'),
            "product_url": attr("href", "a[data-sqe='link']", "a"),
            "image_url": FieldExtractor([("img", "src"), ("img", "data-src")]),
            "rating": text('[data-sqe="rating"]', '[class*="rating-star"]'),
            "sales": text('[class*="sold"]'),
            "location": text('[data-sqe="location"]', '[class*="location"]'),
        },
    )

    def build_search_url(self, query: str, filters: Optional[SearchFilters] = None, page: int = 1) -> str:
        # page is 0-based on Shopee
        params = {"keyword": query.strip(), "page": page - 1 if page > 1 else None}
        if filters:
            params["minPrice"] = None if filters.min_price is None else f"{filters.min_price:g}"
            params["maxPrice"] = None if filters.max_price is None else f"{filters.max_price:g}"
        return self._url("/search", params)

    def map_json_item(self, item: Dict[str, Any]) -> Optional[Raw]:
        item = item.get("item_basic") or item
        shop_id = first_value(item, ("shopid", "shop_id", "seller_id"))
        item_id = first_value(item, ("itemid", "item_id", "id", "product_id"))
        name = first_value(item, ("name", "title", "product_name"))
        if not (shop_id and item_id and name):
            return None

        image = first_value(item, ("image", "image_url", "cover"))
        if not image and item.get("images"):
            image = item["images"][0]
        if image and not str(image).startswith(("http", "//")):
            image = IMAGE_CDN + str(image)

        rating = item.get("item_rating") or {}
        counts = rating.get("rating_count") if isinstance(rating, dict) else None
        return {
            "id": f"{shop_id}_{item_id}",
            "title": name,
            "price": _scaled(first_value(item, ("price", "price_min"))),
            "original_price": _scaled(item.get("price_before_discount")) or None,
            "discount": first_value(item, ("raw_discount", "discount", "discount_percentage")),
            "product_url": f"/product/{shop_id}/{item_id}",
            "image_url": image,
            "rating": rating.get("rating_star") if isinstance(rating, dict) else item.get("rating"),
            "rating_count": counts[0] if isinstance(counts, list) and counts else item.get("rating_count"),
            "brand": item.get("brand"),
            "location": first_value(item, ("shop_location", "location")),
            "sales": first_value(item, ("historical_sold", "sold", "sales")),
        }
