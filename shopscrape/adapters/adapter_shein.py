# adapter_shein.py
import re
from typing import Any, Dict, Optional
from urllib.parse import quote

from slugify import slugify

from ..fields import FieldExtractor, SelectorConfig, attr, text
from ..schema import SearchFilters
from ..strategies import JsonSource, Raw
from .base import PlatformAdapter, first_value


def _amount(v: Any) -> Any:
    # Shein prices come as {"amount": "299.00", "amountWithSymbol": "₱299.00"}
    if isinstance(v, dict):
        return v.get("amount") or v.get("amountWithSymbol")
    return v


class SheinAdapter(PlatformAdapter):
    name = "shein"
    base_url = "https://ph.shein.com"
    ready_selector = ".product-card, .S-product-item, [data-goods-id]"
    json_sources = [
        JsonSource("gbRawData", [("results", "goods")]),
        JsonSource("window.gbProductListSsrData", [("results", "goods")]),
    ]
    product_href_pattern = r"-p-\d+"
    id_patterns = [re.compile(r"-p-(\d+)")]
    scroll_steps = 3

    selectors = SelectorConfig(
        containers=[
            ".S-product-item",
            ".product-list__item",
            ".product-card",
            ".goods-item",
            ".product-item",
            "[data-goods-id]",
            '[data-cat="goods-list"] > div',
        ],
        fields={
            "title": FieldExtractor([
                (".S-product-item__name", None),
                (".goods-title", None),
                (".goods-title-link", None),
                (".product-name", None),
                ('[class*="title"]', None),
                ("h3", None),
                ("a", "aria-label"),
                ("img", "alt"),
            ]),
            "price": text(
                ".S-product-item__price",
                ".normal-price-ctn__sale-price",
                ".goods-price",
                ".product-price",
                '[class*="sale-price"]',
                '[class*="price"]',
            ),
            "original_price": text(".S-product-item__retail-price", '[class*="retail-price"]', "del"),
            "discount": text(".S-product-item__discount", '[class*="discount"]'),
            "product_url": FieldExtractor([("a[href*='-p-']", "href"), ("a", "href")]),
            "image_url": FieldExtractor([("img", "data-src"), ("img", "src")]),
            "id": attr("data-goods-id", None),
        },
    )

    def build_search_url(self, query: str, filters: Optional[SearchFilters] = None, page: int = 1) -> str:
        params = {"page": page if page > 1 else None}
        if filters:
            params["min_price"] = None if filters.min_price is None else f"{filters.min_price:g}"
            params["max_price"] = None if filters.max_price is None else f"{filters.max_price:g}"
        return self._url(f"/pdsearch/{quote(query.strip(), safe='')}/", params)

    def map_json_item(self, item: Dict[str, Any]) -> Optional[Raw]:
        goods_id = first_value(item, ("goods_id", "goodsId"))
        name = first_value(item, ("goods_name", "goodsName"))
        if not goods_id:
            return None
        url_name = first_value(item, ("goods_url_name",)) or slugify(name or "")
        url_name = re.sub(r"\s+", "-", str(url_name).strip())
        return {
            "id": str(goods_id),
            "title": name,
            "price": _amount(first_value(item, ("salePrice", "sale_price"))),
            "original_price": _amount(first_value(item, ("retailPrice", "retail_price"))),
            "discount": first_value(item, ("unit_discount", "discountValue")),
            "product_url": f"/{url_name}-p-{goods_id}.html",
            "image_url": first_value(item, ("goods_img", "goodsImg")),
            "rating": first_value(item, ("comment_rank_average",)),
            "rating_count": first_value(item, ("comment_num",)),
            "brand": item.get("brand_name") if isinstance(item.get("brand_name"), str) else None,
        }
