"""
Extraction strategies for search-result pages.

Strategies run in a fixed order (embedded JSON, DOM selectors, raw-HTML
regex) and the chain stops at the first one that yields at least one
plausible record. Records are plain dicts keyed by the normalizer's raw field
names (title, price, product_url, image_url, ...).
"""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup

from .fields import SelectorConfig
from .normalizer import find_price_in_html, is_navigable, parse_price
from .schema import RawPage, Source

logger = logging.getLogger(__name__)

Raw = Dict[str, Any]
ItemMapper = Callable[[Dict[str, Any]], Optional[Raw]]

_decoder = json.JSONDecoder()


def is_plausible(raw: Raw) -> bool:
    return is_navigable(raw.get("product_url")) and parse_price(raw.get("price")) is not None


def _dig(data: Any, path: Sequence[str]) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


@dataclass
class JsonSource:
    """A global assignment in an inline script, e.g. window.pageData = {...}."""

    name: str
    paths: List[Tuple[str, ...]] = field(default_factory=list)

    def pattern(self) -> re.Pattern:
        return re.compile(re.escape(self.name) + r"\s*=\s*")


def _first(v):
    return v[0] if isinstance(v, list) and v else v


def _ld_product_to_raw(node: Dict[str, Any]) -> Optional[Raw]:
    offers = _first(node.get("offers")) or {}
    rating = node.get("aggregateRating") or {}
    brand = node.get("brand")
    image = _first(node.get("image"))
    if isinstance(image, dict):
        image = image.get("url")
    return {
        "title": node.get("name"),
        "product_url": node.get("url") or (offers.get("url") if isinstance(offers, dict) else None),
        "price": (offers.get("price") or offers.get("lowPrice")) if isinstance(offers, dict) else None,
        "image_url": image,
        "brand": brand.get("name") if isinstance(brand, dict) else brand,
        "rating": rating.get("ratingValue") if isinstance(rating, dict) else None,
        "rating_count": (rating.get("reviewCount") or rating.get("ratingCount")) if isinstance(rating, dict) else None,
        "id": node.get("sku") or node.get("productID"),
    }


def _ld_nodes(data: Any) -> List[Dict[str, Any]]:
    """Product nodes from a JSON-LD payload: a Product, an ItemList of them, or an @graph."""
    if isinstance(data, list):
        out = []
        for d in data:
            out.extend(_ld_nodes(d))
        return out
    if not isinstance(data, dict):
        return []
    if "@graph" in data:
        return _ld_nodes(data["@graph"])
    t = data.get("@type")
    types = t if isinstance(t, list) else [t]
    if "Product" in types:
        return [data]
    if "ItemList" in types:
        out = []
        for el in data.get("itemListElement") or []:
            if isinstance(el, dict) and isinstance(el.get("item"), dict):
                el = el["item"]
            out.extend(_ld_nodes(el))
        return out
    return []


class EmbeddedJsonStrategy:
    source = Source.SCRIPT_JSON

    def __init__(self, sources: Sequence[JsonSource], item_mapper: ItemMapper, use_json_ld: bool = True):
        self.sources = list(sources)
        self.item_mapper = item_mapper
        self.use_json_ld = use_json_ld

    def _from_globals(self, script: str) -> List[Raw]:
        for src in self.sources:
            for m in src.pattern().finditer(script):
                try:
                    data, _ = _decoder.raw_decode(script, m.end())
                except ValueError:
                    continue
                for path in src.paths:
                    items = _dig(data, path)
                    if isinstance(items, list) and items:
                        logger.debug("[Strategy] %s%s -> %d items", src.name, list(path), len(items))
                        mapped = (self.item_mapper(it) for it in items if isinstance(it, dict))
                        return [r for r in mapped if r]
        return []

    def extract(self, page: RawPage) -> List[Raw]:
        soup = BeautifulSoup(page.html, "lxml")
        ld_records: List[Raw] = []
        for tag in soup.find_all("script"):
            script = tag.string or tag.get_text() or ""
            if not script.strip():
                continue
            if "ld+json" in (tag.get("type") or ""):
                if not self.use_json_ld:
                    continue
                try:
                    data = json.loads(script)
                except ValueError:
                    continue
                ld_records.extend(r for r in map(_ld_product_to_raw, _ld_nodes(data)) if r)
                continue
            records = self._from_globals(script)
            if records:
                return records
        return ld_records


class DomSelectorStrategy:
    source = Source.DOM_SELECTOR

    def __init__(self, config: SelectorConfig, limit: int = 20):
        self.config = config
        self.limit = limit

    def extract(self, page: RawPage) -> List[Raw]:
        soup = BeautifulSoup(page.html, "lxml")
        for sel in self.config.containers:
            elements = soup.select(sel)
            if not elements:
                continue
            records = [self.config.extract(el) for el in elements[: self.limit]]
            records = [r for r in records if is_plausible(r)]
            logger.debug("[Strategy] %s: %d containers, %d plausible", sel, len(elements), len(records))
            if records:
                return records
        return []


_ANCHOR = re.compile(r"""<a\b[^>]*?\bhref\s*=\s*["']([^"']+)["'][^>]*>""", re.IGNORECASE)
_ATTR = r"""\s*=\s*["']([^"']*)["']"""
_IMG = re.compile(r"<img\b[^>]*>", re.IGNORECASE)
_TITLE_ATTR = re.compile(r"\btitle" + _ATTR, re.IGNORECASE)


def _img_attr(tag: str, name: str) -> Optional[str]:
    m = re.search(r"\b" + name + _ATTR, tag, re.IGNORECASE)
    return m.group(1).strip() if m and m.group(1).strip() else None


class RegexStrategy:
    """
    Last resort over raw HTML text: product anchors located by href pattern,
    fields pulled from a bounded slice of markup following each anchor.
    """

    source = Source.REGEX_EXTRACTION

    def __init__(self, href_pattern: str, limit: int = 20, window: int = 4000):
        self.href_re = re.compile(href_pattern)
        self.limit = limit
        self.window = window

    def extract(self, page: RawPage) -> List[Raw]:
        markup = page.html
        anchors = [
            (m.start(), m.group(0), m.group(1))
            for m in _ANCHOR.finditer(markup)
            if self.href_re.search(m.group(1))
        ]

        out: List[Raw] = []
        seen = set()
        for i, (start, anchor, href) in enumerate(anchors):
            if href in seen:
                continue
            seen.add(href)

            end = start + self.window
            for nxt_start, _, nxt_href in anchors[i + 1:]:
                if nxt_href != href:
                    end = min(end, nxt_start)
                    break
            fragment = markup[start:end]

            image_url, title = None, None
            img = _IMG.search(fragment)
            if img:
                tag = img.group(0)
                src = _img_attr(tag, "src")
                if not src or src.startswith("data:"):
                    src = _img_attr(tag, "data-src") or src
                image_url = src
                title = _img_attr(tag, "alt")
            if not title:
                m = _TITLE_ATTR.search(anchor)
                title = m.group(1) if m else None

            out.append({
                "product_url": href,
                "title": title,          # normalizer falls back to the url slug
                "image_url": image_url,
                "price": find_price_in_html(fragment),
            })
            if len(out) >= self.limit:
                break
        return out


class ExtractionStrategyChain:
    def __init__(self, strategies: Sequence[Any], limit: int = 20):
        self.strategies = list(strategies)
        self.limit = limit

    def run(
        self, page: RawPage, finish: Optional[Callable[[List[Raw], Source], List[Any]]] = None
    ) -> Tuple[List[Any], Optional[Source]]:
        """
        Records from the first strategy that yields any. With `finish` (e.g.
        normalization) a strategy only counts when `finish` keeps something of
        its records; otherwise the next strategy is tried.
        """
        for strategy in self.strategies:
            records = [r for r in strategy.extract(page) if is_plausible(r)][: self.limit]
            logger.debug("[Strategy] %s/%s -> %d", page.platform, strategy.source.value, len(records))
            if records and finish is not None:
                records = finish(records, strategy.source)
                if not records:
                    logger.debug("[Strategy] %s/%s: every record rejected", page.platform, strategy.source.value)
            if records:
                return records, strategy.source
        return [], None
