import logging
import random
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple
from urllib.parse import quote, urlencode

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..config import Settings, get_settings
from ..errors import BlockedError, ExtractionEmpty, NavigationTimeout, ScrapeError
from ..fields import SelectorConfig
from ..normalizer import normalize_all
from ..schema import Product, RawPage, SearchFilters, Source
from ..strategies import (
    DomSelectorStrategy,
    EmbeddedJsonStrategy,
    ExtractionStrategyChain,
    JsonSource,
    Raw,
    RegexStrategy,
)

logger = logging.getLogger(__name__)

# Visible-text phrases served by CAPTCHA / anti-bot interstitials.
BLOCK_PHRASES = (
    "captcha",
    "please select the following graphics",
    "verify you are human",
    "verify you are a human",
    "please verify",
    "slide to verify",
    "unusual traffic",
    "security check",
    "are you a robot",
)
BLOCK_TITLES = ("access denied", "attention required", "security check", "captcha")
BLOCK_URL_MARKERS = ("captcha", "/verify/", "buyer/login", "_cf_chl")

# Candidate keys per raw field for listing items embedded as JSON.
JSON_FIELDS: Dict[str, Tuple[str, ...]] = {
    "id": ("itemId", "nid", "id", "sku"),
    "title": ("name", "title", "productName"),
    "price": ("price", "priceShow", "salePrice"),
    "original_price": ("originalPrice", "originalPriceShow"),
    "discount": ("discount",),
    "product_url": ("productUrl", "itemUrl", "url"),
    "image_url": ("image", "imageUrl", "img"),
    "rating": ("ratingScore", "rating"),
    "rating_count": ("review", "reviewCount", "ratingCount"),
    "brand": ("brandName", "brand"),
    "seller": ("sellerName",),
    "location": ("location",),
    "sales": ("itemSoldCntShow", "sold", "sales"),
    "in_stock": ("inStock",),
}


def first_value(item: Dict[str, Any], keys: Sequence[str]) -> Any:
    for k in keys:
        v = item.get(k)
        if v not in (None, "", [], {}):
            return v
    return None


class PlatformAdapter:
    """
    Retailer-specific knowledge: search url grammar, request headers and the
    selector/JSON/regex configuration fed to the shared strategy chain.
    """

    name: str = ""
    base_url: str = ""
    ready_selector: Optional[str] = None
    selectors: SelectorConfig = SelectorConfig(containers=[])
    json_sources: Sequence[JsonSource] = ()
    product_href_pattern: str = r"$^"
    id_patterns: Sequence[Pattern] = ()
    scroll_steps: int = 0

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        limit = self.settings.max_products_per_page
        self.chain = ExtractionStrategyChain(
            [
                EmbeddedJsonStrategy(self.json_sources, self.map_json_item),
                DomSelectorStrategy(self.selectors, limit=limit),
                RegexStrategy(self.product_href_pattern, limit=limit),
            ],
            limit=limit,
        )

    # ------------------------------------------------------------------ #
    # request shaping
    # ------------------------------------------------------------------ #
    def build_search_url(self, query: str, filters: Optional[SearchFilters] = None, page: int = 1) -> str:
        raise NotImplementedError

    def _url(self, path: str, params: Dict[str, Any]) -> str:
        params = {k: v for k, v in params.items() if v not in (None, "")}
        qs = urlencode(params, quote_via=quote)
        return f"{self.base_url}{path}" + (f"?{qs}" if qs else "")

    def required_headers(self) -> Dict[str, str]:
        return {
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
            "Referer": f"{self.base_url}/",
            "Sec-Fetch-Dest": "document",
            "Sec-Fetch-Mode": "navigate",
            "Sec-Fetch-Site": "same-origin",
            "Sec-Fetch-User": "?1",
            "Upgrade-Insecure-Requests": "1",
        }

    # ------------------------------------------------------------------ #
    # fetching
    # ------------------------------------------------------------------ #
    async def fetch_search_page(self, url: str, session) -> RawPage:
        s = self.settings
        async with session.page_scope(extra_headers=self.required_headers()) as page:
            try:
                await page.goto(url, wait_until="domcontentloaded", timeout=s.nav_timeout_ms)
            except PlaywrightTimeoutError as e:
                raise NavigationTimeout(f"navigation timed out after {s.nav_timeout_ms}ms",
                                        platform=self.name, url=url) from e
            except PlaywrightError as e:
                raise ScrapeError(f"navigation failed: {e}", platform=self.name, url=url) from e

            try:
                await page.wait_for_load_state("networkidle", timeout=min(10000, s.nav_timeout_ms))
            except PlaywrightTimeoutError:
                logger.debug("[%s] network never went idle, continuing", self.name)

            if self.ready_selector and s.selector_timeout_ms:
                try:
                    await page.wait_for_selector(self.ready_selector, timeout=s.selector_timeout_ms)
                except PlaywrightTimeoutError:
                    logger.info("[%s] no product cards for %r, continuing with fallbacks", self.name, self.ready_selector)

            for _ in range(self.scroll_steps):
                await page.mouse.wheel(0, 1200)
                await page.wait_for_timeout(300 + random.randint(0, 300))
            await page.wait_for_timeout(500 + random.randint(0, 500))

            html = await page.content()
            title = await page.title()
            final_url = page.url

        return RawPage(platform=self.name, url=url, html=html, title=title, final_url=final_url)

    def detect_block(self, page: RawPage) -> bool:
        if any(m in (page.final_url or "").lower() for m in BLOCK_URL_MARKERS):
            return True
        title = (page.title or "").lower()
        if any(t in title for t in BLOCK_TITLES):
            return True
        soup = BeautifulSoup(page.html, "lxml")
        for tag in soup(["script", "style", "noscript"]):
            tag.decompose()
        text = soup.get_text(" ", strip=True).lower()
        return any(p in text for p in BLOCK_PHRASES)

    # ------------------------------------------------------------------ #
    # extraction
    # ------------------------------------------------------------------ #
    def map_json_item(self, item: Dict[str, Any]) -> Optional[Raw]:
        raw = {field: first_value(item, keys) for field, keys in JSON_FIELDS.items()}
        return raw if raw.get("product_url") else None

    def extract(self, page: RawPage) -> Tuple[List[Product], Optional[Source]]:
        return self.chain.run(
            page, lambda records, source: normalize_all(records, self.name, self.base_url, source, self.id_patterns)
        )

    async def search(self, query: str, filters: Optional[SearchFilters], page: int, session) -> List[Product]:
        """
        Fetch and extract one search-result page.

        Raises BlockedError when an anti-bot page came back instead of
        listings and ExtractionEmpty when the page simply had nothing usable.
        """
        url = self.build_search_url(query, filters, page)
        logger.info("[%s] FETCH → %s", self.name, url)
        raw = await self.fetch_search_page(url, session)
        products, source = self.extract(raw)
        if products:
            logger.info("[%s] OK → %d products via %s", self.name, len(products), source.value)
            return products
        if self.detect_block(raw):
            raise BlockedError("anti-bot page served instead of results", platform=self.name, url=url)
        raise ExtractionEmpty("no strategy produced a product", platform=self.name, url=url)
