import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, Union

import orjson

from .adapters.adapter_lazada import LazadaAdapter
from .adapters.adapter_shein import SheinAdapter
from .adapters.adapter_shopee import ShopeeAdapter
from .adapters.adapter_zalora import ZaloraAdapter
from .adapters.base import PlatformAdapter
from .cache import build_cache, cache_key, make_entry
from .config import Settings, get_settings
from .errors import BlockedError, ExtractionEmpty, LaunchError, NavigationTimeout, ScrapeError
from .fetcher import BrowserSession
from .ranking import apply_filters, sort_products
from .schema import PlatformStatus, Product, SearchFilters, SearchRequest, SearchResponse

logger = logging.getLogger(__name__)

ADAPTERS = {
    "lazada": LazadaAdapter,
    "zalora": ZaloraAdapter,
    "shein": SheinAdapter,
    "shopee": ShopeeAdapter,
}

Platforms = Union[None, str, Iterable[str]]
SessionFactory = Callable[[], Awaitable[BrowserSession]]


def pick_adapter(name: str):
    return ADAPTERS.get(name.strip().lower())


@dataclass
class SearchOutcome:
    products: List[Product] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    status: Dict[str, PlatformStatus] = field(default_factory=dict)
    cached_platforms: List[str] = field(default_factory=list)
    fresh_platforms: List[str] = field(default_factory=list)

    @property
    def attempted(self) -> bool:
        return bool(self.status)


class SearchOrchestrator:
    """
    Fans a search out to the platform adapters over one shared browser,
    isolates per-platform failures, merges the survivors with cached rows and
    applies the caller's filters and sort.
    """

    def __init__(self, settings: Optional[Settings] = None, cache=None,
                 adapters: Optional[Dict[str, PlatformAdapter]] = None,
                 session_factory: Optional[SessionFactory] = None, backoff: float = 1.0):
        self.settings = settings or get_settings()
        self.cache = cache if cache is not None else build_cache(self.settings)
        self.adapters = adapters if adapters is not None else {
            name: cls(self.settings) for name, cls in ADAPTERS.items()
        }
        self.session_factory = session_factory or self._open_session
        self.backoff = backoff

    async def _open_session(self) -> BrowserSession:
        return await BrowserSession.open(
            headless=self.settings.headless,
            block_resources=self.settings.block_resources,
        )

    def resolve_platforms(self, platforms: Platforms) -> Tuple[List[str], List[str]]:
        if platforms is None or platforms == "all":
            return list(self.adapters), []
        if isinstance(platforms, str):
            platforms = platforms.split(",")

        names, errors = [], []
        for p in platforms:
            name = p.strip().lower()
            if not name:
                continue
            if name == "all":
                names.extend(n for n in self.adapters if n not in names)
            elif name not in self.adapters:
                errors.append(f"unknown platform: {p.strip()}")
            elif name not in names:
                names.append(name)
        return names, errors

    # ------------------------------------------------------------------ #
    # per-platform work
    # ------------------------------------------------------------------ #
    async def _fetch_page(self, adapter: PlatformAdapter, query: str, filters: SearchFilters,
                          page_no: int, session, sem: asyncio.Semaphore) -> List[Product]:
        retries = self.settings.retries
        attempt = 0
        while True:
            try:
                async with sem:
                    return await asyncio.wait_for(
                        adapter.search(query, filters, page_no, session),
                        timeout=self.settings.page_timeout_s,
                    )
            except asyncio.TimeoutError as e:
                err = NavigationTimeout(f"page budget of {self.settings.page_timeout_s:g}s exceeded",
                                        platform=adapter.name)
                err.__cause__ = e
            except NavigationTimeout as e:
                err = e

            if attempt >= retries:
                raise err
            delay = self.backoff + attempt
            attempt += 1
            logger.info("[JOB] RETRY → %s page %d in %.1fs (%s)", adapter.name, page_no, delay, err)
            await asyncio.sleep(delay)

    async def _scrape_platform(self, adapter: PlatformAdapter, query: str, filters: SearchFilters,
                               max_pages: int, session, sem: asyncio.Semaphore,
                               status: Dict[str, PlatformStatus], errors: List[str]) -> List[Product]:
        name = adapter.name
        status[name] = PlatformStatus.FETCHING
        products: List[Product] = []
        seen = set()

        for page_no in range(1, max_pages + 1):
            outcome, err = None, None
            try:
                batch = await self._fetch_page(adapter, query, filters, page_no, session, sem)
            except ExtractionEmpty as e:
                logger.info("[JOB] EMPTY → %s", e)
                outcome, err = PlatformStatus.EMPTY, e
            except BlockedError as e:
                logger.warning("[JOB] BLOCKED → %s (anti-bot page, not retried)", e)
                outcome, err = PlatformStatus.BLOCKED, e
            except NavigationTimeout as e:
                logger.warning("[JOB] TIMEOUT → %s", e)
                outcome, err = PlatformStatus.TIMED_OUT, e
            except ScrapeError as e:
                logger.error("[JOB] ERR  → %s", e)
                outcome, err = PlatformStatus.FAILED, e
            except Exception as e:
                logger.exception("[JOB] ERR  → %s page %d | %s", name, page_no, type(e).__name__)
                outcome, err = PlatformStatus.FAILED, ScrapeError(f"{type(e).__name__}: {e}", platform=name)

            if outcome is not None:
                if not products:
                    status[name] = outcome
                    errors.append(str(err))
                elif outcome is not PlatformStatus.EMPTY:
                    errors.append(f"{err} (kept {len(products)} products from earlier pages)")
                break

            new = [p for p in batch if p.product_url not in seen]
            if not new:
                break
            seen.update(p.product_url for p in new)
            products.extend(new)
            status[name] = PlatformStatus.EXTRACTED

        logger.info("[JOB] DONE → %s | %s | %d products", name, status[name].value, len(products))
        return products

    # ------------------------------------------------------------------ #
    # public api
    # ------------------------------------------------------------------ #
    async def search_with_report(self, query: str, filters: Optional[SearchFilters] = None,
                                 platforms: Platforms = None, use_cache: bool = True,
                                 max_pages: int = 1, force_refresh: bool = False) -> SearchOutcome:
        query = (query or "").strip()
        if not query:
            raise ValueError("query must not be empty")
        filters = filters or SearchFilters()
        max_pages = max(1, max_pages)

        names, errors = self.resolve_platforms(platforms)
        outcome = SearchOutcome(errors=errors, status={n: PlatformStatus.PENDING for n in names})
        if not names:
            return outcome

        key = cache_key(query, filters, names, max_pages)
        cached_rows: List[Product] = []
        entry = None
        if use_cache and not force_refresh:
            entry = self.cache.get(key)
        if entry is not None:
            covered = [n for n in names if n in entry.platforms]
            cached_rows = [p for p in entry.results if p.platform in covered]
            outcome.cached_platforms = covered
            for n in covered:
                outcome.status[n] = PlatformStatus.MERGED
            logger.info("[Cache] HIT  → %r | %s | %d rows", query, ",".join(covered), len(cached_rows))
        elif use_cache:
            logger.info("[Cache] %s → %r", "SKIP" if force_refresh else "MISS", query)

        to_fetch = [n for n in names if n not in outcome.cached_platforms]
        fresh: List[Product] = []
        if to_fetch:
            session = await self.session_factory()
            sem = asyncio.Semaphore(self.settings.max_concurrent_pages)
            try:
                results = await asyncio.gather(*(
                    self._scrape_platform(self.adapters[n], query, filters, max_pages, session, sem,
                                          outcome.status, outcome.errors)
                    for n in to_fetch
                ))
            finally:
                await session.close()

            for n, products in zip(to_fetch, results):
                if outcome.status[n] is PlatformStatus.EXTRACTED:
                    fresh.extend(products)
                    outcome.status[n] = PlatformStatus.MERGED
                    outcome.fresh_platforms.append(n)

        if use_cache and outcome.fresh_platforms:
            settled = outcome.cached_platforms + outcome.fresh_platforms
            self.cache.set(key, make_entry(key, query, settled, cached_rows + fresh,
                                           self.settings.cache_ttl_seconds))

        merged = [p.model_copy(update={"freshness": "cached"}) for p in cached_rows] + fresh
        outcome.products = sort_products(apply_filters(merged, filters), filters.sort_by)
        return outcome

    async def search(self, query: str, filters: Optional[SearchFilters] = None, platforms: Platforms = None,
                     use_cache: bool = True, max_pages: int = 1, force_refresh: bool = False) -> List[Product]:
        outcome = await self.search_with_report(query, filters, platforms, use_cache, max_pages, force_refresh)
        return outcome.products

    async def run(self, request: SearchRequest) -> SearchResponse:
        """Input contract in, output contract out. Never raises for scrape failures."""
        try:
            outcome = await self.search_with_report(
                request.query,
                filters=request.filters,
                platforms=request.platforms,
                use_cache=request.use_cache,
                max_pages=request.max_pages,
                force_refresh=request.force_refresh,
            )
        except LaunchError as e:
            logger.error("[JOB] ABORT → %s", e)
            return SearchResponse(success=False, errors=[str(e)])
        except ValueError as e:
            return SearchResponse(success=False, errors=[str(e)])

        if not outcome.attempted:
            return SearchResponse(success=False, errors=outcome.errors or ["no platforms to search"])
        return SearchResponse(
            success=True,
            results=outcome.products,
            count=len(outcome.products),
            errors=outcome.errors or None,
            platform_status=outcome.status,
        )


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(prog="python -m shopscrape.scrape",
                                 description="Search the supported marketplaces and print the results as JSON.")
    ap.add_argument("query")
    ap.add_argument("--platforms", default="all", help="comma list of %s, or 'all'" % ",".join(ADAPTERS))
    ap.add_argument("--pages", type=int, default=1, help="result pages per platform")
    ap.add_argument("--sort", default=None,
                    choices=["price_asc", "price_desc", "rating_desc", "popularity_desc", "date_desc"])
    ap.add_argument("--min-price", type=float, default=None)
    ap.add_argument("--max-price", type=float, default=None)
    ap.add_argument("--brand", default=None)
    ap.add_argument("--no-cache", action="store_true", help="neither read nor write the search cache")
    ap.add_argument("--refresh", action="store_true", help="ignore cached rows but store the new ones")
    return ap.parse_args(argv)


async def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()

    request = SearchRequest(
        query=args.query,
        platforms="all" if args.platforms == "all" else [p for p in args.platforms.split(",") if p.strip()],
        filters=SearchFilters(min_price=args.min_price, max_price=args.max_price, brand=args.brand, sort_by=args.sort),
        max_pages=args.pages,
        force_refresh=args.refresh,
        use_cache=not args.no_cache,
    )
    response = await SearchOrchestrator(settings).run(request)
    out = orjson.dumps(response.model_dump(mode="json", by_alias=True, exclude_none=True), option=orjson.OPT_INDENT_2)
    sys.stdout.write(out.decode() + "\n")
    return 0 if response.success else 1


if __name__ == "__main__":
    # python -m shopscrape.scrape "running shoes" --platforms zalora,lazada --sort price_asc
    logging.basicConfig(level=get_settings().log_level.upper(),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    sys.exit(asyncio.run(main()))
