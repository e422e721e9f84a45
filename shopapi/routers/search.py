from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from shopscrape.config import get_settings
from shopscrape.query_parser import parse_natural_language_query
from shopscrape.schema import SearchFilters, SearchRequest, SearchResponse, SortBy
from shopscrape.scrape import SearchOrchestrator

router = APIRouter()


@lru_cache()
def get_orchestrator() -> SearchOrchestrator:
    # one orchestrator per process so the in-memory cache survives between requests
    return SearchOrchestrator(get_settings())


def _require_query(query: str) -> str:
    query = (query or "").strip()
    if not query:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="query must not be empty")
    return query


@router.post("/search", response_model=SearchResponse, response_model_exclude_none=True)
async def search(request: SearchRequest, orchestrator: SearchOrchestrator = Depends(get_orchestrator)):
    _require_query(request.query)
    return await orchestrator.run(request)


@router.get("/search", response_model=SearchResponse, response_model_exclude_none=True)
async def search_get(
    query: str = Query(default=""),
    platforms: str = Query(default="all", description="comma list or 'all'"),
    min_price: Optional[float] = Query(default=None, alias="minPrice", ge=0),
    max_price: Optional[float] = Query(default=None, alias="maxPrice", ge=0),
    brand: Optional[str] = None,
    category: Optional[str] = None,
    min_rating: Optional[float] = Query(default=None, alias="minRating", ge=0, le=5),
    sort_by: Optional[SortBy] = Query(default=None, alias="sortBy"),
    max_pages: int = Query(default=1, alias="maxPages", ge=1, le=10),
    force_refresh: bool = Query(default=False, alias="forceRefresh"),
    use_cache: bool = Query(default=True, alias="useCache"),
    natural: bool = Query(default=False, description="parse price/brand/rating/platform phrases out of the query"),
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
):
    """
    Query-string flavour of POST /search. With natural=true the free text is
    parsed first; explicit parameters win over parsed ones.
    """
    query = _require_query(query)
    filters = {
        "min_price": min_price,
        "max_price": max_price,
        "brand": brand,
        "category": category,
        "min_rating": min_rating,
        "sort_by": sort_by,
    }
    plats = "all" if platforms.strip().lower() in ("", "all") else [p.strip() for p in platforms.split(",") if p.strip()]

    if natural:
        parsed = parse_natural_language_query(query)
        query = parsed.query
        for k, v in parsed.filters.model_dump(exclude_none=True).items():
            if filters.get(k) is None:
                filters[k] = v
        if filters["sort_by"] is None:
            filters["sort_by"] = parsed.sort_by
        if plats == "all" and parsed.platforms:
            plats = parsed.platforms

    request = SearchRequest(
        query=query,
        platforms=plats,
        filters=SearchFilters(**filters),
        max_pages=max_pages,
        force_refresh=force_refresh,
        use_cache=use_cache,
    )
    return await orchestrator.run(request)
