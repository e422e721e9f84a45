import re
from typing import List, Optional

from .schema import Product, SearchFilters

_NEW = re.compile(r"\bnew\b", re.IGNORECASE)


def _matches(needle: str, p: Product) -> bool:
    needle = needle.strip().lower()
    haystack = f"{p.title} {p.brand or ''}".lower()
    return needle in haystack


def apply_filters(products: List[Product], filters: Optional[SearchFilters]) -> List[Product]:
    """Post-filters on merged results. Retailers only honour some of these in the url."""
    if not filters:
        return list(products)

    out = []
    for p in products:
        if filters.min_price is not None and p.price < filters.min_price:
            continue
        if filters.max_price is not None and p.price > filters.max_price:
            continue
        if filters.brand and not _matches(filters.brand, p):
            continue
        if filters.category and not _matches(filters.category, p):
            continue
        if filters.platform and filters.platform.lower() not in ("all", p.platform):
            continue
        if filters.min_rating is not None and (p.rating is None or p.rating < filters.min_rating):
            continue
        out.append(p)
    return out


def sort_products(products: List[Product], sort_by: Optional[str]) -> List[Product]:
    # sorted() is stable, so equal keys keep their merge order
    if sort_by == "price_asc":
        return sorted(products, key=lambda p: p.price)
    if sort_by == "price_desc":
        return sorted(products, key=lambda p: p.price, reverse=True)
    if sort_by == "rating_desc":
        return sorted(products, key=lambda p: (p.rating or 0, p.rating_count or 0), reverse=True)
    if sort_by == "popularity_desc":
        return sorted(products, key=lambda p: (p.sales or 0, p.rating_count or 0, p.rating or 0), reverse=True)
    if sort_by == "date_desc":
        # no listing dates are exposed; "new" in the title and few reviews stand in for recency
        return sorted(products, key=lambda p: (0 if _NEW.search(p.title) else 1, p.rating_count or 0))
    return list(products)
