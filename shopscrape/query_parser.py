"""
Turn a free-text shopping request into a search query plus structured filters.

    "cheap nike shoes on zalora under 2,000"
        -> query "nike shoes", max_price 2000, brand "Nike", platforms ["zalora"]

Thresholds for "cheap" and "premium" are only applied when no explicit price
was given.
"""
import re
import string
from dataclasses import dataclass, field
from typing import List, Optional, Pattern

from .schema import SearchFilters

CHEAP_MAX = 300.0
PREMIUM_MIN = 800.0
GOOD_RATING = 4.0
BEST_RATING = 4.5

PLATFORMS = ("lazada", "zalora", "shein", "shopee")

BRANDS = [
    # electronics
    "samsung", "apple", "xiaomi", "huawei", "oppo", "vivo", "realme", "oneplus", "nokia", "sony",
    "lg", "motorola", "asus", "lenovo", "acer", "dell", "hp", "microsoft", "toshiba", "msi",
    "gigabyte", "razer", "logitech", "corsair", "steelseries", "hyperx", "jbl", "bose",
    "sennheiser", "audio-technica", "beats", "philips", "panasonic", "canon", "nikon", "fujifilm",
    "gopro", "dji", "nintendo", "playstation", "xbox", "fitbit", "garmin",
    # watches
    "casio", "seiko", "citizen", "fossil", "timex", "rolex", "omega", "tag heuer", "tissot",
    "longines", "bulova",
    # fashion
    "nike", "adidas", "puma", "new balance", "converse", "vans", "skechers", "uniqlo", "zara",
    "h&m", "mango", "levi's", "levis", "cotton on", "bench", "penshoppe",
]

# spellings capwords gets wrong
DISPLAY_NAMES = {
    "lg": "LG", "hp": "HP", "msi": "MSI", "jbl": "JBL", "dji": "DJI", "hyperx": "HyperX",
    "gopro": "GoPro", "oneplus": "OnePlus", "playstation": "PlayStation", "steelseries": "SteelSeries",
    "audio-technica": "Audio-Technica", "tag heuer": "TAG Heuer", "h&m": "H&M",
    "levi's": "Levi's", "levis": "Levi's",
}

_CURRENCY = r"(?:₱|php\s*|\$)"
# an amount must end the token: "8gb", "256gb" and "2.5kg" are specs, not prices
_AMOUNT = r"(\d[\d,]*(?:\.\d+)?)(?!\w|\.\d)"
_NUM = _CURRENCY + r"?\s*" + _AMOUNT
_PRICE = _CURRENCY + r"\s*" + _AMOUNT


def _rx(pattern: str) -> Pattern:
    return re.compile(pattern, re.IGNORECASE)


def _word(phrase: str) -> Pattern:
    return _rx(r"(?<![\w&'-])" + re.escape(phrase) + r"(?![\w&'-])")


_BETWEEN = _rx(r"\bbetween\s+" + _NUM + r"\s+and\s+" + _NUM)
_RANGE = _rx(r"(?:₱|php\s*|\$)?(\d[\d,]*)\s*-\s*(?:₱|php\s*|\$)?(\d[\d,]*)\b")
# "max" and "at least" also occur in product names and specs ("air max 90",
# "at least 8gb"), so they only count with a currency marker.
_UNDER = _rx(r"\b(?:(?:under|below|less than|cheaper than)\s+" + _NUM + r"|max(?:imum)?\s+" + _PRICE + ")")
_OVER = _rx(r"\b(?:(?:over|above|more than)\s+" + _NUM + r"|(?:at least|min(?:imum)?)\s+" + _PRICE + ")")
_CHEAP = _rx(r"\b(?:cheap|budget|inexpensive|affordable)\b")
_PREMIUM = _rx(r"(?<!most )\b(?:expensive|premium|high-end|luxury)\b")

_STARS = _rx(r"\b(\d(?:\.\d)?)\s*\+?\s*stars?(?:\s+rating)?\b")
_RATED = _rx(r"\brated\s+(\d(?:\.\d)?)\s+(?:or|and)\s+(?:higher|above|up)\b")
_GOOD = _rx(r"\b(?:good reviews|highly rated|well reviewed)\b")
_BEST = _rx(r"\b(?:best(?![- ]?sell)|top rated|highest rated)\b")

_PLATFORM_PHRASE = _rx(r"\b(?:(?:on|from|at|in)\s+)?(" + "|".join(PLATFORMS) + r")\b")

SORT_PHRASES = [
    ("price_asc", _rx(r"\b(?:cheapest|lowest price|price low to high|sort by price)\b")),
    ("price_desc", _rx(r"\b(?:most expensive|highest price|price high to low)\b")),
    ("rating_desc", _rx(r"\b(?:best rated|highest rated|sort by rating)\b")),
    ("popularity_desc", _rx(r"\b(?:most popular|best[- ]?selling|best ?sellers?|sort by popularity)\b")),
    ("date_desc", _rx(r"\b(?:newest|latest|new arrivals?|sort by date)\b")),
]

_FILLER = _rx(r"\b(?:find|show|get|give|me|i|want|need|looking|look|please|a|an|the|some|for|with|that|are|is|at least)\b")


def _num(s: str) -> float:
    return float(s.replace(",", ""))


def _amount(m: re.Match) -> str:
    return next(g for g in m.groups() if g)


@dataclass
class ParsedQuery:
    query: str
    filters: SearchFilters = field(default_factory=SearchFilters)
    platforms: Optional[List[str]] = None
    sort_by: Optional[str] = None


def parse_natural_language_query(text: str) -> ParsedQuery:
    filters = {}
    spent: List[Pattern] = []

    # price: explicit ranges win over one-sided bounds
    m = _BETWEEN.search(text) or _RANGE.search(text)
    if m:
        lo, hi = sorted((_num(m.group(1)), _num(m.group(2))))
        filters["min_price"], filters["max_price"] = lo, hi
        spent.append(_BETWEEN if m.re is _BETWEEN else _RANGE)
    else:
        m = _UNDER.search(text)
        if m:
            filters["max_price"] = _num(_amount(m))
            spent.append(_UNDER)
        m = _OVER.search(text)
        if m:
            filters["min_price"] = _num(_amount(m))
            spent.append(_OVER)
    if _CHEAP.search(text):
        filters.setdefault("max_price", CHEAP_MAX)
        spent.append(_CHEAP)
    if _PREMIUM.search(text):
        filters.setdefault("min_price", PREMIUM_MIN)
        spent.append(_PREMIUM)

    for brand in BRANDS:
        if _word(brand).search(text):
            filters["brand"] = DISPLAY_NAMES.get(brand, string.capwords(brand))
            break

    sort_by = None
    for key, rx in SORT_PHRASES:
        if rx.search(text):
            sort_by = key
            spent.append(rx)

    m = _STARS.search(text) or _RATED.search(text)
    if m and float(m.group(1)) <= 5:
        filters["min_rating"] = float(m.group(1))
        spent.extend([_STARS, _RATED])
    if _GOOD.search(text):
        filters.setdefault("min_rating", GOOD_RATING)
        spent.append(_GOOD)
    if _BEST.search(text):
        filters.setdefault("min_rating", BEST_RATING)
    spent.append(_BEST)

    platforms = []
    for m in _PLATFORM_PHRASE.finditer(text):
        name = m.group(1).lower()
        if name not in platforms:
            platforms.append(name)
    spent.append(_PLATFORM_PHRASE)

    query = text
    for rx in spent:
        query = rx.sub(" ", query)
    query = _FILLER.sub(" ", query)
    query = re.sub(r"\s+", " ", query).strip(" ,.?!")

    return ParsedQuery(
        query=query or text.strip(),
        filters=SearchFilters(**filters),
        platforms=platforms or None,
        sort_by=sort_by,
    )
