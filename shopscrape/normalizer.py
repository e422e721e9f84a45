import hashlib
import html
import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Pattern, Sequence
from urllib.parse import urljoin, urlparse, unquote

from pydantic import ValidationError
from slugify import slugify

from .errors import MalformedProduct
from .schema import Product, Source

logger = logging.getLogger(__name__)

_NUM = r"([0-9][0-9,]*(?:\.[0-9]+)?)"

# Currency-prefixed amounts, most specific first.
CURRENCY_PATTERNS: List[Pattern] = [
    re.compile(r"(?:₱|&#8369;|&#x20[bB]1;)\s*" + _NUM),
    re.compile(r"PHP\s*" + _NUM, re.IGNORECASE),
    re.compile(r"(?<![A-Za-z])P\s?" + _NUM),
]

_PRICE_CLASS = re.compile(r'class="[^"]*price[^"]*"[^>]*>\s*(?:₱|PHP|P)?\s*' + _NUM, re.IGNORECASE)

# Raw-HTML fallbacks, tried after the currency patterns.
HTML_PRICE_PATTERNS: List[Pattern] = CURRENCY_PATTERNS + [
    _PRICE_CLASS,
    re.compile(r"(?<![0-9.])([0-9][0-9,]*\.[0-9]{2})(?![0-9])"),
]

_TAG = re.compile(r"<[^>]+>")

_FIRST_NUMBER = re.compile(_NUM)
_PERCENT = re.compile(r"([0-9]+(?:\.[0-9]+)?)\s*%")
_BARE_PERCENT = re.compile(r"-?\s*([0-9]+(?:\.[0-9]+)?)")
_COUNT = re.compile(r"([0-9][0-9,]*(?:\.[0-9]+)?)\s*([kKmM])?")
_WS = re.compile(r"\s+")

# Platform id fragments glued onto url slugs, stripped when deriving titles.
_SLUG_NOISE = [
    re.compile(r"-p-\d+(?:-cat-\d+)?$"),       # shein
    re.compile(r"-i\d+(?:-s\d+)?$"),           # lazada
    re.compile(r"-i\.\d+\.\d+$"),              # shopee
    re.compile(r"-\d+$"),                      # zalora sku suffix
]


def _to_float(s: str) -> Optional[float]:
    try:
        return float(s.replace(",", ""))
    except ValueError:
        return None


def parse_price(value: Any) -> Optional[float]:
    """
    Coerce a price-like value to a positive float.

    Strings are matched against the currency patterns first ("₱1,299.00",
    "PHP 500"), then the first plain number. Returns None when nothing usable
    is found; callers decide whether that makes the record malformed.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if value > 0 else None

    text = html.unescape(str(value)).strip()
    if not text:
        return None
    for pat in CURRENCY_PATTERNS:
        m = pat.search(text)
        if m:
            price = _to_float(m.group(1))
            if price and price > 0:
                return price
    m = _FIRST_NUMBER.search(text)
    if m:
        price = _to_float(m.group(1))
        if price and price > 0:
            return price
    return None


def find_price_in_html(fragment: str) -> Optional[float]:
    """
    Price from a raw HTML slice. Currency patterns run over the visible text
    only so attribute values (urls, ids) cannot masquerade as prices; the
    price-class and bare-decimal patterns are last resorts.
    """
    visible = _TAG.sub(" ", fragment)
    for pat in HTML_PRICE_PATTERNS:
        m = pat.search(fragment if pat is _PRICE_CLASS else visible)
        if m:
            price = _to_float(m.group(1))
            if price and price > 0:
                return price
    return None


def parse_discount(value: Any) -> Optional[float]:
    """'-20%' -> 20.0, '20% OFF' -> 20.0, 20 -> 20.0, '30' -> 30.0"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        pct = abs(float(value))
    else:
        text = str(value).strip()
        m = _PERCENT.search(text) or _BARE_PERCENT.fullmatch(text)
        if not m:
            return None
        pct = float(m.group(1))
    return pct if 0 < pct <= 100 else None


def parse_count(value: Any) -> Optional[int]:
    """'1.2k sold' -> 1200, '(1,234)' -> 1234"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if value >= 0 else None
    m = _COUNT.search(str(value))
    if not m:
        return None
    n = _to_float(m.group(1))
    if n is None:
        return None
    mult = {"k": 1000, "m": 1000000}.get((m.group(2) or "").lower(), 1)
    return int(round(n * mult))


def parse_rating(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        r = float(value)
    else:
        m = _FIRST_NUMBER.search(str(value))
        r = _to_float(m.group(1)) if m else None
    if r is None or not 0 < r <= 5:
        return None
    return round(r, 2)


def clean_text(value: Any) -> str:
    if value is None:
        return ""
    return _WS.sub(" ", html.unescape(str(value))).strip()


def is_navigable(href: Optional[str]) -> bool:
    """False for empty hrefs and in-page or script links (wishlist hearts, "#")."""
    if not href:
        return False
    href = html.unescape(str(href)).strip()
    return bool(href) and not href.startswith(("javascript:", "#", "mailto:"))


def resolve_url(base_url: str, href: Optional[str]) -> Optional[str]:
    """
    Resolve href against the platform base url.

    Absolute http(s) urls are returned as-is, root-relative paths are
    appended to the base, protocol-relative urls get https.
    """
    if not is_navigable(href):
        return None
    href = html.unescape(str(href)).strip()
    if href.startswith(("http://", "https://")):
        return href
    if href.startswith("//"):
        return "https:" + href
    if href.startswith("/"):
        return base_url.rstrip("/") + href
    return urljoin(base_url.rstrip("/") + "/", href)


def resolve_image_url(base_url: str, src: Optional[str]) -> Optional[str]:
    if not src or src.strip().startswith("data:"):
        return None
    return resolve_url(base_url, src)


def product_id(url: str, platform: str, id_patterns: Sequence[Pattern] = ()) -> str:
    for pat in id_patterns:
        m = pat.search(url)
        if m:
            return "_".join(g for g in m.groups() if g)

    path = urlparse(url).path.strip("/")
    base = slugify(path.split("/")[-1][0:80]) if path else ""
    if base:
        return f"{platform}-{base}"
    return f"{platform}-{hashlib.sha1(url.encode()).hexdigest()[:12]}"


def title_from_url(url: str) -> str:
    path = unquote(urlparse(url).path).strip("/")
    if not path:
        return ""
    last = path.split("/")[-1]
    last = re.sub(r"\.html?$", "", last)
    for pat in _SLUG_NOISE:
        last = pat.sub("", last)
    words = [w for w in re.split(r"[-_+\s]+", last) if w]
    return " ".join(w[:1].upper() + w[1:].lower() for w in words)


def normalize(
    raw: Dict[str, Any],
    platform: str,
    base_url: str,
    source: Source,
    id_patterns: Sequence[Pattern] = (),
) -> Product:
    url = resolve_url(base_url, raw.get("product_url"))
    if not url:
        raise MalformedProduct("missing product url", platform=platform)

    price = parse_price(raw.get("price"))
    if price is None:
        raise MalformedProduct("missing or unparseable price", platform=platform, url=url)

    title = clean_text(raw.get("title")) or title_from_url(url)
    if not title:
        raise MalformedProduct("missing title", platform=platform, url=url)

    original = parse_price(raw.get("original_price"))
    if original is not None and original <= price:
        original = None
    discount = parse_discount(raw.get("discount"))
    if discount is None and original:
        discount = round((original - price) / original * 100, 1)

    raw_id = clean_text(raw.get("id"))
    try:
        return Product(
            id=raw_id or product_id(url, platform, id_patterns),
            title=title,
            price=price,
            product_url=url,
            platform=platform,
            source=source,
            image_url=resolve_image_url(base_url, raw.get("image_url")),
            original_price=original,
            discount_percentage=discount,
            rating=parse_rating(raw.get("rating")),
            rating_count=parse_count(raw.get("rating_count")),
            brand=clean_text(raw.get("brand")) or None,
            seller=clean_text(raw.get("seller")) or None,
            location=clean_text(raw.get("location")) or None,
            sales=parse_count(raw.get("sales")),
            in_stock=raw.get("in_stock") if isinstance(raw.get("in_stock"), bool) else None,
        )
    except ValidationError as exc:
        raise MalformedProduct(str(exc), platform=platform, url=url) from exc


def normalize_all(
    raws: Iterable[Dict[str, Any]],
    platform: str,
    base_url: str,
    source: Source,
    id_patterns: Sequence[Pattern] = (),
) -> List[Product]:
    """Normalize a page's raw records, dropping malformed ones and duplicate urls."""
    out: List[Product] = []
    seen = set()
    for raw in raws:
        try:
            prod = normalize(raw, platform, base_url, source, id_patterns)
        except MalformedProduct as e:
            logger.debug("[Normalizer] drop: %s", e)
            continue
        if prod.product_url in seen:
            continue
        seen.add(prod.product_url)
        out.append(prod)
    return out
