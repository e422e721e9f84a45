from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

SortBy = Literal["price_asc", "price_desc", "rating_desc", "popularity_desc", "date_desc"]


class Source(str, Enum):
    SCRIPT_JSON = "script_json"
    DOM_SELECTOR = "dom_selector"
    REGEX_EXTRACTION = "regex_extraction"
    FALLBACK_MOCK = "fallback_mock"  # legacy rows only; never produced here


class PlatformStatus(str, Enum):
    PENDING = "pending"
    FETCHING = "fetching"
    EXTRACTED = "extracted"
    BLOCKED = "blocked"
    TIMED_OUT = "timed_out"
    EMPTY = "empty"
    FAILED = "failed"
    MERGED = "merged"


class Product(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, use_enum_values=True)

    id: str                          # platform-scoped, derived from the url
    title: str = Field(min_length=1)
    price: float = Field(gt=0)
    product_url: str = Field(alias="productUrl")
    platform: str                    # lowercase key, e.g. "zalora"
    source: Source
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    original_price: Optional[float] = Field(default=None, alias="originalPrice", gt=0)
    discount_percentage: Optional[float] = Field(default=None, alias="discountPercentage", ge=0, le=100)
    rating: Optional[float] = Field(default=None, ge=0, le=5)
    rating_count: Optional[int] = Field(default=None, alias="ratingCount", ge=0)
    brand: Optional[str] = None
    seller: Optional[str] = None
    location: Optional[str] = None
    sales: Optional[int] = Field(default=None, ge=0)
    in_stock: Optional[bool] = Field(default=None, alias="inStock")
    freshness: Literal["live", "cached"] = "live"

    @field_validator("product_url")
    @classmethod
    def _absolute_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("product_url must be absolute")
        return v


class SearchFilters(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    min_price: Optional[float] = Field(default=None, alias="minPrice", ge=0)
    max_price: Optional[float] = Field(default=None, alias="maxPrice", ge=0)
    brand: Optional[str] = None
    category: Optional[str] = None
    platform: Optional[str] = None
    min_rating: Optional[float] = Field(default=None, alias="minRating", ge=0, le=5)
    sort_by: Optional[SortBy] = Field(default=None, alias="sortBy")


class SearchRequest(BaseModel):
    """Input contract consumed from the web app."""

    model_config = ConfigDict(populate_by_name=True)

    query: str
    platforms: Union[Literal["all"], List[str]] = "all"
    filters: SearchFilters = Field(default_factory=SearchFilters)
    max_pages: int = Field(default=1, alias="maxPages", ge=1, le=10)
    force_refresh: bool = Field(default=False, alias="forceRefresh")
    use_cache: bool = Field(default=True, alias="useCache")


class SearchResponse(BaseModel):
    """Output contract produced for the web app."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    success: bool
    results: List[Product] = Field(default_factory=list)
    count: int = 0
    errors: Optional[List[str]] = None
    platform_status: Dict[str, PlatformStatus] = Field(default_factory=dict, alias="platformStatus")


class CacheEntry(BaseModel):
    key: str
    query: str
    platforms: List[str]             # platforms settled when the entry was written
    results: List[Product]
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at


@dataclass(frozen=True)
class RawPage:
    platform: str
    url: str
    html: str
    title: str = ""
    final_url: str = ""              # after redirects
