import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, HttpUrl, ValidationError


class Settings(BaseModel):
    supabase_url: Optional[HttpUrl] = Field(default=None, alias="SUPABASE_URL")
    supabase_key: Optional[str] = Field(default=None, alias="SUPABASE_SERVICE_KEY")
    env: str = Field(default="local", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # search cache
    cache_table: str = Field(default="search_cache", alias="SEARCH_CACHE_TABLE")
    cache_ttl_seconds: int = Field(default=6 * 60 * 60, alias="SEARCH_CACHE_TTL_SECONDS", gt=0)

    # browser / scraping
    headless: bool = Field(default=True, alias="SCRAPE_HEADLESS")
    block_resources: bool = Field(default=True, alias="SCRAPE_BLOCK_RESOURCES")
    nav_timeout_ms: int = Field(default=30000, alias="SCRAPE_NAV_TIMEOUT_MS", gt=0)
    selector_timeout_ms: int = Field(default=5000, alias="SCRAPE_SELECTOR_TIMEOUT_MS", ge=0)
    page_timeout_s: float = Field(default=60.0, alias="SCRAPE_PAGE_TIMEOUT_S", gt=0)
    max_concurrent_pages: int = Field(default=3, alias="SCRAPE_MAX_CONCURRENT_PAGES", ge=1)
    retries: int = Field(default=1, alias="SCRAPE_RETRIES", ge=0)
    max_products_per_page: int = Field(default=20, alias="SCRAPE_MAX_PRODUCTS_PER_PAGE", ge=1)

    model_config = {"populate_by_name": True}

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


def _load_dotenv():
    # Load from repo root if present, otherwise rely on environment variables.
    root_env = Path(__file__).resolve().parents[1] / ".env"
    if root_env.exists():
        load_dotenv(root_env)
    else:
        load_dotenv()


@lru_cache()
def get_settings() -> Settings:
    _load_dotenv()
    try:
        return Settings(**os.environ)
    except ValidationError as exc:
        invalid = [str(e["loc"][0]) for e in exc.errors()]
        detail = f"Invalid environment variables: {', '.join(invalid)}"
        raise RuntimeError(detail) from exc
