import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

import orjson

from .config import Settings
from .schema import CacheEntry, Product, SearchFilters

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def cache_key(query: str, filters: Optional[SearchFilters], platforms: Iterable[str], max_pages: int = 1) -> str:
    """
    Stable key for a search signature. Sorting is applied after retrieval so
    sortBy never splits the cache.
    """
    signature = {
        "query": query.strip().lower(),
        "filters": (filters or SearchFilters()).model_dump(exclude_none=True, exclude={"sort_by"}),
        "platforms": sorted(set(platforms)),
        "max_pages": max_pages,
    }
    return hashlib.sha1(orjson.dumps(signature, option=orjson.OPT_SORT_KEYS)).hexdigest()


def make_entry(key: str, query: str, platforms: Iterable[str], results: List[Product],
               ttl_seconds: int, now: Optional[datetime] = None) -> CacheEntry:
    now = now or _utcnow()
    return CacheEntry(
        key=key,
        query=query,
        platforms=sorted(set(platforms)),
        results=results,
        created_at=now,
        expires_at=now + timedelta(seconds=ttl_seconds),
    )


class MemoryCache:
    """Process-local store; entries past expires_at read as misses and are evicted."""

    def __init__(self, clock: Optional[Clock] = None):
        self._entries: Dict[str, CacheEntry] = {}
        self.clock = clock or _utcnow

    def get(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self.clock()):
            del self._entries[key]
            return None
        return entry

    def set(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry

    def clear_expired(self) -> int:
        now = self.clock()
        stale = [k for k, e in self._entries.items() if e.is_expired(now)]
        for k in stale:
            del self._entries[k]
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)


class SupabaseCache:
    """
    Rows in the search_cache table:
      cache_key (unique), query, platforms jsonb, results jsonb,
      created_at timestamptz, expires_at timestamptz
    """

    def __init__(self, client, table: str = "search_cache", clock: Optional[Clock] = None):
        self.client = client
        self.table = table
        self.clock = clock or _utcnow

    def _row(self, entry: CacheEntry) -> Dict[str, Any]:
        data = orjson.loads(entry.model_dump_json())
        return {
            "cache_key": entry.key,
            "query": data["query"],
            "platforms": data["platforms"],
            "results": data["results"],
            "created_at": data["created_at"],
            "expires_at": data["expires_at"],
        }

    def get(self, key: str) -> Optional[CacheEntry]:
        try:
            resp = (
                self.client.table(self.table)
                .select("*")
                .eq("cache_key", key)
                .gte("expires_at", self.clock().isoformat())
                .limit(1)
                .execute()
            )
        except Exception:
            logger.exception("[Cache] read failed for %s", key)
            return None

        rows = getattr(resp, "data", None) or []
        if not rows:
            return None
        row = rows[0]
        try:
            return CacheEntry(
                key=row["cache_key"],
                query=row.get("query") or "",
                platforms=row.get("platforms") or [],
                results=row.get("results") or [],
                created_at=row["created_at"],
                expires_at=row["expires_at"],
            )
        except (KeyError, ValueError):
            logger.exception("[Cache] unreadable row for %s, treating as miss", key)
            return None

    def set(self, key: str, entry: CacheEntry) -> None:
        try:
            self.client.table(self.table).upsert(self._row(entry), on_conflict="cache_key").execute()
        except Exception:
            logger.exception("[Cache] write failed for %s", key)

    def clear_expired(self) -> int:
        try:
            resp = self.client.table(self.table).delete().lt("expires_at", self.clock().isoformat()).execute()
        except Exception:
            logger.exception("[Cache] clear_expired failed")
            return 0
        return len(getattr(resp, "data", None) or [])


def build_cache(settings: Settings):
    if settings.supabase_configured:
        from .supabase_client import get_supabase

        logger.info("[Cache] using supabase table %s", settings.cache_table)
        return SupabaseCache(get_supabase(), settings.cache_table)
    logger.info("[Cache] supabase not configured, using in-memory cache")
    return MemoryCache()
