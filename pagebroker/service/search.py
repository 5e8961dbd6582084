"""Cache-then-engine web search."""

import asyncio
from typing import List, Optional

from pagebroker.cache.search_cache import SearchCache
from pagebroker.utils.errors import CacheError, ConfigurationError
from pagebroker.utils.logger import get_logger
from pagebroker.web.search_provider import GoogleCustomSearch, SearchResult

log = get_logger(__name__)


class WebSearch:
    """Looks queries up in the cache first and falls back to the engine.

    Cache trouble never fails a search: a read error or timeout counts as a
    miss and a failed write is skipped.
    """

    def __init__(
        self,
        engine: Optional[GoogleCustomSearch],
        cache: Optional[SearchCache] = None,
        cache_timeout: float = 5.0,
    ):
        self.engine = engine
        self.cache = cache
        self.cache_timeout = cache_timeout

    @property
    def enabled(self) -> bool:
        return self.engine is not None

    async def search_json(self, query: str) -> List[SearchResult]:
        if self.engine is None:
            raise ConfigurationError("search engine is not configured")

        cached = await self._cache_get(query)
        if cached is not None:
            log.debug("Search cache hit: %s", query)
            return cached

        results = await self.engine.search_json(query)
        await self._cache_put(query, results)
        return results

    async def _cache_get(self, query: str) -> Optional[List[SearchResult]]:
        if self.cache is None:
            return None
        try:
            results, found = await asyncio.wait_for(
                asyncio.to_thread(self.cache.get, query), self.cache_timeout
            )
        except (CacheError, TimeoutError) as e:
            log.warning("Search cache lookup failed for %r: %s", query, str(e) or "timeout")
            return None
        return results if found else None

    async def _cache_put(self, query: str, results: List[SearchResult]) -> None:
        if self.cache is None:
            return
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self.cache.put, query, results), self.cache_timeout
            )
        except (CacheError, TimeoutError) as e:
            log.warning("Search cache update failed for %r: %s", query, str(e) or "timeout")
