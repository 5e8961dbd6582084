"""Cache module -- persistent TTL cache for search results."""

from pagebroker.cache.search_cache import SearchCache

__all__ = ["SearchCache"]
