"""Unit tests for the SQLite search cache."""

import sqlite3

import pytest

from pagebroker.cache.search_cache import SearchCache
from pagebroker.utils.errors import CacheError
from pagebroker.web.search_provider import SearchResult


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


def _results():
    return [
        SearchResult(title="Forecast", link="https://weather.example/today", snippet="Sunny"),
        SearchResult(title="Radar", link="https://weather.example/radar", snippet=""),
    ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(tmp_path, clock):
    c = SearchCache(str(tmp_path / "cache" / "search.db"), ttl_seconds=3600, clock=clock)
    yield c
    c.close()


def test_put_then_get_round_trip(cache):
    cache.put("weather today", _results())
    results, found = cache.get("weather today")
    assert found is True
    assert results == _results()


def test_missing_query_is_not_found(cache):
    assert cache.get("never asked") == ([], False)


def test_query_key_is_exact(cache):
    cache.put("weather today", _results())
    assert cache.get("Weather today")[1] is False
    assert cache.get("weather today ")[1] is False


def test_entry_expires_after_ttl(cache, clock):
    cache.put("weather today", _results())
    clock.now += 3599
    assert cache.get("weather today")[1] is True
    clock.now += 1
    assert cache.get("weather today") == ([], False)


def test_put_overwrites_and_refreshes(cache, clock):
    cache.put("q", _results())
    clock.now += 3000
    newer = [SearchResult(title="New", link="https://n.example", snippet="n")]
    cache.put("q", newer)
    clock.now += 3000
    results, found = cache.get("q")
    assert found is True
    assert results == newer


def test_empty_result_list_is_cached(cache):
    cache.put("nothing matches", [])
    assert cache.get("nothing matches") == ([], True)


def test_cleanup_removes_only_stale_rows(cache, clock):
    cache.put("old", _results())
    clock.now += 7200
    cache.put("fresh", _results())
    assert cache.cleanup() == 1
    assert cache.get("fresh")[1] is True


def test_persists_across_instances(tmp_path, clock):
    path = str(tmp_path / "search.db")
    first = SearchCache(path, ttl_seconds=3600, clock=clock)
    first.put("weather today", _results())
    first.close()

    second = SearchCache(path, ttl_seconds=3600, clock=clock)
    try:
        assert second.get("weather today") == (_results(), True)
    finally:
        second.close()


def test_stale_rows_removed_when_opened(tmp_path, clock):
    path = str(tmp_path / "search.db")
    first = SearchCache(path, ttl_seconds=60, clock=clock)
    first.put("old", _results())
    first.close()

    clock.now += 120
    second = SearchCache(path, ttl_seconds=60, clock=clock)
    second.close()

    conn = sqlite3.connect(path)
    try:
        count = conn.execute("SELECT COUNT(*) FROM search_cache").fetchone()[0]
    finally:
        conn.close()
    assert count == 0


def test_close_is_idempotent_and_blocks_use(cache):
    cache.close()
    cache.close()
    assert cache.is_open is False
    with pytest.raises(CacheError, match="not initialized"):
        cache.get("q")


def test_unopenable_path_raises_cache_error(tmp_path):
    # A directory cannot be opened as a database file
    with pytest.raises(CacheError):
        SearchCache(str(tmp_path), ttl_seconds=60)


def test_corrupted_entry_raises_cache_error(cache, tmp_path):
    cache.put("q", _results())
    cache._conn.execute("UPDATE search_cache SET result_json = 'not json' WHERE query = 'q'")
    cache._conn.commit()
    with pytest.raises(CacheError, match="corrupted"):
        cache.get("q")
