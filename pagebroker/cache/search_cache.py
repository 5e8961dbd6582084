"""SQLite-backed cache of search results, keyed by the exact query text."""

import json
import os
import sqlite3
import threading
import time
from dataclasses import asdict
from typing import Callable, List, Optional, Tuple

from pagebroker.utils.errors import CacheError
from pagebroker.utils.logger import get_logger
from pagebroker.web.search_provider import SearchResult

log = get_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS search_cache (
    query TEXT PRIMARY KEY,
    result_json TEXT NOT NULL,
    fetched_at REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_search_cache_fetched ON search_cache(fetched_at);
"""


class SearchCache:
    """TTL-bound store of search results that survives process restarts.

    Entries are never deleted on read: a stale row simply reads as a miss
    until ``cleanup`` (run once when the cache is opened) removes it.
    """

    def __init__(
        self,
        path: str,
        ttl_seconds: float,
        clock: Callable[[], float] = time.time,
    ):
        self.path = path
        self.ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None

        try:
            parent = os.path.dirname(path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            # Calls arrive from worker threads; access is serialised by _lock.
            self._conn = sqlite3.connect(path, timeout=5.0, check_same_thread=False)
            self._conn.executescript(SCHEMA)
            self._conn.commit()
        except (OSError, sqlite3.Error) as e:
            self.close()
            raise CacheError(f"initializing search cache at {path}: {e}") from e

        try:
            removed = self.cleanup()
        except CacheError:
            self.close()
            raise
        log.info("Search cache ready at %s (ttl=%ss, removed %d stale rows)", path, ttl_seconds, removed)

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def get(self, query: str) -> Tuple[List[SearchResult], bool]:
        """Return (results, found).  Missing and expired rows both read as not found."""
        with self._lock:
            conn = self._require_conn()
            try:
                row = conn.execute(
                    "SELECT result_json, fetched_at FROM search_cache WHERE query = ?",
                    (query,),
                ).fetchone()
            except sqlite3.Error as e:
                raise CacheError(f"reading search cache: {e}") from e

        if row is None:
            return [], False

        payload, fetched_at = row
        if self._clock() - fetched_at >= self.ttl:
            return [], False

        try:
            items = json.loads(payload)
        except json.JSONDecodeError as e:
            raise CacheError(f"corrupted cache entry for {query!r}: {e}") from e
        return [SearchResult.from_dict(item) for item in items], True

    def put(self, query: str, results: List[SearchResult]) -> None:
        """Insert or overwrite the entry for *query*."""
        payload = json.dumps([asdict(r) for r in results], ensure_ascii=False)
        with self._lock:
            conn = self._require_conn()
            try:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO search_cache (query, result_json, fetched_at)
                        VALUES (?, ?, ?)
                        ON CONFLICT(query) DO UPDATE SET
                            result_json = excluded.result_json,
                            fetched_at = excluded.fetched_at
                        """,
                        (query, payload, self._clock()),
                    )
            except sqlite3.Error as e:
                raise CacheError(f"writing search cache: {e}") from e

    def cleanup(self) -> int:
        """Delete rows older than the TTL.  Returns the number of rows removed."""
        cutoff = self._clock() - self.ttl
        with self._lock:
            conn = self._require_conn()
            try:
                with conn:
                    cur = conn.execute("DELETE FROM search_cache WHERE fetched_at < ?", (cutoff,))
            except sqlite3.Error as e:
                raise CacheError(f"cleaning search cache: {e}") from e
        return cur.rowcount

    def close(self) -> None:
        """Release the database handle.  Safe to call more than once."""
        with self._lock:
            conn, self._conn = self._conn, None
        if conn is not None:
            conn.close()

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise CacheError("cache not initialized")
        return self._conn
