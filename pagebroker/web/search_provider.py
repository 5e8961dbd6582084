"""Search engines and the shared SearchResult dataclass.

The set of engines is closed: Google Custom Search, or no search at all.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx

from pagebroker.utils.errors import ConfigurationError, SearchProviderError
from pagebroker.utils.logger import get_logger

log = get_logger(__name__)

GOOGLE_CUSTOM_SEARCH_URL = "https://customsearch.googleapis.com/customsearch/v1"
GOOGLE_RESULT_KIND = "customsearch#result"
USER_AGENT = "pagebroker-search/0.1"


@dataclass
class SearchResult:
    """A single web search result, in provider ranking order."""

    title: str
    link: str
    snippet: str

    @classmethod
    def from_dict(cls, item: Dict[str, Any]) -> "SearchResult":
        return cls(
            title=_text(item.get("title")),
            link=_text(item.get("link")),
            snippet=_text(item.get("snippet")),
        )


class SearchEngineKind(str, Enum):
    GOOGLE_CUSTOM = "google_custom"
    DISABLED = "disabled"


class GoogleCustomSearch:
    """Web search via the Google Custom Search JSON API."""

    kind = SearchEngineKind.GOOGLE_CUSTOM

    def __init__(
        self,
        cx: str,
        key: str,
        endpoint: str = GOOGLE_CUSTOM_SEARCH_URL,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not cx or not key:
            raise ConfigurationError("Google Custom Search needs both cx and key")
        self.endpoint = endpoint
        self.timeout = timeout
        self._params = {"cx": cx, "key": key}
        self._transport = transport

    async def search_json(self, query: str) -> List[SearchResult]:
        """Run *query* and return the normalised results."""
        params = {"q": query, **self._params}
        headers = {"Accept": "application/json", "User-Agent": USER_AGENT}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(self.endpoint, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise SearchProviderError(f"search request failed: {e}") from e

        if not resp.is_success:
            raise SearchProviderError(f"api status: {resp.status_code} {resp.reason_phrase}")

        try:
            data = resp.json()
        except ValueError as e:
            raise SearchProviderError(f"unable to decode search response: {e}") from e

        items = data.get("items") if isinstance(data, dict) else None
        if not isinstance(items, list):
            raise SearchProviderError("unable to process JSON result")

        results: List[SearchResult] = []
        for item in items:
            if not isinstance(item, dict) or item.get("kind") != GOOGLE_RESULT_KIND:
                continue
            results.append(SearchResult.from_dict(item))
        log.debug("Search for %r returned %d results", query, len(results))
        return results


def build_search_engine(kind: str, cx: str = "", key: str = "") -> Optional[GoogleCustomSearch]:
    """Return the configured engine, or None when search is disabled."""
    try:
        engine_kind = SearchEngineKind((kind or SearchEngineKind.DISABLED.value).strip().lower())
    except ValueError as e:
        raise ConfigurationError(f"unknown search engine: {kind}") from e

    if engine_kind is SearchEngineKind.DISABLED:
        log.info("No search engine configured")
        return None
    if not cx or not key:
        log.info("Missing Google cx and/or api key values, disabling search")
        return None
    return GoogleCustomSearch(cx, key)


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""
