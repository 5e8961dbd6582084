"""WebBroker -- the four caller-facing operations wired from one Settings value."""

import asyncio
from typing import List, Optional

from pagebroker.browser.orchestrator import FetchOrchestrator
from pagebroker.browser.page import FetchedPage
from pagebroker.browser.session import BrowserSession
from pagebroker.cache.search_cache import SearchCache
from pagebroker.llm.summarizer import Summarizer, WebPageSummary
from pagebroker.service.search import WebSearch
from pagebroker.utils.config import Settings
from pagebroker.utils.logger import get_logger
from pagebroker.web.converter import page_to_markdown
from pagebroker.web.fetcher import DownloadedResource, download_resource
from pagebroker.web.search_provider import SearchResult, build_search_engine

log = get_logger(__name__)


def search_results_to_markdown(results: List[SearchResult]) -> str:
    lines = ["# Search results", ""]
    lines.extend(f"* [{r.title}]({r.link}) - {r.snippet}" for r in results)
    return "\n".join(lines) + "\n"


class WebBroker:
    """Fetch, download, search and summarize behind one object.

    Collaborators can be injected for tests; otherwise they are built from
    ``settings``.  The search cache is only opened when a cache path is set
    and an engine is configured.
    """

    def __init__(
        self,
        settings: Settings,
        orchestrator: Optional[FetchOrchestrator] = None,
        search: Optional[WebSearch] = None,
        summarizer: Optional[Summarizer] = None,
    ):
        self.settings = settings
        self.orchestrator = orchestrator or FetchOrchestrator(
            BrowserSession(
                port=settings.webdriver_port,
                driver_path=settings.webdriver_path,
                page_load_timeout=settings.page_load_timeout,
            ),
            policy=settings.policy,
            selector_rules=settings.selectors,
            page_load_timeout=settings.page_load_timeout,
            convert_absolute_links=settings.convert_absolute_links,
        )
        self.search = search if search is not None else self._build_search(settings)
        self._summarizer = summarizer

    @staticmethod
    def _build_search(settings: Settings) -> WebSearch:
        engine = build_search_engine(settings.search_engine, settings.google_cx, settings.google_key)
        cache = None
        if engine is not None and settings.search_cache_path:
            cache = SearchCache(settings.search_cache_path, settings.search_cache_ttl_seconds)
        return WebSearch(engine, cache)

    @property
    def has_search(self) -> bool:
        return self.search.enabled

    @property
    def summarizer(self) -> Summarizer:
        # Built lazily so a missing LLM key only fails the summary operation.
        if self._summarizer is None:
            self._summarizer = Summarizer(
                model=self.settings.llm_model,
                api_key=self.settings.llm_api_key,
                base_url=self.settings.llm_base_url,
            )
        return self._summarizer

    # -- Lifecycle --------------------------------------------------------------

    async def start(self) -> None:
        """Open the browser session up front instead of on the first fetch."""
        await asyncio.to_thread(self.orchestrator.session.start)

    async def close(self) -> None:
        await self.orchestrator.close()
        if self.search.cache is not None:
            self.search.cache.close()

    # -- Operations -------------------------------------------------------------

    async def fetch_page(
        self, url: str, selector: str = "", timeout: Optional[float] = None
    ) -> FetchedPage:
        return await self.orchestrator.fetch_url(url, selector, timeout=timeout)

    async def fetch_markdown(
        self, url: str, selector: str = "", timeout: Optional[float] = None
    ) -> str:
        page = await self.fetch_page(url, selector, timeout=timeout)
        return await asyncio.to_thread(page_to_markdown, page, self.settings.use_pandoc)

    async def download(self, url: str, max_bytes: Optional[int] = None) -> DownloadedResource:
        limit = self.settings.max_download_bytes if max_bytes is None else max_bytes
        return await asyncio.to_thread(download_resource, url, self.settings.policy, limit)

    async def search_json(self, query: str) -> List[SearchResult]:
        log.info("Search: %s", query)
        return await self.search.search_json(query)

    async def search_markdown(self, query: str) -> str:
        return search_results_to_markdown(await self.search_json(query))

    async def summarize_url(
        self, url: str, selector: str = "", short: Optional[bool] = None
    ) -> WebPageSummary:
        summarizer = self.summarizer
        page = await self.fetch_page(url, selector)
        log.debug("Loaded URL: %s", url)
        markdown = await asyncio.to_thread(page_to_markdown, page, self.settings.use_pandoc)
        use_short = self.settings.llm_short if short is None else short
        log.debug("Sending to LLM")
        summary = await asyncio.to_thread(summarizer.summarize, markdown, use_short)
        return WebPageSummary(
            target_url=page.target_url,
            current_url=page.current_url,
            title=page.title,
            summary=summary,
        )
