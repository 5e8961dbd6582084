"""Web module -- search engines, resource downloads, HTML conversion."""

from pagebroker.web.converter import html_to_markdown, html_to_markdown_yaml, page_to_markdown
from pagebroker.web.fetcher import DownloadedResource, download_resource
from pagebroker.web.search_provider import (
    GoogleCustomSearch,
    SearchEngineKind,
    SearchResult,
    build_search_engine,
)

__all__ = [
    "DownloadedResource",
    "GoogleCustomSearch",
    "SearchEngineKind",
    "SearchResult",
    "build_search_engine",
    "download_resource",
    "html_to_markdown",
    "html_to_markdown_yaml",
    "page_to_markdown",
]
