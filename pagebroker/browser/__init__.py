"""Browser module -- WebDriver session lifecycle and single-flight page fetching."""

from pagebroker.browser.orchestrator import FetchOrchestrator, FetchState
from pagebroker.browser.page import FetchedPage, FetchRequest, UrlSelectorRule
from pagebroker.browser.session import BrowserSession

__all__ = [
    "BrowserSession",
    "FetchOrchestrator",
    "FetchRequest",
    "FetchState",
    "FetchedPage",
    "UrlSelectorRule",
]
