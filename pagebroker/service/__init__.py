"""Service module -- cached web search and the WebBroker facade."""

from pagebroker.service.broker import WebBroker, search_results_to_markdown
from pagebroker.service.search import WebSearch

__all__ = ["WebBroker", "WebSearch", "search_results_to_markdown"]
