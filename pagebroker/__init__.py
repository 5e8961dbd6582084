"""pagebroker -- browser-backed page fetching, web search and summaries for tool-calling agents."""

__version__ = "0.1.0"
