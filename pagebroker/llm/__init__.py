"""LLM module -- OpenAI-compatible client and page summarizer."""

from pagebroker.llm.base import BaseLLM
from pagebroker.llm.summarizer import Summarizer, WebPageSummary

__all__ = ["BaseLLM", "Summarizer", "WebPageSummary"]
