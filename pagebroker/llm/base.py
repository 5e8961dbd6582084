"""Base LLM wrapper for any OpenAI-compatible chat completions API."""

from typing import Any, Dict, List, Optional

from openai import OpenAI

from pagebroker.utils.errors import ConfigurationError


class BaseLLM:
    """Thin wrapper around the OpenAI chat completions API.

    ``base_url`` points the client at a compatible server; API errors are
    not caught here.
    """

    def __init__(self, model: str, api_key: str, base_url: Optional[str] = None):
        if not model:
            raise ConfigurationError("no LLM model configured")
        if not api_key:
            raise ConfigurationError("no LLM API key configured")
        self.model = model
        self._client = OpenAI(api_key=api_key, base_url=base_url or None)

    def complete(
        self,
        messages: List[Dict[str, str]],
        **kwargs: Any,
    ) -> str:
        """Send *messages* to the model and return the assistant reply text."""
        resp = self._client.chat.completions.create(
            model=self.model,
            messages=messages,
            **kwargs,
        )
        msg = resp.choices[0].message
        return (msg.content or "") if msg else ""
