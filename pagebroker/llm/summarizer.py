"""Page summaries produced by an LLM."""

from dataclasses import dataclass

from pagebroker.llm.base import BaseLLM
from pagebroker.utils.logger import get_logger

log = get_logger(__name__)

SUMMARY_PROMPT = "Summarize the document below{length}:\n\n<DOCUMENT>\n{document}"
SHORT_LENGTH = " in 1-3 sentences"


@dataclass(frozen=True)
class WebPageSummary:
    target_url: str
    current_url: str
    title: str
    summary: str

    def to_yaml(self) -> str:
        """Summary text headed by a front-matter block."""
        return (
            "---\n"
            f"target_url: {self.target_url}\n"
            f"current_url: {self.current_url}\n"
            f"title: {self.title}\n"
            "---\n"
            f"{self.summary}"
        )


class Summarizer(BaseLLM):
    """Summarizes Markdown documents."""

    def summarize(self, markdown: str, short: bool = False) -> str:
        prompt = SUMMARY_PROMPT.format(
            length=SHORT_LENGTH if short else "",
            document=markdown,
        )
        log.debug("Summarizing %d chars with %s (short=%s)", len(markdown), self.model, short)
        return self.complete([{"role": "user", "content": prompt}])
