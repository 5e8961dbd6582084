"""Value types that flow through a fetch."""

from dataclasses import dataclass


@dataclass(frozen=True)
class FetchRequest:
    """A single page fetch: the URL plus an optional content selector."""

    url: str
    selector: str = ""


@dataclass(frozen=True)
class FetchedPage:
    """The rendered result of a fetch, owned by the caller once returned."""

    target_url: str
    current_url: str
    title: str
    html: str


@dataclass(frozen=True)
class UrlSelectorRule:
    """Default selector to use for URLs matching ``url`` (a glob pattern)."""

    url: str
    selector: str
