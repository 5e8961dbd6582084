"""Security module -- URL access policy."""

from pagebroker.security.url_policy import (
    AccessPolicy,
    ensure_url_allowed,
    evaluate,
    match_glob,
    matches_any,
)

__all__ = ["AccessPolicy", "ensure_url_allowed", "evaluate", "match_glob", "matches_any"]
