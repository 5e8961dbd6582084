"""URL allow/deny policy evaluation.

Patterns are globs over the *whole* URL string, not just the path:

* ``*`` matches any run of characters (including ``/`` and the empty run)
* ``?`` matches exactly one character
* ``\\`` makes the following character literal

Deny patterns are checked before allow patterns, so a denied URL can never
be re-admitted by an allow entry.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Optional, Pattern, Tuple

from pagebroker.utils.errors import ConfigurationError, PolicyViolation


@dataclass(frozen=True)
class AccessPolicy:
    """Ordered allow and deny pattern sets. Either may be empty."""

    allow: Tuple[str, ...] = ()
    deny: Tuple[str, ...] = ()


@lru_cache(maxsize=256)
def compile_glob(pattern: str) -> Pattern[str]:
    """Translate *pattern* into an anchored regular expression."""
    parts = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\":
            if i + 1 >= len(pattern):
                raise ConfigurationError(
                    f"invalid glob pattern {pattern!r}: trailing escape character"
                )
            parts.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
        i += 1
    return re.compile(r"\A" + "".join(parts) + r"\Z", re.DOTALL)


def match_glob(pattern: str, text: str) -> bool:
    """Return True when *pattern* matches the entire *text*."""
    return compile_glob(pattern).match(text) is not None


def matches_any(text: str, patterns: Iterable[str]) -> bool:
    """Return True if any non-blank pattern matches *text*.

    Every non-blank pattern is compiled, so an invalid entry raises
    ``ConfigurationError`` even when an earlier entry already matched.
    """
    matched = False
    for pattern in patterns:
        pattern = pattern.strip()
        if not pattern:
            continue
        if match_glob(pattern, text):
            matched = True
    return matched


def evaluate(
    url: str,
    allow: Iterable[str] = (),
    deny: Iterable[str] = (),
) -> Tuple[bool, Optional[str]]:
    """Return (allowed, reason).  ``reason`` is None when the URL is allowed."""
    target = (url or "").strip()
    if not target:
        return False, "missing URL"

    if matches_any(target, deny):
        return False, f"URL {target!r} is denied by policy"

    allow = [p for p in allow if p.strip()]
    if not allow:
        return True, None

    if not matches_any(target, allow):
        return False, f"URL {target!r} is not in allowed list"
    return True, None


def ensure_url_allowed(url: str, policy: AccessPolicy) -> None:
    """Raise ``PolicyViolation`` unless *policy* admits *url*."""
    allowed, reason = evaluate(url, policy.allow, policy.deny)
    if not allowed:
        raise PolicyViolation(reason)
