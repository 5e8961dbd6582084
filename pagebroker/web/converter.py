"""HTML to Markdown conversion, with optional YAML-style front matter."""

import re
import subprocess
from typing import Mapping, Optional

from markdownify import markdownify

from pagebroker.browser.page import FetchedPage
from pagebroker.utils.errors import ConversionError

PANDOC_ARGS = ["pandoc", "-f", "html", "-t", "gfm", "--wrap=preserve"]


def html_to_markdown(html: str) -> str:
    """Convert an HTML string to clean Markdown."""
    if not html or not html.strip():
        return ""
    md = markdownify(html, heading_style="ATX", strip=["script", "style"])
    # Collapse excessive blank lines
    md = re.sub(r"\n{3,}", "\n\n", md)
    return md.strip()


def html_to_markdown_pandoc(html: str, timeout: float = 60.0) -> str:
    """Convert HTML to GitHub-flavoured Markdown with the ``pandoc`` binary."""
    try:
        proc = subprocess.run(
            PANDOC_ARGS,
            input=html,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        raise ConversionError(f"pandoc: {e}") from e
    if proc.returncode != 0:
        raise ConversionError(f"pandoc: exit status {proc.returncode}: {proc.stderr.strip()}")
    return proc.stdout


def front_matter(headers: Mapping[str, str]) -> str:
    """Render ``key: value`` lines between ``---`` fences (empty for no headers)."""
    if not headers:
        return ""
    lines = ["---"]
    lines.extend(f"{k}: {v}" for k, v in headers.items())
    lines.append("---")
    return "\n".join(lines) + "\n"


def html_to_markdown_yaml(
    html: str,
    headers: Optional[Mapping[str, str]] = None,
    use_pandoc: bool = False,
) -> str:
    """Convert *html* and prepend a front-matter block built from *headers*."""
    body = html_to_markdown_pandoc(html) if use_pandoc else html_to_markdown(html)
    return front_matter(headers or {}) + body


def page_to_markdown(page: FetchedPage, use_pandoc: bool = False) -> str:
    """Markdown for a fetched page, headed by its URLs and title."""
    return html_to_markdown_yaml(
        page.html,
        {
            "target_url": page.target_url,
            "current_url": page.current_url,
            "title": page.title,
        },
        use_pandoc=use_pandoc,
    )
