"""Unit tests for HTML -> Markdown conversion."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from pagebroker.browser.page import FetchedPage
from pagebroker.utils.errors import ConversionError
from pagebroker.web.converter import (
    front_matter,
    html_to_markdown,
    html_to_markdown_pandoc,
    html_to_markdown_yaml,
    page_to_markdown,
)


def test_basic_conversion():
    md = html_to_markdown("<h1>Title</h1><p>Hello <b>world</b></p>")
    assert "# Title" in md
    assert "**world**" in md


def test_empty_input():
    assert html_to_markdown("") == ""
    assert html_to_markdown("   ") == ""


def test_links_kept():
    md = html_to_markdown('<p><a href="https://example.com/a">A link</a></p>')
    assert "[A link](https://example.com/a)" in md


def test_blank_lines_collapsed():
    md = html_to_markdown("<p>a</p>\n\n\n\n<div></div>\n\n\n<p>b</p>")
    assert "\n\n\n" not in md


def test_front_matter_keeps_order():
    assert front_matter({"b": "2", "a": "1"}) == "---\nb: 2\na: 1\n---\n"
    assert front_matter({}) == ""


def test_yaml_without_headers_has_no_block():
    assert html_to_markdown_yaml("<p>x</p>") == "x"


def test_page_to_markdown_headers():
    page = FetchedPage(
        target_url="https://example.com",
        current_url="https://example.com/",
        title="Example Domain",
        html="<body><h1>Example</h1></body>",
    )
    md = page_to_markdown(page)
    assert md.startswith(
        "---\ntarget_url: https://example.com\ncurrent_url: https://example.com/\n"
        "title: Example Domain\n---\n"
    )
    assert md.endswith("# Example")


class TestPandoc:
    def test_success(self):
        proc = MagicMock(returncode=0, stdout="# Hi\n", stderr="")
        with patch("pagebroker.web.converter.subprocess.run", return_value=proc) as run:
            assert html_to_markdown_pandoc("<h1>Hi</h1>") == "# Hi\n"
        args, kwargs = run.call_args
        assert args[0][:5] == ["pandoc", "-f", "html", "-t", "gfm"]
        assert kwargs["input"] == "<h1>Hi</h1>"

    def test_missing_binary(self):
        with patch("pagebroker.web.converter.subprocess.run", side_effect=FileNotFoundError("pandoc")):
            with pytest.raises(ConversionError):
                html_to_markdown_pandoc("<p>x</p>")

    def test_nonzero_exit(self):
        proc = MagicMock(returncode=2, stdout="", stderr="bad input")
        with patch("pagebroker.web.converter.subprocess.run", return_value=proc):
            with pytest.raises(ConversionError, match="bad input"):
                html_to_markdown_pandoc("<p>x</p>")

    def test_timeout(self):
        err = subprocess.TimeoutExpired(cmd="pandoc", timeout=1)
        with patch("pagebroker.web.converter.subprocess.run", side_effect=err):
            with pytest.raises(ConversionError):
                html_to_markdown_pandoc("<p>x</p>")

    def test_yaml_uses_pandoc_when_asked(self):
        with patch("pagebroker.web.converter.html_to_markdown_pandoc", return_value="P") as pd:
            assert html_to_markdown_yaml("<p>x</p>", {"k": "v"}, use_pandoc=True) == "---\nk: v\n---\nP"
        pd.assert_called_once_with("<p>x</p>")
