"""Integration test -- fetch a real page through chromedriver.

Requires: chromedriver (PAGEBROKER_WD_PATH or /usr/bin/chromedriver), Chrome,
and network access.
"""

import asyncio
import os
import shutil

import pytest

from pagebroker.browser.orchestrator import FetchOrchestrator, FetchState
from pagebroker.browser.session import BrowserSession
from pagebroker.utils.errors import SessionError
from pagebroker.web.converter import page_to_markdown

DRIVER_PATH = os.environ.get("PAGEBROKER_WD_PATH", "/usr/bin/chromedriver")


def _driver_available():
    return os.path.exists(DRIVER_PATH) or shutil.which("chromedriver") is not None


@pytest.mark.integration
def test_fetch_example_domain():
    if not _driver_available():
        pytest.skip("chromedriver not available")

    path = DRIVER_PATH if os.path.exists(DRIVER_PATH) else shutil.which("chromedriver")
    orch = FetchOrchestrator(BrowserSession(port=9555, driver_path=path), convert_absolute_links=True)

    async def run():
        try:
            return await orch.fetch_url("https://example.com", timeout=60)
        finally:
            await orch.close()

    try:
        page = asyncio.run(run())
    except SessionError as e:
        pytest.skip(f"chrome not usable: {e}")

    assert orch.state == FetchState.DONE
    assert "Example Domain" in page.title
    assert page.html.lower().startswith("<body")
    assert "title: Example Domain" in page_to_markdown(page)
