"""Single-flight page fetching through one browser session.

Per call the orchestrator moves through

  IDLE -> POLICY_CHECK -> NAVIGATING -> EXTRACTING -> DONE
                                 \\-> FAILED | CANCELLED

Only one call per instance runs at a time; parallel fetches need separate
instances, each with its own chromedriver port.  The blocking Selenium work
runs on a worker thread so the caller's task can be cancelled (or time out)
while a navigation is still in progress.  A cancelled call invalidates the
session, because the abandoned worker may still be driving it.
"""

import asyncio
import itertools
from enum import Enum
from typing import Iterable, Optional, Tuple

from selenium.common.exceptions import (
    NoSuchElementException,
    TimeoutException,
    WebDriverException,
)
from selenium.webdriver.common.by import By
from selenium.webdriver.remote.webdriver import WebDriver
from selenium.webdriver.remote.webelement import WebElement
from selenium.webdriver.support.ui import WebDriverWait

from pagebroker.browser.page import FetchedPage, FetchRequest, UrlSelectorRule
from pagebroker.browser.session import BrowserSession
from pagebroker.security.url_policy import AccessPolicy, ensure_url_allowed, match_glob
from pagebroker.utils.errors import (
    ConversionError,
    ElementNotFound,
    FetchCancelled,
    NavigationError,
    PageLoadTimeout,
    SessionError,
)
from pagebroker.utils.logger import get_logger

log = get_logger(__name__)

BODY_SELECTOR = "body"

READY_STATE_JS = "return document.readyState;"

ABSOLUTE_LINKS_JS = """
const links = document.body.querySelectorAll('a');
const images = document.body.querySelectorAll('img');
links.forEach(link => { link.setAttribute('href', link.href); });
images.forEach(img => { img.setAttribute('src', img.src); });
"""


class FetchState(str, Enum):
    IDLE = "idle"
    POLICY_CHECK = "policy_check"
    NAVIGATING = "navigating"
    EXTRACTING = "extracting"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class FetchOrchestrator:
    """Serialises fetches through a single ``BrowserSession``."""

    def __init__(
        self,
        session: BrowserSession,
        policy: Optional[AccessPolicy] = None,
        selector_rules: Iterable[UrlSelectorRule] = (),
        page_load_timeout: int = 30,
        convert_absolute_links: bool = False,
    ):
        self.session = session
        self.policy = policy or AccessPolicy()
        self.selector_rules: Tuple[UrlSelectorRule, ...] = tuple(selector_rules)
        self.page_load_timeout = page_load_timeout
        self.convert_absolute_links = convert_absolute_links
        self.state = FetchState.IDLE
        self._lock = asyncio.Lock()
        self._call_ids = itertools.count(1)
        self._active_call: Optional[int] = None
        self._closed = False

    # -- Public API -----------------------------------------------------------

    def resolve_selector(self, target_url: str, selector: str = "") -> str:
        """Explicit selector first, then the first matching URL rule, then the body."""
        selector = (selector or "").strip()
        if selector:
            return selector
        target = target_url.strip()
        for rule in self.selector_rules:
            if rule.url.strip() and match_glob(rule.url.strip(), target):
                return rule.selector
        return BODY_SELECTOR

    async def fetch(self, request: FetchRequest, timeout: Optional[float] = None) -> FetchedPage:
        return await self.fetch_url(request.url, request.selector, timeout=timeout)

    async def fetch_url(
        self,
        target_url: str,
        selector: str = "",
        timeout: Optional[float] = None,
    ) -> FetchedPage:
        """Load *target_url* and return the HTML of the selected element.

        ``timeout`` bounds the navigation and extraction (not the wait for the
        lock); when it expires ``FetchCancelled`` is raised.  Cancelling the
        calling task raises ``asyncio.CancelledError`` as usual.  Either way
        no page is returned and the session is discarded.
        """
        async with self._lock:
            call_id = next(self._call_ids)
            self._active_call = call_id
            self.state = FetchState.POLICY_CHECK
            deadline = None
            try:
                if self._closed:
                    raise SessionError("service already stopped")
                ensure_url_allowed(target_url, self.policy)
                effective = self.resolve_selector(target_url, selector)
                async with asyncio.timeout(timeout) as deadline:
                    page = await asyncio.to_thread(
                        self._fetch_blocking, call_id, target_url.strip(), effective
                    )
            except TimeoutError:
                if deadline is None or not deadline.expired():
                    self._finish(FetchState.FAILED)
                    raise
                self._abort()
                raise FetchCancelled(f"fetch of {target_url} timed out or was cancelled") from None
            except asyncio.CancelledError:
                self._abort()
                raise
            except Exception as e:
                self._finish(FetchState.FAILED)
                if _session_broken(e):
                    self.session.invalidate()
                raise
            self._finish(FetchState.DONE)
            return page

    async def close(self) -> None:
        """Stop the browser session.  Later fetches fail with ``SessionError``."""
        async with self._lock:
            self._closed = True
            await asyncio.to_thread(self.session.stop)
            log.info("Stopped fetcher service / webdriver")

    # -- State bookkeeping ------------------------------------------------------

    def _advance(self, call_id: int, state: FetchState) -> None:
        if self._active_call != call_id:
            raise FetchCancelled("fetch was abandoned")
        self.state = state

    def _finish(self, state: FetchState) -> None:
        self._active_call = None
        self.state = state

    def _abort(self) -> None:
        self._finish(FetchState.CANCELLED)
        self.session.invalidate()

    # -- Worker-thread side -----------------------------------------------------

    def _fetch_blocking(self, call_id: int, target_url: str, selector: str) -> FetchedPage:
        driver = self.session.start()

        self._advance(call_id, FetchState.NAVIGATING)
        log.info("Fetching URL: %s", target_url)
        try:
            driver.get(target_url)
        except WebDriverException as e:
            raise NavigationError(f"failed to load page: {e.msg or e}") from e

        log.debug("Waiting for page to load")
        self._wait_for_load(driver)
        log.debug("Page loaded")

        self._advance(call_id, FetchState.EXTRACTING)
        if self.convert_absolute_links:
            log.debug("Converting a-href/img-src to absolute")
            try:
                driver.execute_script(ABSOLUTE_LINKS_JS)
            except WebDriverException as e:
                raise ConversionError(f"failed to execute JS: {e.msg or e}") from e

        try:
            title = driver.title
            current_url = driver.current_url
        except WebDriverException as e:
            raise ConversionError(f"failed to read page metadata: {e.msg or e}") from e

        element = self._find_element(driver, selector)
        try:
            html = element.get_attribute("outerHTML")
        except WebDriverException as e:
            raise ConversionError(f"failed to get {selector} html: {e.msg or e}") from e

        log.debug("Done")
        return FetchedPage(
            target_url=target_url,
            current_url=current_url,
            title=title,
            html=html or "",
        )

    def _wait_for_load(self, driver: WebDriver) -> None:
        try:
            WebDriverWait(driver, self.page_load_timeout).until(
                lambda d: d.execute_script(READY_STATE_JS) == "complete"
            )
        except TimeoutException as e:
            raise PageLoadTimeout(
                f"page did not finish loading within {self.page_load_timeout}s"
            ) from e
        except WebDriverException as e:
            raise NavigationError(f"failed waiting for page to load: {e.msg or e}") from e

    @staticmethod
    def _find_element(driver: WebDriver, selector: str) -> WebElement:
        if not selector or selector.lower() == BODY_SELECTOR:
            by, value = By.TAG_NAME, BODY_SELECTOR
        elif selector.startswith("#"):
            by, value = By.ID, selector[1:]
        elif selector.startswith("."):
            by, value = By.CLASS_NAME, selector[1:]
        else:
            by, value = By.TAG_NAME, selector

        try:
            if by == By.CLASS_NAME:
                elements = driver.find_elements(by, value)
                if not elements:
                    raise ElementNotFound(f"failed to find {selector}")
                return elements[0]
            return driver.find_element(by, value)
        except NoSuchElementException as e:
            raise ElementNotFound(f"failed to find {selector}") from e
        except WebDriverException as e:
            raise NavigationError(f"failed to find {selector}: {e.msg or e}") from e


def _session_broken(exc: BaseException) -> bool:
    """True when *exc* came from the driver itself rather than from the page.

    A page that loads slowly or lacks the selected element leaves the session
    usable; any other WebDriver failure means the next fetch needs a new one.
    """
    if isinstance(exc, (PageLoadTimeout, ElementNotFound)):
        return False
    if isinstance(exc, WebDriverException):
        return True
    return isinstance(exc, (NavigationError, ConversionError)) and isinstance(
        exc.__cause__, WebDriverException
    )
