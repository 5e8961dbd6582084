"""Lifecycle of one remote WebDriver session (attach-or-spawn, readiness, teardown)."""

import threading
import time
from typing import Optional

import httpx
from selenium import webdriver
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from selenium.webdriver.remote.webdriver import WebDriver

from pagebroker.utils.errors import (
    SessionConnectError,
    SessionError,
    SessionReadinessTimeout,
    SessionSpawnError,
)
from pagebroker.utils.logger import get_logger

log = get_logger(__name__)

CHROME_ARGS = (
    "--headless",
    "--no-sandbox",
    "--disable-gpu",
    "--disable-dev-shm-usage",
)


class BrowserSession:
    """Owns at most one WebDriver session bound to a chromedriver port.

    ``start`` first attaches to a chromedriver already listening on the port
    and only spawns one when nothing answers.  A spawned service is stopped
    together with the session in ``stop``.
    """

    def __init__(
        self,
        port: int = 9515,
        driver_path: str = "/usr/bin/chromedriver",
        page_load_timeout: int = 30,
        ready_attempts: int = 3,
        ready_backoff: float = 1.0,
    ):
        self.port = port
        self.driver_path = driver_path
        self.page_load_timeout = page_load_timeout
        self.ready_attempts = ready_attempts
        self.ready_backoff = ready_backoff
        self._driver: Optional[WebDriver] = None
        self._service: Optional[Service] = None
        self._generation = 0
        self._state_lock = threading.Lock()
        self._start_lock = threading.Lock()

    @property
    def base_url(self) -> str:
        return f"http://localhost:{self.port}"

    @property
    def is_active(self) -> bool:
        return self._driver is not None

    @property
    def spawned_service(self) -> bool:
        return self._service is not None

    @property
    def driver(self) -> WebDriver:
        if self._driver is None:
            raise SessionError("browser session is not started")
        return self._driver

    # -- Lifecycle ------------------------------------------------------------

    def start(self) -> WebDriver:
        """Return the live driver, connecting (or spawning) when needed.

        Starts are serialised.  A driver opened while ``invalidate`` or
        ``stop`` ran is quit instead of installed, so at most one session is
        ever held.
        """
        with self._start_lock:
            with self._state_lock:
                if self._driver is not None:
                    return self._driver
                generation = self._generation

            driver = self._open()

            with self._state_lock:
                if generation == self._generation:
                    self._driver = driver
                    return driver
            self._quit(driver)
            raise SessionError("browser session was invalidated while starting")

    def stop(self) -> None:
        """Quit the session and any service we spawned.  Safe to call repeatedly."""
        with self._state_lock:
            self._generation += 1
            driver = self._detach()
            service, self._service = self._service, None
        self._quit(driver)
        if service is not None:
            service.stop()
            log.info("Stopped webdriver service on port %d", self.port)

    def invalidate(self) -> None:
        """Drop the current session so the next ``start`` opens a fresh one.

        The old driver may still be busy with a stale navigation on a worker
        thread, so it is quit in the background.  A ``start`` still in flight
        will discard the driver it opens.
        """
        with self._state_lock:
            self._generation += 1
            driver = self._detach()
        if driver is None:
            return
        log.warning("Invalidating browser session on port %d", self.port)
        threading.Thread(target=self._quit, args=(driver,), daemon=True).start()

    def wait_ready(self) -> None:
        """Poll the service status until it reports ready."""
        for attempt in range(1, self.ready_attempts + 1):
            if self._status_ready():
                return
            if attempt < self.ready_attempts:
                time.sleep(self.ready_backoff)
        raise SessionReadinessTimeout("timeout waiting for chrome to be ready")

    # -- Internals ------------------------------------------------------------

    def _open(self) -> WebDriver:
        try:
            driver = self._connect()
            log.debug("Connected to existing webdriver service: %s", self.base_url)
        except Exception as e:
            if self._service is not None:
                raise SessionConnectError(f"failed to open session: {e}") from e
            log.debug("Starting new webdriver service: %s", self.base_url)
            self._spawn()
            try:
                driver = self._connect()
            except Exception as e2:
                raise SessionConnectError(f"failed to open session: {e2}") from e2

        try:
            driver.set_page_load_timeout(self.page_load_timeout)
        except WebDriverException as e:
            self._quit(driver)
            raise SessionConnectError(f"failed to configure session: {e.msg or e}") from e

        try:
            self.wait_ready()
        except SessionReadinessTimeout:
            self._quit(driver)
            raise
        return driver

    def _options(self) -> Options:
        opts = Options()
        for arg in CHROME_ARGS:
            opts.add_argument(arg)
        return opts

    def _connect(self) -> WebDriver:
        return webdriver.Remote(command_executor=self.base_url, options=self._options())

    def _spawn(self) -> None:
        service = Service(executable_path=self.driver_path, port=self.port)
        try:
            service.start()
        except (WebDriverException, OSError) as e:
            raise SessionSpawnError(f"error starting chromedriver: {e}") from e
        with self._state_lock:
            self._service = service

    def _status_ready(self) -> bool:
        try:
            resp = httpx.get(f"{self.base_url}/status", timeout=5.0)
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            log.debug("webdriver status check failed: %s", e)
            return False
        value = body.get("value") if isinstance(body, dict) else None
        return isinstance(value, dict) and bool(value.get("ready"))

    def _detach(self) -> Optional[WebDriver]:
        driver, self._driver = self._driver, None
        return driver

    @staticmethod
    def _quit(driver: Optional[WebDriver]) -> None:
        if driver is None:
            return
        try:
            driver.quit()
        except Exception as e:
            log.warning("Error quitting webdriver session: %s", e)
