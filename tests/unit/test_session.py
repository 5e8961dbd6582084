"""Unit tests for the browser session lifecycle (Selenium and HTTP mocked)."""

from unittest.mock import MagicMock, patch

import httpx
import pytest
from selenium.common.exceptions import WebDriverException

from pagebroker.browser.session import BrowserSession
from pagebroker.utils.errors import (
    SessionConnectError,
    SessionError,
    SessionReadinessTimeout,
    SessionSpawnError,
)


def _status(ready=True):
    resp = MagicMock()
    resp.raise_for_status.return_value = None
    resp.json.return_value = {"value": {"ready": ready}}
    return resp


@pytest.fixture
def mocks():
    with patch("pagebroker.browser.session.webdriver.Remote") as remote, \
            patch("pagebroker.browser.session.Service") as service_cls, \
            patch("pagebroker.browser.session.httpx.get") as get, \
            patch("pagebroker.browser.session.time.sleep"):
        get.return_value = _status(True)
        yield remote, service_cls, get


def test_attaches_to_running_service(mocks):
    remote, service_cls, _ = mocks
    session = BrowserSession(port=9600, page_load_timeout=12)

    driver = session.start()

    assert driver is remote.return_value
    assert remote.call_args.kwargs["command_executor"] == "http://localhost:9600"
    driver.set_page_load_timeout.assert_called_once_with(12)
    service_cls.assert_not_called()
    assert session.is_active
    assert not session.spawned_service


def test_start_reuses_live_driver(mocks):
    remote, _, _ = mocks
    session = BrowserSession()
    assert session.start() is session.start()
    assert remote.call_count == 1


def test_spawns_service_when_nothing_listens(mocks):
    remote, service_cls, _ = mocks
    driver = MagicMock()
    remote.side_effect = [WebDriverException("connection refused"), driver]

    session = BrowserSession(port=9700, driver_path="/opt/chromedriver")

    assert session.start() is driver
    service_cls.assert_called_once_with(executable_path="/opt/chromedriver", port=9700)
    service_cls.return_value.start.assert_called_once()
    assert session.spawned_service


def test_spawn_failure(mocks):
    remote, service_cls, _ = mocks
    remote.side_effect = WebDriverException("connection refused")
    service_cls.return_value.start.side_effect = WebDriverException("no such file")

    with pytest.raises(SessionSpawnError):
        BrowserSession().start()


def test_connect_failure_after_spawn(mocks):
    remote, _, _ = mocks
    remote.side_effect = WebDriverException("connection refused")

    with pytest.raises(SessionConnectError):
        BrowserSession().start()


def test_readiness_timeout_quits_driver(mocks):
    remote, _, get = mocks
    get.return_value = _status(False)
    session = BrowserSession(ready_attempts=3)

    with pytest.raises(SessionReadinessTimeout, match="timeout waiting for chrome"):
        session.start()

    assert get.call_count == 3
    remote.return_value.quit.assert_called_once()
    assert not session.is_active


def test_readiness_survives_transient_http_errors(mocks):
    _, _, get = mocks
    get.side_effect = [httpx.ConnectError("refused"), _status(True)]
    BrowserSession(ready_attempts=3).start()
    assert get.call_count == 2


def test_stop_quits_driver_and_spawned_service(mocks):
    remote, service_cls, _ = mocks
    remote.side_effect = [WebDriverException("refused"), MagicMock()]
    session = BrowserSession()
    driver = session.start()

    session.stop()
    session.stop()

    driver.quit.assert_called_once()
    service_cls.return_value.stop.assert_called_once()
    assert not session.is_active
    assert not session.spawned_service


def test_quit_errors_are_not_raised(mocks):
    remote, _, _ = mocks
    remote.return_value.quit.side_effect = WebDriverException("session gone")
    session = BrowserSession()
    session.start()
    session.stop()
    assert not session.is_active


def test_invalidate_detaches_and_next_start_reconnects(mocks):
    remote, _, _ = mocks
    first, second = MagicMock(), MagicMock()
    remote.side_effect = [first, second]
    session = BrowserSession()
    session.start()

    with patch("pagebroker.browser.session.threading.Thread") as thread_cls:
        session.invalidate()
        thread_cls.assert_called_once()
        assert thread_cls.call_args.kwargs["args"] == (first,)

    assert not session.is_active
    assert session.start() is second


def test_driver_property_requires_start():
    with pytest.raises(SessionError):
        BrowserSession().driver


def test_page_load_timeout_failure_quits_driver(mocks):
    remote, _, _ = mocks
    remote.return_value.set_page_load_timeout.side_effect = WebDriverException("session gone")
    session = BrowserSession()

    with pytest.raises(SessionConnectError, match="failed to configure session"):
        session.start()

    remote.return_value.quit.assert_called_once()
    assert not session.is_active


@pytest.mark.parametrize("body", [{"value": "ready"}, {"value": None}, ["ready"]])
def test_malformed_status_is_not_ready(mocks, body):
    _, _, get = mocks
    get.return_value.json.return_value = body
    with pytest.raises(SessionReadinessTimeout):
        BrowserSession(ready_attempts=2).start()


def test_driver_opened_during_invalidate_is_discarded(mocks):
    remote, _, _ = mocks
    stale = MagicMock()
    session = BrowserSession()

    def connect_then_invalidate(**kwargs):
        session.invalidate()
        return stale

    remote.side_effect = connect_then_invalidate

    with pytest.raises(SessionError, match="invalidated while starting"):
        session.start()

    stale.quit.assert_called_once()
    assert not session.is_active


def test_stop_during_start_discards_driver(mocks):
    remote, _, _ = mocks
    stale = MagicMock()
    session = BrowserSession()

    def connect_then_stop(**kwargs):
        session.stop()
        return stale

    remote.side_effect = connect_then_stop

    with pytest.raises(SessionError):
        session.start()
    stale.quit.assert_called_once()
