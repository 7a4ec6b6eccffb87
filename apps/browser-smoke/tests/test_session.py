from __future__ import annotations

import pytest

from browser_smoke.config import HarnessConfig, TraceMode
from browser_smoke.errors import BrowserActionError, RemoteConnectionError, SessionClosedError
from browser_smoke.session import RemoteSessionClient
from fakes import FakePlaywrightFactory, FakeSite


def test_connect_returns_open_session(client, factory) -> None:
    session = client.connect()

    assert not session.closed
    assert session.endpoint == "ws://localhost:3000/"
    assert factory.last.chromium.connect_calls == [("ws://localhost:3000/", 30_000)]
    session.close()


def test_connect_failure_raises_connection_error_and_stops_driver(config) -> None:
    factory = FakePlaywrightFactory(FakeSite(refuse_connections=True))
    client = RemoteSessionClient(config, playwright_factory=factory)

    with pytest.raises(RemoteConnectionError) as excinfo:
        client.connect()

    assert "ws://localhost:3000/" in str(excinfo.value)
    assert "ECONNREFUSED" in excinfo.value.reason
    assert "Call log" not in excinfo.value.reason
    assert isinstance(excinfo.value, ConnectionError)
    assert factory.last.stopped


def test_connect_uses_explicit_endpoint(client, factory) -> None:
    session = client.connect("ws://other-host:3000/")
    assert factory.last.chromium.connect_calls[0][0] == "ws://other-host:3000/"
    session.close()


def test_close_is_idempotent(client, factory) -> None:
    session = client.connect()
    session.close()
    session.close()

    browser = factory.last.chromium.browsers[0]
    assert browser.close_calls == 1
    assert factory.last.stopped


def test_new_page_after_close_raises(client) -> None:
    session = client.connect()
    session.close()

    with pytest.raises(SessionClosedError):
        session.new_page()


def test_close_closes_pages_before_browser(client, site) -> None:
    with client.connect() as session:
        first = session.new_page("main")
        second = session.new_page("second")
        assert len(session.pages) == 2

    assert first.closed and second.closed
    events = [name for name, _ in site.events]
    assert events == ["context_closed", "context_closed", "browser_closed"]


def test_new_page_applies_timeouts_and_tracing(factory) -> None:
    config = HarnessConfig(action_timeout_ms=1234, navigation_timeout_ms=5678, trace=TraceMode.ON)
    client = RemoteSessionClient(config, playwright_factory=factory)
    with client.connect() as session:
        driver = session.new_page()
        assert driver.page.default_timeout == 1234
        assert driver.page.default_navigation_timeout == 5678
        assert driver.context.tracing.started


def test_close_page_saves_trace(factory, tmp_path) -> None:
    config = HarnessConfig(trace=TraceMode.RETAIN_ON_FAILURE)
    client = RemoteSessionClient(config, playwright_factory=factory)
    with client.connect() as session:
        driver = session.new_page()
        saved = session.close_page(driver, tmp_path / "traces" / "main.zip")

    assert saved == tmp_path / "traces" / "main.zip"
    assert saved.exists()
    assert driver.closed


def test_new_page_on_dropped_browser_raises_session_closed(client, factory) -> None:
    with client.connect() as session:
        factory.last.chromium.browsers[0].connected = False
        with pytest.raises(SessionClosedError, match="disconnected"):
            session.new_page()


def test_failed_new_page_closes_its_context(client, factory, site) -> None:
    site.fail_new_page = True
    with client.connect() as session:
        with pytest.raises(BrowserActionError, match="Could not open page 'main'"):
            session.new_page()
        assert session.pages == []

    context = factory.last.chromium.browsers[0].contexts[0]
    assert context.closed
    assert [name for name, _ in site.events] == ["context_closed", "browser_closed"]
