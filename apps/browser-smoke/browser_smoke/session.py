"""Connection to a remote Playwright server and the pages opened on it."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Callable, Optional

import structlog
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from .config import HarnessConfig, TraceMode
from .errors import ArtifactError, BrowserActionError, RemoteConnectionError, SessionClosedError
from .models import DEFAULT_PAGE
from .page import PageDriver

LOGGER = structlog.get_logger("browser_smoke")


class RemoteSession:
    """Open connection to the remote browser; owns every page created on it."""

    def __init__(self, browser: Any, playwright: Any, *, config: HarnessConfig, endpoint: str) -> None:
        self._browser = browser
        self._playwright = playwright
        self.config = config
        self.endpoint = endpoint
        self._pages: list[PageDriver] = []
        self._closed = False
        self._lock = threading.Lock()
        self._logger = LOGGER.bind(endpoint=endpoint)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pages(self) -> list[PageDriver]:
        return [page for page in self._pages if not page.closed]

    def new_page(self, name: str = DEFAULT_PAGE, *, video_dir: Optional[Path] = None) -> PageDriver:
        with self._lock:
            if self._closed:
                raise SessionClosedError(f"Cannot open page '{name}': session to {self.endpoint} is closed")
            tracing = self.config.trace != TraceMode.OFF
            context_options = {"record_video_dir": str(video_dir)} if video_dir is not None else {}
            context = None
            try:
                context = self._browser.new_context(**context_options)
                if tracing:
                    context.tracing.start(screenshots=True, snapshots=True)
                page = context.new_page()
            except PlaywrightError as exc:
                if context is not None:
                    self._discard_context(context, name)
                if not self._browser.is_connected():
                    raise SessionClosedError(f"Remote browser at {self.endpoint} disconnected: {exc}") from exc
                raise BrowserActionError(f"Could not open page '{name}' on {self.endpoint}: {exc}") from exc
            driver = PageDriver(page, context, name=name, config=self.config, tracing=tracing)
            self._pages.append(driver)
        self._logger.info("page_opened", page=name, open_pages=len(self.pages))
        return driver

    def _discard_context(self, context: Any, name: str) -> None:
        try:
            context.close()
        except PlaywrightError as exc:
            self._logger.warning("context_close_failed", page=name, error=str(exc))

    def close_page(
        self,
        driver: PageDriver,
        trace_path: Optional[Path] = None,
        video_path: Optional[Path] = None,
    ) -> Optional[Path]:
        with self._lock:
            if driver not in self._pages:
                raise ValueError(f"Page '{driver.name}' does not belong to this session")
            return driver.close(trace_path, video_path)

    def close(self) -> None:
        """Close remaining pages, then the browser connection. Safe to call twice."""

        with self._lock:
            if self._closed:
                return
            self._closed = True
            for driver in self._pages:
                if driver.closed:
                    continue
                try:
                    driver.close()
                except (ArtifactError, PlaywrightError) as exc:
                    self._logger.warning("page_close_failed", page=driver.name, error=str(exc))
            try:
                self._browser.close()
            except PlaywrightError as exc:
                self._logger.warning("browser_close_failed", error=str(exc))
            finally:
                self._playwright.stop()
        self._logger.info("session_closed")

    def __enter__(self) -> "RemoteSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class RemoteSessionClient:
    """Opens sessions against the configured remote Playwright server."""

    def __init__(
        self,
        config: HarnessConfig,
        *,
        playwright_factory: Callable[[], Any] = sync_playwright,
    ) -> None:
        self.config = config
        self._playwright_factory = playwright_factory

    def connect(self, endpoint: Optional[str] = None) -> RemoteSession:
        """Connect once; failures surface immediately as RemoteConnectionError."""

        target = endpoint or self.config.endpoint
        logger = LOGGER.bind(endpoint=target, browser=self.config.browser.value)
        logger.info("remote_connecting", timeout_ms=self.config.connect_timeout_ms)

        try:
            playwright = self._playwright_factory().start()
        except PlaywrightError as exc:
            raise RemoteConnectionError(target, f"Playwright driver failed to start: {exc}") from exc

        try:
            browser_type = getattr(playwright, self.config.browser.value)
            browser = browser_type.connect(target, timeout=self.config.connect_timeout_ms)
        except PlaywrightError as exc:
            playwright.stop()
            logger.warning("remote_connect_failed", error=str(exc))
            raise RemoteConnectionError(target, _first_line(exc)) from exc

        if not browser.is_connected():
            playwright.stop()
            raise RemoteConnectionError(target, "browser reported disconnected right after handshake")

        logger.info("remote_connected", version=getattr(browser, "version", None))
        return RemoteSession(browser, playwright, config=self.config, endpoint=target)


def _first_line(exc: BaseException) -> str:
    # Playwright appends a multi-line call log to connection errors
    text = str(exc).strip()
    return text.splitlines()[0] if text else exc.__class__.__name__
