"""Blocking page primitives over a Playwright page on the remote browser."""

from __future__ import annotations

import re
import time
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

import structlog
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from .config import HarnessConfig, SelectorPolicy
from .errors import (
    AmbiguousSelector,
    ArtifactError,
    AssertionFailed,
    BrowserActionError,
    ElementNotFound,
    ExpectTimeout,
    NavigationTimeout,
    WaitTimeout,
)
from .models import Target

LOGGER = structlog.get_logger("browser_smoke")

_POLL_INTERVAL_S = 0.1
_POLL_READ_MS = 1_000

T = TypeVar("T")


class ProbeResult(str, Enum):
    """Outcome of a visibility probe; a probe error counts as not visible."""

    VISIBLE = "visible"
    NOT_VISIBLE = "not_visible"
    PROBE_ERROR = "probe_error"

    @property
    def is_visible(self) -> bool:
        return self is ProbeResult.VISIBLE


class PageDriver:
    """One browsing context (context + page) owned by a RemoteSession."""

    def __init__(
        self,
        page: Any,
        context: Any,
        *,
        name: str,
        config: HarnessConfig,
        tracing: bool = False,
    ) -> None:
        self.page = page
        self.context = context
        self.name = name
        self.config = config
        self.tracing = tracing
        self.video: Optional[Path] = None
        self._closed = False
        self._logger = LOGGER.bind(page=name)
        page.set_default_timeout(config.action_timeout_ms)
        page.set_default_navigation_timeout(config.navigation_timeout_ms)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def url(self) -> str:
        return self.page.url

    def title(self) -> str:
        try:
            return self.page.title()
        except PlaywrightError as exc:
            raise BrowserActionError(f"Could not read page title: {exc}") from exc

    def navigate(self, url: str, *, timeout_ms: Optional[float] = None, wait_until: str = "load") -> str:
        timeout = timeout_ms or self.config.navigation_timeout_ms
        self._logger.info("page_navigate", url=url, wait_until=wait_until, timeout_ms=timeout)
        try:
            self.page.goto(url, wait_until=wait_until, timeout=timeout)
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeout(url, timeout) from exc
        except PlaywrightError as exc:
            raise BrowserActionError(f"Navigation to {url} failed: {exc}") from exc
        return self.page.url

    def wait_for_load_state(self, state: str = "load", *, timeout_ms: Optional[float] = None) -> None:
        timeout = timeout_ms or self.config.navigation_timeout_ms
        try:
            self.page.wait_for_load_state(state, timeout=timeout)
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeout(self.page.url, timeout) from exc
        except PlaywrightError as exc:
            raise BrowserActionError(f"Waiting for load state {state} failed: {exc}") from exc

    def resolve(self, target: Target, *, timeout_ms: Optional[float] = None) -> Any:
        """Resolve ``target`` to a single element locator.

        Waits for the first match to be attached. Several matches are an
        error only under the strict selector policy; otherwise the first
        match is used.
        """

        timeout = timeout_ms or self.config.action_timeout_ms
        locator = self._locator(target)
        try:
            locator.first.wait_for(state="attached", timeout=timeout)
            count = locator.count()
        except PlaywrightTimeoutError as exc:
            raise ElementNotFound(target.describe(), timeout) from exc
        except PlaywrightError as exc:
            raise BrowserActionError(f"Resolving {target.describe()} failed: {exc}") from exc
        if count > 1:
            if self.config.selector_policy == SelectorPolicy.STRICT:
                raise AmbiguousSelector(target.describe(), count)
            self._logger.debug("selector_multiple_matches", target=target.describe(), count=count)
        return locator.first

    def fill(self, target: Target, text: str, *, timeout_ms: Optional[float] = None) -> None:
        element = self.resolve(target, timeout_ms=timeout_ms)
        self._act(target, "editable", lambda timeout: element.fill(text, timeout=timeout), timeout_ms)

    def press(self, target: Target, key: str, *, timeout_ms: Optional[float] = None) -> None:
        element = self.resolve(target, timeout_ms=timeout_ms)
        self._act(target, "focusable", lambda timeout: element.press(key, timeout=timeout), timeout_ms)

    def click(self, target: Target, *, timeout_ms: Optional[float] = None) -> None:
        element = self.resolve(target, timeout_ms=timeout_ms)
        self._act(target, "clickable", lambda timeout: element.click(timeout=timeout), timeout_ms)

    def wait_for_selector(self, target: Target, *, timeout_ms: Optional[float] = None, state: str = "visible") -> None:
        timeout = timeout_ms or self.config.action_timeout_ms
        try:
            self._locator(target).first.wait_for(state=state, timeout=timeout)
        except PlaywrightTimeoutError as exc:
            raise WaitTimeout(target.describe(), timeout, state) from exc
        except PlaywrightError as exc:
            raise BrowserActionError(f"Waiting for {target.describe()} failed: {exc}") from exc

    def text_content(self, target: Target, *, timeout_ms: Optional[float] = None) -> str:
        element = self.resolve(target, timeout_ms=timeout_ms)
        text = self._act(target, "readable", lambda timeout: element.text_content(timeout=timeout), timeout_ms)
        return (text or "").strip()

    def text_contents(
        self,
        target: Target,
        *,
        has_text: Optional[re.Pattern[str]] = None,
        limit: Optional[int] = None,
        timeout_ms: Optional[float] = None,
    ) -> list[str]:
        """Read the text of every element matching ``target`` (and ``has_text``).

        Does not wait for matches: no match yields an empty list. At most
        ``limit`` elements are read, in document order.
        """

        locator = self._locator(target)
        if has_text is not None:
            locator = locator.filter(has_text=has_text)
        try:
            count = locator.count()
        except PlaywrightError as exc:
            raise BrowserActionError(f"Counting {target.describe()} failed: {exc}") from exc
        if limit is not None:
            count = min(count, limit)
        texts: list[str] = []
        for index in range(count):
            element = locator.nth(index)
            text = self._act(target, "readable", lambda timeout: element.text_content(timeout=timeout), timeout_ms)
            texts.append(text or "")
        return texts

    def probe_visible(self, target: Target, *, timeout_ms: Optional[float] = None) -> ProbeResult:
        """Check visibility without ever raising."""

        timeout = timeout_ms or self.config.probe_timeout_ms
        try:
            self._locator(target).first.wait_for(state="visible", timeout=timeout)
        except PlaywrightTimeoutError:
            return ProbeResult.NOT_VISIBLE
        except Exception as exc:  # noqa: BLE001 - probe failures count as "not visible"
            self._logger.debug("probe_error", target=target.describe(), error=str(exc))
            return ProbeResult.PROBE_ERROR
        return ProbeResult.VISIBLE

    def assert_visible(self, target: Target, *, timeout_ms: Optional[float] = None) -> None:
        timeout = timeout_ms or self.config.expect_timeout_ms
        try:
            self._locator(target).first.wait_for(state="visible", timeout=timeout)
        except PlaywrightTimeoutError as exc:
            raise ExpectTimeout(target.describe(), "visible", f"not visible after {timeout:.0f}ms") from exc
        except PlaywrightError as exc:
            raise BrowserActionError(f"Checking visibility of {target.describe()} failed: {exc}") from exc

    def assert_text_matches(
        self,
        target: Target,
        pattern: re.Pattern[str],
        *,
        timeout_ms: Optional[float] = None,
    ) -> str:
        element = self._locator(target).first

        def read() -> Optional[str]:
            try:
                return element.text_content(timeout=_POLL_READ_MS)
            except PlaywrightTimeoutError:
                return None
            except PlaywrightError as exc:
                raise BrowserActionError(f"Reading text of {target.describe()} failed: {exc}") from exc

        ok, text = self._poll(read, lambda value: value is not None and bool(pattern.search(value)), timeout_ms)
        if not ok and text is None:
            raise ExpectTimeout(target.describe(), f"text matching /{pattern.pattern}/", "no matching element")
        if not ok:
            actual = repr(text.strip())
            raise AssertionFailed(target.describe(), f"text matching /{pattern.pattern}/", actual)
        return (text or "").strip()

    def assert_url_matches(self, pattern: re.Pattern[str], *, timeout_ms: Optional[float] = None) -> str:
        ok, url = self._poll(lambda: self.page.url, lambda value: bool(pattern.search(value)), timeout_ms)
        if not ok:
            raise AssertionFailed("page url", f"url matching /{pattern.pattern}/", repr(url))
        return url

    def assert_title_matches(self, pattern: re.Pattern[str], *, timeout_ms: Optional[float] = None) -> str:
        ok, title = self._poll(self.title, lambda value: bool(pattern.search(value)), timeout_ms)
        if not ok:
            raise AssertionFailed("page title", f"title matching /{pattern.pattern}/", repr(title))
        return title

    def screenshot(self, path: Path, *, full_page: bool = False) -> Path:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self.page.screenshot(path=str(path), full_page=full_page)
        except (OSError, PlaywrightError) as exc:
            raise ArtifactError(f"Could not save screenshot to {path}: {exc}") from exc
        self._logger.info("page_screenshot", path=str(path))
        return path

    def close(self, trace_path: Optional[Path] = None, video_path: Optional[Path] = None) -> Optional[Path]:
        """Close the page and its context.

        The trace is saved when ``trace_path`` is given and returned. A
        recorded video is only finalized once the context is closed, so it is
        copied to ``video_path`` afterwards and exposed as ``self.video``.
        """

        if self._closed:
            return None
        self._closed = True
        saved: Optional[Path] = None
        try:
            if self.tracing:
                if trace_path is not None:
                    trace_path.parent.mkdir(parents=True, exist_ok=True)
                    self.context.tracing.stop(path=str(trace_path))
                    saved = trace_path
                else:
                    self.context.tracing.stop()
        except (OSError, PlaywrightError) as exc:
            raise ArtifactError(f"Could not save trace for page {self.name}: {exc}") from exc
        finally:
            self.context.close()
            self._logger.info("page_closed", trace=str(saved) if saved else None)
        recording = getattr(self.page, "video", None)
        if video_path is not None and recording is not None:
            try:
                video_path.parent.mkdir(parents=True, exist_ok=True)
                recording.save_as(str(video_path))
            except (OSError, PlaywrightError) as exc:
                raise ArtifactError(f"Could not save video for page {self.name}: {exc}") from exc
            self.video = video_path
        return saved

    def _locator(self, target: Target) -> Any:
        if target.role:
            if target.accessible_name:
                name = re.compile(target.accessible_name, re.IGNORECASE)
                return self.page.get_by_role(target.role, name=name)
            return self.page.get_by_role(target.role)
        return self.page.locator(target.selector)

    def _act(self, target: Target, state: str, action: Callable[[float], T], timeout_ms: Optional[float]) -> T:
        timeout = timeout_ms or self.config.action_timeout_ms
        try:
            return action(timeout)
        except PlaywrightTimeoutError as exc:
            raise WaitTimeout(target.describe(), timeout, state) from exc
        except PlaywrightError as exc:
            raise BrowserActionError(f"Action on {target.describe()} failed: {exc}") from exc

    def _poll(
        self,
        read: Callable[[], T],
        check: Callable[[T], bool],
        timeout_ms: Optional[float],
    ) -> tuple[bool, T]:
        timeout = timeout_ms or self.config.expect_timeout_ms
        deadline = time.monotonic() + timeout / 1000
        while True:
            value = read()
            if check(value):
                return True, value
            if time.monotonic() >= deadline:
                return False, value
            time.sleep(_POLL_INTERVAL_S)
