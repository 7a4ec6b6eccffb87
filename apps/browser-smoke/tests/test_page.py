from __future__ import annotations

import re

import pytest

from browser_smoke.config import SelectorPolicy
from browser_smoke.errors import (
    AmbiguousSelector,
    ArtifactError,
    AssertionFailed,
    ElementNotFound,
    ExpectTimeout,
    FailureCategory,
    NavigationTimeout,
    WaitTimeout,
)
from browser_smoke.models import Target
from browser_smoke.page import ProbeResult
from browser_smoke.session import RemoteSessionClient
from fakes import FakeDocument, FakeElement, FakePlaywrightFactory, FakeSite

LIST_URL = "https://example.test/list"


@pytest.fixture
def list_site() -> FakeSite:
    return FakeSite(
        documents={
            LIST_URL: FakeDocument(
                title="Item list",
                elements={
                    "li.item": [FakeElement(text="first"), FakeElement(text="second")],
                    "#hidden": [FakeElement(text="secret", visible=False)],
                    "#status": [FakeElement(text="  Ready  ")],
                    "p": [
                        FakeElement(text="Intro without keywords at all."),
                        FakeElement(text="WebDriver BiDi streams browser events to the client."),
                        FakeElement(text="More browser automation notes."),
                        FakeElement(text="A closing remark on BIDI support."),
                    ],
                },
            )
        }
    )


def _open(config, site: FakeSite):
    session = RemoteSessionClient(config, playwright_factory=FakePlaywrightFactory(site)).connect()
    driver = session.new_page()
    driver.navigate(LIST_URL)
    return session, driver


def test_first_policy_uses_first_match(config, list_site) -> None:
    session, driver = _open(config, list_site)
    with session:
        driver.fill(Target(selector="li.item"), "hello")

    assert list_site.documents[LIST_URL].elements["li.item"][0].value == "hello"
    assert list_site.documents[LIST_URL].elements["li.item"][1].value is None


def test_strict_policy_rejects_ambiguous_selector(config, list_site) -> None:
    strict = config.model_copy(update={"selector_policy": SelectorPolicy.STRICT})
    session, driver = _open(strict, list_site)
    with session, pytest.raises(AmbiguousSelector) as excinfo:
        driver.click(Target(selector="li.item"))

    assert excinfo.value.count == 2
    assert ("click", "li.item") not in driver.page.actions


def test_missing_element_raises_element_not_found(config, list_site) -> None:
    session, driver = _open(config, list_site)
    with session, pytest.raises(ElementNotFound, match="'#nope'"):
        driver.press(Target(selector="#nope"), "Enter", timeout_ms=25)


def test_text_content_is_stripped(config, list_site) -> None:
    session, driver = _open(config, list_site)
    with session:
        assert driver.text_content(Target(selector="#status")) == "Ready"


def test_probe_visible_never_raises(config, list_site) -> None:
    list_site.broken_selectors.add("#broken")
    session, driver = _open(config, list_site)
    with session:
        assert driver.probe_visible(Target(selector="#status")) == ProbeResult.VISIBLE
        assert driver.probe_visible(Target(selector="#hidden")) == ProbeResult.NOT_VISIBLE
        assert driver.probe_visible(Target(selector="#absent")) == ProbeResult.NOT_VISIBLE
        result = driver.probe_visible(Target(selector="#broken"))

    assert result == ProbeResult.PROBE_ERROR
    assert not result.is_visible


def test_navigation_timeout(config, list_site) -> None:
    list_site.slow_urls.add("https://slow.test/")
    session, driver = _open(config, list_site)
    with session, pytest.raises(NavigationTimeout, match="https://slow.test/"):
        driver.navigate("https://slow.test/", timeout_ms=100)


def test_assertions_report_expected_and_actual(config, list_site) -> None:
    session, driver = _open(config, list_site)
    with session:
        assert driver.assert_title_matches(re.compile("item", re.IGNORECASE)) == "Item list"
        with pytest.raises(AssertionFailed) as excinfo:
            driver.assert_text_matches(Target(selector="#status"), re.compile("Done"), timeout_ms=1)
        with pytest.raises(AssertionFailed):
            driver.assert_visible(Target(selector="#hidden"))

    assert excinfo.value.expected == "text matching /Done/"
    assert "Ready" in excinfo.value.actual


def test_screenshot_failure_is_artifact_error(config, list_site, tmp_path) -> None:
    list_site.fail_screenshots = True
    session, driver = _open(config, list_site)
    with session, pytest.raises(ArtifactError):
        driver.screenshot(tmp_path / "shots" / "page.png")


def test_role_target_resolves_by_role(config) -> None:
    site = FakeSite(documents={LIST_URL: FakeDocument(elements={"role=combobox": [FakeElement()]})})
    session, driver = _open(config, site)
    with session:
        driver.fill(Target(role="combobox", accessible_name="search"), "query")

    assert ("fill", "role=combobox", "query") in driver.page.actions


def test_wait_for_selector_expiry_raises_wait_timeout(config, list_site) -> None:
    session, driver = _open(config, list_site)
    with session, pytest.raises(WaitTimeout) as excinfo:
        driver.wait_for_selector(Target(selector="#hidden"), timeout_ms=20)

    assert excinfo.value.state == "visible"
    assert excinfo.value.category == FailureCategory.TIMEOUT
    assert isinstance(excinfo.value, TimeoutError)


def test_expect_expiry_is_a_timeout_not_a_wrong_value(config, list_site) -> None:
    session, driver = _open(config, list_site)
    with session:
        with pytest.raises(ExpectTimeout) as missing:
            driver.assert_visible(Target(selector="#absent"), timeout_ms=10)
        with pytest.raises(ExpectTimeout) as no_text:
            driver.assert_text_matches(Target(selector="#absent"), re.compile("Ready"), timeout_ms=1)
        with pytest.raises(AssertionFailed) as wrong:
            driver.assert_text_matches(Target(selector="#status"), re.compile("Done"), timeout_ms=1)

    assert missing.value.category == FailureCategory.TIMEOUT
    assert isinstance(missing.value, TimeoutError)
    assert no_text.value.category == FailureCategory.TIMEOUT
    assert not isinstance(wrong.value, ExpectTimeout)
    assert wrong.value.category == FailureCategory.ASSERTION


def test_text_contents_filters_and_limits(config, list_site) -> None:
    session, driver = _open(config, list_site)
    with session:
        texts = driver.text_contents(
            Target(selector="p"),
            has_text=re.compile("webdriver|bidi|browser|automation", re.IGNORECASE),
            limit=2,
        )
        everything = driver.text_contents(Target(selector="p"))
        nothing = driver.text_contents(Target(selector="#absent"))

    assert texts == [
        "WebDriver BiDi streams browser events to the client.",
        "More browser automation notes.",
    ]
    assert len(everything) == 4
    assert nothing == []
