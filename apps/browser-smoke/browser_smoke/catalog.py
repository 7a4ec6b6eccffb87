"""Built-in smoke scenarios against public websites."""

from __future__ import annotations

from .models import Scenario

SEARCH_QUERY = "OpenShift Playwright"
MEDIUM_ARTICLE_URL = (
    "https://medium.com/@begunova/fine-tune-browser-context-automation-with-webdriver-bidi-7c38b49b2588"
)

CONNECTIVITY = Scenario.model_validate(
    {
        "scenario_id": "connectivity",
        "description": "Remote browser connectivity check: search, screenshot and a second tab.",
        "metadata": {"tags": ["connectivity"]},
        "steps": [
            {"name": "open wikipedia", "action": "navigate", "url": "https://www.wikipedia.org/"},
            {"name": "read page title", "action": "capture_title"},
            {"name": "type search query", "action": "fill", "selector": "input#searchInput", "value": "Kubernetes"},
            {"name": "submit search", "action": "press", "selector": "input#searchInput", "key": "Enter"},
            {"name": "wait for result heading", "action": "wait_for_selector", "selector": "#firstHeading", "timeout_ms": 10_000},
            {"name": "read result heading", "action": "capture_text", "selector": "#firstHeading"},
            {"name": "take screenshot", "action": "screenshot", "path": "killercoda-test-screenshot.png"},
            {"name": "open second tab", "action": "navigate", "page": "second", "url": "https://github.com"},
            {"name": "read second tab title", "action": "capture_title", "page": "second"},
            {"name": "close first tab", "action": "close_page"},
            {"name": "close second tab", "action": "close_page", "page": "second"},
        ],
    }
)

WIKIPEDIA_SEARCH = Scenario.model_validate(
    {
        "scenario_id": "wikipedia-search",
        "description": "Wikipedia search shows article results.",
        "metadata": {"tags": ["search"]},
        "steps": [
            {"name": "open wikipedia", "action": "navigate", "url": "https://www.wikipedia.org/"},
            {"name": "type search query", "action": "fill", "selector": "input#searchInput", "value": "Playwright"},
            {"name": "submit search", "action": "press", "selector": "input#searchInput", "key": "Enter"},
            {"name": "heading is visible", "action": "assert_visible", "selector": "#firstHeading"},
            {
                "name": "heading mentions query",
                "action": "assert_text",
                "selector": "#firstHeading",
                "pattern": "playwright",
                "ignore_case": True,
            },
        ],
    }
)

# The HTML (lite) endpoint has stable markup
DUCKDUCKGO_HTML_SEARCH = Scenario.model_validate(
    {
        "scenario_id": "duckduckgo-html-search",
        "description": "DuckDuckGo HTML search shows results.",
        "metadata": {"tags": ["search"]},
        "steps": [
            {"name": "open duckduckgo html", "action": "navigate", "url": "https://duckduckgo.com/html/"},
            {"name": "type search query", "action": "fill", "selector": "input[name=\"q\"]", "value": SEARCH_QUERY},
            {"name": "submit search", "action": "press", "selector": "input[name=\"q\"]", "key": "Enter"},
            {"name": "first result is visible", "action": "assert_visible", "selector": "#links .result__a"},
            {"name": "url carries the query", "action": "assert_url", "pattern": r"duckduckgo\.com/html/\?q="},
        ],
    }
)

GOOGLE_SEARCH = Scenario.model_validate(
    {
        "scenario_id": "google-search",
        "description": "Google search shows results; rate limiting skips the scenario.",
        "metadata": {"tags": ["search"]},
        "steps": [
            {"name": "open google", "action": "navigate", "url": "https://www.google.com/ncr"},
            {
                "name": "accept consent",
                "action": "click",
                "selector": "button:has-text(\"I agree\"), button:has-text(\"Accept all\"), div[role=\"none\"] >> text=Accept all",
                "timeout_ms": 5_000,
                "severity": "soft",
                "guard": {
                    "selector": "button:has-text(\"I agree\"), button:has-text(\"Accept all\"), div[role=\"none\"] >> text=Accept all",
                },
            },
            {"name": "type search query", "action": "fill", "role": "combobox", "accessible_name": "search", "value": SEARCH_QUERY},
            {"name": "submit search", "action": "press", "role": "combobox", "accessible_name": "search", "key": "Enter"},
            {"name": "wait for dom", "action": "wait_for_load_state", "load_state": "domcontentloaded"},
            {
                "name": "skip when rate limited",
                "action": "skip_if_url",
                "pattern": "/sorry/",
                "reason": "Google rate-limited this cluster IP (sorry page)",
            },
            {"name": "first result is visible", "action": "assert_visible", "selector": "#search a h3"},
            {
                "name": "title mentions query",
                "action": "assert_title",
                "pattern": SEARCH_QUERY,
                "ignore_case": True,
                "severity": "soft",
            },
        ],
    }
)

MEDIUM_ARTICLE = Scenario.model_validate(
    {
        "scenario_id": "medium-article",
        "description": "Read a Medium article about WebDriver BiDi.",
        "metadata": {"tags": ["article"]},
        "steps": [
            {"name": "open article", "action": "navigate", "url": MEDIUM_ARTICLE_URL, "wait_until": "domcontentloaded"},
            {"name": "wait for dom", "action": "wait_for_load_state", "load_state": "domcontentloaded"},
            {"name": "read article title", "action": "capture_text", "selector": "h1"},
            {
                "name": "read article body",
                "action": "capture_texts",
                "selector": "article, .postArticle-content, [data-testid=\"storyContent\"]",
                "limit": 1,
                "split_lines": True,
                "min_length": 21,
                "severity": "soft",
            },
            {
                "name": "collect key paragraphs",
                "action": "capture_texts",
                "selector": "p",
                "has_text": "webdriver|bidi|browser|automation",
                "ignore_case": True,
                "limit": 5,
                "min_length": 31,
                "severity": "soft",
            },
            {"name": "title names the topic", "action": "assert_text", "selector": "h1", "pattern": "WebDriver BiDi"},
        ],
    }
)

BUILTIN_SCENARIOS: dict[str, Scenario] = {
    scenario.scenario_id: scenario
    for scenario in (CONNECTIVITY, WIKIPEDIA_SEARCH, DUCKDUCKGO_HTML_SEARCH, GOOGLE_SEARCH, MEDIUM_ARTICLE)
}

# `run` without arguments runs the site checks; the connectivity check has its own command
DEFAULT_SCENARIOS = [name for name in BUILTIN_SCENARIOS if name != CONNECTIVITY.scenario_id]


def get_scenario(name: str) -> Scenario:
    try:
        return BUILTIN_SCENARIOS[name]
    except KeyError:
        known = ", ".join(sorted(BUILTIN_SCENARIOS))
        raise KeyError(f"Unknown scenario '{name}' (known: {known})") from None
