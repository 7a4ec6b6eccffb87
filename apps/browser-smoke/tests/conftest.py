"""Test bootstrap for browser-smoke."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
import structlog

TESTS_DIR = Path(__file__).resolve().parent
APP_ROOT = TESTS_DIR.parent
for path in (APP_ROOT, TESTS_DIR):
    path_str = str(path)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from browser_smoke.config import HarnessConfig  # noqa: E402
from browser_smoke.console_reporter import ConsoleReporter  # noqa: E402
from browser_smoke.output_config import OutputFormat  # noqa: E402
from browser_smoke.session import RemoteSessionClient  # noqa: E402
from fakes import FakePlaywrightFactory, wikipedia_site  # noqa: E402


@pytest.fixture
def config(tmp_path: Path) -> HarnessConfig:
    return HarnessConfig(
        endpoint="ws://localhost:3000/",
        expect_timeout_ms=50,
        probe_timeout_ms=10,
        artifacts_dir=tmp_path / "artifacts",
    )


@pytest.fixture
def site():
    return wikipedia_site()


@pytest.fixture
def factory(site) -> FakePlaywrightFactory:
    return FakePlaywrightFactory(site)


@pytest.fixture
def client(config: HarnessConfig, factory: FakePlaywrightFactory) -> RemoteSessionClient:
    return RemoteSessionClient(config, playwright_factory=factory)


@pytest.fixture
def plain_reporter() -> ConsoleReporter:
    return ConsoleReporter(output_format=OutputFormat.PLAIN)


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()
