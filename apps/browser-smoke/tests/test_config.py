from __future__ import annotations

from pathlib import Path

import pytest

from browser_smoke.config import (
    DEFAULT_ENDPOINT,
    HarnessConfig,
    SelectorPolicy,
    TraceMode,
    resolve_endpoint,
)
from browser_smoke.errors import ConfigurationError
from browser_smoke.output_config import OutputFormat, get_log_format, get_log_level, get_output_format


def test_resolve_endpoint_prefers_primary_variable() -> None:
    env = {
        "PW_TEST_CONNECT_WS_ENDPOINT": "ws://pw-server.cluster:3000/",
        "PW_WS_ENDPOINT": "ws://fallback:3000/",
    }
    assert resolve_endpoint(env) == "ws://pw-server.cluster:3000/"


def test_resolve_endpoint_falls_back_to_secondary_variable() -> None:
    env = {"PW_TEST_CONNECT_WS_ENDPOINT": "   ", "PW_WS_ENDPOINT": "ws://fallback:3000/"}
    assert resolve_endpoint(env) == "ws://fallback:3000/"


def test_resolve_endpoint_defaults_to_loopback() -> None:
    assert resolve_endpoint({}) == DEFAULT_ENDPOINT == "ws://localhost:3000/"


def test_from_env_reads_timeouts_and_policies() -> None:
    env = {
        "PW_WS_ENDPOINT": "ws://remote:3000/",
        "PW_CONNECT_TIMEOUT_MS": "5000",
        "PW_EXPECT_TIMEOUT_MS": "2500",
        "BROWSER_SMOKE_SELECTOR_POLICY": "strict",
        "BROWSER_SMOKE_TRACE": "off",
        "BROWSER_SMOKE_SCREENSHOT_ON_FAILURE": "false",
        "BROWSER_SMOKE_VIDEO": "true",
        "BROWSER_SMOKE_ARTIFACTS_DIR": "/tmp/smoke",
        "PW_CLOUD_NAMESPACE": "qa-browsers",
    }
    config = HarnessConfig.from_env(env)

    assert config.endpoint == "ws://remote:3000/"
    assert config.connect_timeout_ms == 5000
    assert config.expect_timeout_ms == 2500
    assert config.action_timeout_ms == 15_000
    assert config.selector_policy == SelectorPolicy.STRICT
    assert config.trace == TraceMode.OFF
    assert config.screenshot_on_failure is False
    assert config.record_video is True
    assert config.artifacts_dir == Path("/tmp/smoke")
    assert config.namespace == "qa-browsers"


def test_from_env_overrides_win_and_none_is_ignored() -> None:
    env = {"BROWSER_SMOKE_SELECTOR_POLICY": "strict", "BROWSER_SMOKE_TRACE": "on"}
    config = HarnessConfig.from_env(env, selector_policy=None, trace=TraceMode.OFF)

    assert config.selector_policy == SelectorPolicy.STRICT
    assert config.trace == TraceMode.OFF


def test_from_env_rejects_invalid_values() -> None:
    with pytest.raises(ConfigurationError, match="connect_timeout_ms"):
        HarnessConfig.from_env({"PW_CONNECT_TIMEOUT_MS": "soon"})


def test_config_is_immutable() -> None:
    config = HarnessConfig.from_env({})
    with pytest.raises(Exception):
        config.endpoint = "ws://elsewhere/"  # type: ignore[misc]


def test_output_format_priority() -> None:
    env = {"CONSOLE_OUTPUT_FORMAT": "plain"}
    assert get_output_format("json", env) == OutputFormat.JSON
    assert get_output_format(None, env) == OutputFormat.PLAIN
    assert get_output_format("bogus", {}) == OutputFormat.AUTO
    assert get_log_format(OutputFormat.JSON) == "json"
    assert get_log_format(OutputFormat.AUTO) == "console"
    assert get_log_level(None, {"BROWSER_SMOKE_LOG_LEVEL": "DEBUG"}) == "debug"
    assert get_log_level(None, {}) == "warning"
