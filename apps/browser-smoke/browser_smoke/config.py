"""Runtime configuration resolved once per run from the environment."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigurationError

ENDPOINT_ENV_VARS = ("PW_TEST_CONNECT_WS_ENDPOINT", "PW_WS_ENDPOINT")
DEFAULT_ENDPOINT = "ws://localhost:3000/"
DEFAULT_ARTIFACTS_DIR = Path("artifacts/browser-smoke")

# field name -> environment variable
_ENV_FIELDS = {
    "browser": "BROWSER_SMOKE_BROWSER",
    "connect_timeout_ms": "PW_CONNECT_TIMEOUT_MS",
    "action_timeout_ms": "PW_ACTION_TIMEOUT_MS",
    "navigation_timeout_ms": "PW_NAVIGATION_TIMEOUT_MS",
    "expect_timeout_ms": "PW_EXPECT_TIMEOUT_MS",
    "probe_timeout_ms": "BROWSER_SMOKE_PROBE_TIMEOUT_MS",
    "selector_policy": "BROWSER_SMOKE_SELECTOR_POLICY",
    "screenshot_on_failure": "BROWSER_SMOKE_SCREENSHOT_ON_FAILURE",
    "trace": "BROWSER_SMOKE_TRACE",
    "record_video": "BROWSER_SMOKE_VIDEO",
    "artifacts_dir": "BROWSER_SMOKE_ARTIFACTS_DIR",
    "namespace": "PW_CLOUD_NAMESPACE",
    "service_name": "PW_CLOUD_SERVICE",
    "service_port": "PW_CLOUD_PORT",
}


class BrowserName(str, Enum):
    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"


class SelectorPolicy(str, Enum):
    """How fill/press/click treat a selector that matches several elements."""

    FIRST = "first"
    STRICT = "strict"


class TraceMode(str, Enum):
    OFF = "off"
    ON = "on"
    RETAIN_ON_FAILURE = "retain-on-failure"


def resolve_endpoint(environ: Optional[Mapping[str, str]] = None) -> str:
    """Return the first non-empty endpoint variable, or the local default."""

    env = os.environ if environ is None else environ
    for name in ENDPOINT_ENV_VARS:
        value = (env.get(name) or "").strip()
        if value:
            return value
    return DEFAULT_ENDPOINT


class HarnessConfig(BaseModel):
    """Immutable settings shared by the session client, runner and diagnostics."""

    model_config = ConfigDict(frozen=True)

    endpoint: str = DEFAULT_ENDPOINT
    browser: BrowserName = BrowserName.CHROMIUM
    connect_timeout_ms: float = Field(30_000, gt=0)
    action_timeout_ms: float = Field(15_000, gt=0)
    navigation_timeout_ms: float = Field(30_000, gt=0)
    expect_timeout_ms: float = Field(10_000, gt=0)
    probe_timeout_ms: float = Field(2_000, gt=0)
    selector_policy: SelectorPolicy = SelectorPolicy.FIRST
    screenshot_on_failure: bool = True
    trace: TraceMode = TraceMode.RETAIN_ON_FAILURE
    record_video: bool = False
    artifacts_dir: Path = DEFAULT_ARTIFACTS_DIR
    namespace: str = "playwright-cloud"
    service_name: str = "pw-server"
    service_port: int = Field(3000, gt=0, le=65535)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> "HarnessConfig":
        """Build the configuration from environment variables plus explicit overrides.

        Overrides whose value is ``None`` are ignored so CLI options can be
        passed straight through.
        """

        env = os.environ if environ is None else environ
        values: dict[str, Any] = {"endpoint": resolve_endpoint(env)}
        for field_name, var_name in _ENV_FIELDS.items():
            raw = (env.get(var_name) or "").strip()
            if raw:
                values[field_name] = raw
        values.update({key: value for key, value in overrides.items() if value is not None})
        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
            )
            raise ConfigurationError(f"Invalid configuration: {problems}") from exc

    @property
    def endpoint_env_var(self) -> str:
        return ENDPOINT_ENV_VARS[0]
