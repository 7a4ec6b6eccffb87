"""Scenario and runtime models."""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

DEFAULT_PAGE = "main"


class StepAction(str, Enum):
    NAVIGATE = "navigate"
    WAIT_FOR_LOAD_STATE = "wait_for_load_state"
    FILL = "fill"
    PRESS = "press"
    CLICK = "click"
    WAIT_FOR_SELECTOR = "wait_for_selector"
    ASSERT_VISIBLE = "assert_visible"
    ASSERT_TEXT = "assert_text"
    ASSERT_URL = "assert_url"
    ASSERT_TITLE = "assert_title"
    CAPTURE_TEXT = "capture_text"
    CAPTURE_TEXTS = "capture_texts"
    CAPTURE_TITLE = "capture_title"
    SCREENSHOT = "screenshot"
    SKIP_IF_URL = "skip_if_url"
    CLOSE_PAGE = "close_page"


class Severity(str, Enum):
    """Whether a failing step aborts the scenario (fatal) or is only recorded (soft)."""

    FATAL = "fatal"
    SOFT = "soft"


class StepStatus(str, Enum):
    PASSED = "passed"
    SOFT_FAILED = "soft_failed"
    FAILED = "failed"
    SKIPPED = "skipped"
    BYPASSED = "bypassed"


class RunStatus(str, Enum):
    PASSED = "passed"
    SKIPPED = "skipped"
    FAILED = "failed"


_TARGET_ACTIONS = {
    StepAction.FILL,
    StepAction.PRESS,
    StepAction.CLICK,
    StepAction.WAIT_FOR_SELECTOR,
    StepAction.ASSERT_VISIBLE,
    StepAction.ASSERT_TEXT,
    StepAction.CAPTURE_TEXT,
    StepAction.CAPTURE_TEXTS,
}

_REQUIRED_FIELDS: dict[StepAction, tuple[str, ...]] = {
    StepAction.NAVIGATE: ("url",),
    StepAction.FILL: ("value",),
    StepAction.PRESS: ("key",),
    StepAction.ASSERT_TEXT: ("pattern",),
    StepAction.ASSERT_URL: ("pattern",),
    StepAction.ASSERT_TITLE: ("pattern",),
    StepAction.SCREENSHOT: ("path",),
    StepAction.SKIP_IF_URL: ("pattern",),
}


class Target(BaseModel):
    """Element target: a selector, or an ARIA role with an accessible-name regex."""

    selector: Optional[str] = None
    role: Optional[str] = None
    accessible_name: Optional[str] = None

    @property
    def is_set(self) -> bool:
        return bool(self.selector or self.role)

    def describe(self) -> str:
        if self.role:
            if self.accessible_name:
                return f"role={self.role}[name=/{self.accessible_name}/i]"
            return f"role={self.role}"
        return f"'{self.selector}'"


class Guard(Target):
    """Probe run before a step; the step is bypassed unless the target is visible."""

    timeout_ms: Optional[float] = Field(None, gt=0)

    @model_validator(mode="after")
    def _check_target(self) -> "Guard":
        if not self.is_set:
            raise ValueError("guard requires a selector or a role")
        return self


class ScenarioStep(Target):
    """Single executable step inside the scenario."""

    name: str
    action: StepAction
    description: Optional[str] = None
    page: str = DEFAULT_PAGE
    url: Optional[str] = None
    value: Optional[str] = None
    key: Optional[str] = None
    pattern: Optional[str] = None
    ignore_case: bool = False
    wait_until: str = "load"
    load_state: str = "load"
    timeout_ms: Optional[float] = Field(None, gt=0)
    path: Optional[str] = None
    full_page: bool = False
    min_length: int = 1
    has_text: Optional[str] = None
    limit: Optional[int] = Field(None, gt=0)
    split_lines: bool = False
    reason: Optional[str] = None
    severity: Severity = Severity.FATAL
    guard: Optional[Guard] = None

    @model_validator(mode="after")
    def _check_required(self) -> "ScenarioStep":
        if self.action in _TARGET_ACTIONS and not self.is_set:
            raise ValueError(f"step '{self.name}' ({self.action.value}) requires a selector or a role")
        missing = [field for field in _REQUIRED_FIELDS.get(self.action, ()) if getattr(self, field) is None]
        if missing:
            raise ValueError(f"step '{self.name}' ({self.action.value}) requires: {', '.join(missing)}")
        if self.pattern is not None:
            try:
                self.compiled_pattern()
            except re.error as exc:
                raise ValueError(f"step '{self.name}' has an invalid pattern {self.pattern!r}: {exc}") from exc
        if self.has_text is not None:
            try:
                self.compiled_has_text()
            except re.error as exc:
                raise ValueError(f"step '{self.name}' has an invalid has_text {self.has_text!r}: {exc}") from exc
        return self

    def compiled_pattern(self) -> re.Pattern[str]:
        if self.pattern is None:
            raise ValueError(f"step '{self.name}' has no pattern")
        return re.compile(self.pattern, self._flags)

    def compiled_has_text(self) -> Optional[re.Pattern[str]]:
        """Regex that narrows a multi-element capture, or None to keep every match."""

        if self.has_text is None:
            return None
        return re.compile(self.has_text, self._flags)

    @property
    def _flags(self) -> int:
        return re.IGNORECASE if self.ignore_case else 0

    @property
    def target(self) -> Target:
        return Target(selector=self.selector, role=self.role, accessible_name=self.accessible_name)


class Scenario(BaseModel):
    """Ordered list of steps forming one smoke test."""

    scenario_id: str
    description: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    steps: list[ScenarioStep] = Field(default_factory=list)


class StepResult(BaseModel):
    """Runtime result for one step."""

    scenario_id: str
    step_index: int
    step_name: str
    action: StepAction
    page: str
    status: StepStatus
    started_at: datetime
    finished_at: datetime
    duration_ms: float
    error: Optional[str] = None
    error_category: Optional[str] = None
    traceback: Optional[str] = None
    captured_text: Optional[str] = None
    captured_texts: list[str] = Field(default_factory=list)
    artifact_path: Optional[str] = None
    skip_reason: Optional[str] = None


class ScenarioResult(BaseModel):
    scenario_id: str
    status: RunStatus
    started_at: datetime
    finished_at: datetime
    duration_ms: float
    steps: list[StepResult] = Field(default_factory=list)
    skip_reason: Optional[str] = None
    traces: list[str] = Field(default_factory=list)
    videos: list[str] = Field(default_factory=list)

    @property
    def fatal_step(self) -> Optional[StepResult]:
        for step in self.steps:
            if step.status == StepStatus.FAILED:
                return step
        return None


class RunReport(BaseModel):
    """Aggregated runtime summary."""

    run_id: str
    endpoint: str
    status: RunStatus
    started_at: datetime
    finished_at: datetime
    duration_ms: float
    scenarios: list[ScenarioResult] = Field(default_factory=list)
    total_steps: int = 0
    passed_steps: int = 0
    soft_failed_steps: int = 0
    failed_steps: int = 0
    skipped_steps: int = 0
    events_file: Optional[str] = None
    summary_file: Optional[str] = None
    junit_file: Optional[str] = None

    @property
    def steps(self) -> list[StepResult]:
        return [step for scenario in self.scenarios for step in scenario.steps]

    @property
    def fatal_step(self) -> Optional[StepResult]:
        for scenario in self.scenarios:
            step = scenario.fatal_step
            if step is not None:
                return step
        return None

    @property
    def artifacts(self) -> list[str]:
        paths = [step.artifact_path for step in self.steps if step.artifact_path]
        for scenario in self.scenarios:
            paths.extend(scenario.traces)
            paths.extend(scenario.videos)
        return paths
