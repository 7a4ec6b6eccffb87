"""Scenario execution engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Optional, Sequence
import time
import traceback
import xml.etree.ElementTree as ET

import structlog

from .config import HarnessConfig, TraceMode
from .console_reporter import ConsoleReporter
from .errors import ArtifactError, AssertionFailed, EnvironmentalSkip, HarnessError
from .models import (
    RunReport,
    RunStatus,
    Scenario,
    ScenarioResult,
    ScenarioStep,
    Severity,
    StepAction,
    StepResult,
    StepStatus,
)
from .output_config import OutputFormat
from .page import PageDriver
from .session import RemoteSession, RemoteSessionClient

LOGGER = structlog.get_logger("browser_smoke")


@dataclass
class RunArtifacts:
    run_dir: Path
    events_file: Path
    summary_file: Path
    junit_file: Path


@dataclass
class _Outcome:
    captured_text: Optional[str] = None
    captured_texts: list[str] = field(default_factory=list)
    artifact_path: Optional[str] = None


class ScenarioRunner:
    """Runs scenarios over one remote session and records artifacts."""

    def __init__(
        self,
        *,
        config: HarnessConfig,
        run_id: str,
        output_root: Optional[Path] = None,
        client: Optional[RemoteSessionClient] = None,
        reporter: Optional[ConsoleReporter] = None,
        output_format: OutputFormat = OutputFormat.AUTO,
        fail_fast: bool = True,
    ) -> None:
        self.config = config
        self.run_id = run_id
        self.output_root = output_root or config.artifacts_dir
        self.fail_fast = fail_fast
        self._client = client or RemoteSessionClient(config)
        self._reporter = reporter or ConsoleReporter(output_format=output_format)
        self._logger = LOGGER.bind(run_id=run_id)

    def run(self, scenarios: Sequence[Scenario]) -> RunReport:
        """Connect, run every scenario in order and write the run artifacts.

        A RemoteConnectionError from ``connect`` propagates to the caller.
        """

        run_start = datetime.now(timezone.utc)
        results: list[ScenarioResult] = []

        # the session closes even when the run directory cannot be created
        with self._client.connect() as session:
            artifacts = self._prepare_artifacts()
            with artifacts.events_file.open("w", encoding="utf-8") as events_handle:
                for scenario in scenarios:
                    result = self.run_scenario(session, scenario, artifacts=artifacts, events=events_handle)
                    results.append(result)
                    if result.status == RunStatus.FAILED and self.fail_fast:
                        self._logger.warning("run_aborted", scenario=scenario.scenario_id)
                        break

        report = self._build_report(
            session=session,
            run_start=run_start,
            run_end=datetime.now(timezone.utc),
            results=results,
            artifacts=artifacts,
        )
        artifacts.summary_file.write_text(report.model_dump_json(indent=2), encoding="utf-8")
        self._write_junit(results, artifacts.junit_file)
        return report

    def run_scenario(
        self,
        session: RemoteSession,
        scenario: Scenario,
        *,
        artifacts: RunArtifacts,
        events: Optional[IO[str]] = None,
    ) -> ScenarioResult:
        """Run one scenario's steps in order.

        A fatal step stops the scenario; an environmental skip marks every
        remaining step as skipped. Pages opened here are closed before
        returning.
        """

        logger = self._logger.bind(scenario=scenario.scenario_id)
        scenario_start = datetime.now(timezone.utc)
        pages: dict[str, PageDriver] = {}
        step_results: list[StepResult] = []
        skip_reason: Optional[str] = None
        status = RunStatus.PASSED

        self._reporter.start_test_suite(total_steps=len(scenario.steps), scenario_name=scenario.scenario_id)
        logger.info("scenario_started", steps=len(scenario.steps))

        try:
            for index, step in enumerate(scenario.steps, start=1):
                if skip_reason is not None:
                    result = self._skipped_result(scenario, step, index, skip_reason)
                else:
                    self._reporter.report_step_start(step_num=index, action=step.action.value, detail=_step_detail(step))
                    result = self._execute_step(session, scenario, step, index, pages, artifacts)
                    if result.status == StepStatus.SKIPPED:
                        skip_reason = result.skip_reason
                        status = RunStatus.SKIPPED
                        logger.info("scenario_skipped", step=step.name, reason=skip_reason)

                step_results.append(result)
                if events is not None:
                    events.write(result.model_dump_json() + "\n")
                self._reporter.report_step_result(
                    step_num=index,
                    action=step.action.value,
                    detail=_step_detail(step),
                    status=result.status.value,
                    duration_ms=result.duration_ms,
                    error_msg=result.error or result.skip_reason,
                )

                if result.status == StepStatus.FAILED:
                    status = RunStatus.FAILED
                    logger.warning("scenario_failed", step=step.name, error=result.error)
                    break
        finally:
            traces = self._close_pages(session, scenario, pages, artifacts, failed=status == RunStatus.FAILED)

        scenario_end = datetime.now(timezone.utc)
        self._reporter.finish_test_suite(
            total=len(step_results),
            passed=sum(1 for r in step_results if r.status == StepStatus.PASSED),
            failed=sum(1 for r in step_results if r.status in {StepStatus.FAILED, StepStatus.SOFT_FAILED}),
            skipped=sum(1 for r in step_results if r.status in {StepStatus.SKIPPED, StepStatus.BYPASSED}),
            duration_ms=(scenario_end - scenario_start).total_seconds() * 1000,
        )
        return ScenarioResult(
            scenario_id=scenario.scenario_id,
            status=status,
            started_at=scenario_start,
            finished_at=scenario_end,
            duration_ms=round((scenario_end - scenario_start).total_seconds() * 1000, 3),
            steps=step_results,
            skip_reason=skip_reason,
            traces=[str(path) for path in traces],
            videos=[str(driver.video) for driver in pages.values() if driver.video is not None],
        )

    def _execute_step(
        self,
        session: RemoteSession,
        scenario: Scenario,
        step: ScenarioStep,
        step_index: int,
        pages: dict[str, PageDriver],
        artifacts: RunArtifacts,
    ) -> StepResult:
        started_at = datetime.now(timezone.utc)
        timer = time.perf_counter()
        status = StepStatus.PASSED
        outcome = _Outcome()
        error_text: Optional[str] = None
        category: Optional[str] = None
        tb_text: Optional[str] = None
        skip_reason: Optional[str] = None
        driver: Optional[PageDriver] = None

        try:
            if step.action == StepAction.CLOSE_PAGE:
                outcome = self._close_step_page(session, scenario, step, pages, artifacts)
            else:
                driver = self._page_for(session, scenario, step, pages, artifacts)
                if step.guard is not None and not driver.probe_visible(step.guard, timeout_ms=step.guard.timeout_ms).is_visible:
                    status = StepStatus.BYPASSED
                    skip_reason = f"guard {step.guard.describe()} not visible"
                else:
                    outcome = self._dispatch(driver, step, artifacts)
        except EnvironmentalSkip as exc:
            status = StepStatus.SKIPPED
            skip_reason = exc.reason
        except HarnessError as exc:
            error_text = str(exc)
            category = exc.category.value
            tb_text = traceback.format_exc()
            fatal = exc.fatal if exc.fatal is not None else step.severity == Severity.FATAL
            status = StepStatus.FAILED if fatal else StepStatus.SOFT_FAILED
        except Exception as exc:  # unexpected errors are always fatal
            error_text = f"{exc.__class__.__name__}: {exc}"
            category = "unexpected"
            tb_text = traceback.format_exc()
            status = StepStatus.FAILED

        if status == StepStatus.FAILED and driver is not None and not driver.closed:
            outcome.artifact_path = self._failure_screenshot(driver, scenario, step_index, artifacts)

        duration_ms = (time.perf_counter() - timer) * 1000
        return StepResult(
            scenario_id=scenario.scenario_id,
            step_index=step_index,
            step_name=step.name,
            action=step.action,
            page=step.page,
            status=status,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            duration_ms=round(duration_ms, 3),
            error=error_text,
            error_category=category,
            traceback=tb_text,
            captured_text=outcome.captured_text,
            captured_texts=outcome.captured_texts,
            artifact_path=outcome.artifact_path,
            skip_reason=skip_reason,
        )

    def _dispatch(
        self,
        driver: PageDriver,
        step: ScenarioStep,
        artifacts: RunArtifacts,
    ) -> _Outcome:
        action = step.action
        target = step.target
        timeout = step.timeout_ms

        if action == StepAction.NAVIGATE:
            driver.navigate(step.url, timeout_ms=timeout, wait_until=step.wait_until)
        elif action == StepAction.WAIT_FOR_LOAD_STATE:
            driver.wait_for_load_state(step.load_state, timeout_ms=timeout)
        elif action == StepAction.FILL:
            driver.fill(target, step.value, timeout_ms=timeout)
        elif action == StepAction.PRESS:
            driver.press(target, step.key, timeout_ms=timeout)
        elif action == StepAction.CLICK:
            driver.click(target, timeout_ms=timeout)
        elif action == StepAction.WAIT_FOR_SELECTOR:
            driver.wait_for_selector(target, timeout_ms=timeout)
        elif action == StepAction.ASSERT_VISIBLE:
            driver.assert_visible(target, timeout_ms=timeout)
        elif action == StepAction.ASSERT_TEXT:
            return _Outcome(captured_text=driver.assert_text_matches(target, step.compiled_pattern(), timeout_ms=timeout))
        elif action == StepAction.ASSERT_URL:
            return _Outcome(captured_text=driver.assert_url_matches(step.compiled_pattern(), timeout_ms=timeout))
        elif action == StepAction.ASSERT_TITLE:
            return _Outcome(captured_text=driver.assert_title_matches(step.compiled_pattern(), timeout_ms=timeout))
        elif action == StepAction.CAPTURE_TEXT:
            text = driver.text_content(target, timeout_ms=timeout)
            _check_capture(step, target.describe(), text)
            return _Outcome(captured_text=text)
        elif action == StepAction.CAPTURE_TEXTS:
            raw = driver.text_contents(target, has_text=step.compiled_has_text(), limit=step.limit, timeout_ms=timeout)
            pieces = [line for text in raw for line in text.split("\n")] if step.split_lines else raw
            texts = [piece.strip() for piece in pieces if len(piece.strip()) >= step.min_length]
            if not texts:
                raise AssertionFailed(
                    target.describe(),
                    f"at least one text of {step.min_length}+ characters",
                    f"{len(raw)} element(s), none long enough",
                )
            return _Outcome(captured_texts=texts)
        elif action == StepAction.CAPTURE_TITLE:
            text = driver.title().strip()
            _check_capture(step, "page title", text)
            return _Outcome(captured_text=text)
        elif action == StepAction.SCREENSHOT:
            path = self._artifact_path(step.path, artifacts)
            driver.screenshot(path, full_page=step.full_page)
            return _Outcome(artifact_path=str(path))
        elif action == StepAction.SKIP_IF_URL:
            url = driver.url
            if step.compiled_pattern().search(url):
                raise EnvironmentalSkip(step.reason or f"page redirected to {url}")
            return _Outcome(captured_text=url)
        else:  # pragma: no cover - close_page is handled by the caller
            raise NotImplementedError(f"Action '{action}' is not supported")
        return _Outcome()

    def _page_for(
        self,
        session: RemoteSession,
        scenario: Scenario,
        step: ScenarioStep,
        pages: dict[str, PageDriver],
        artifacts: RunArtifacts,
    ) -> PageDriver:
        driver = pages.get(step.page)
        if driver is None or driver.closed:
            video_dir = artifacts.run_dir / "videos" / scenario.scenario_id if self.config.record_video else None
            driver = session.new_page(step.page, video_dir=video_dir)
            pages[step.page] = driver
        return driver

    def _close_step_page(
        self,
        session: RemoteSession,
        scenario: Scenario,
        step: ScenarioStep,
        pages: dict[str, PageDriver],
        artifacts: RunArtifacts,
    ) -> _Outcome:
        # the closed driver stays in ``pages`` so its video is reported with the scenario
        driver = pages.get(step.page)
        if driver is None or driver.closed:
            return _Outcome()
        trace_path = None
        if self.config.trace == TraceMode.ON:
            trace_path = self._trace_path(artifacts, scenario, step.page)
        saved = session.close_page(driver, trace_path, self._video_path(artifacts, scenario, step.page))
        return _Outcome(artifact_path=str(saved) if saved else None)

    def _close_pages(
        self,
        session: RemoteSession,
        scenario: Scenario,
        pages: dict[str, PageDriver],
        artifacts: RunArtifacts,
        *,
        failed: bool,
    ) -> list[Path]:
        keep_trace = self.config.trace == TraceMode.ON or (
            self.config.trace == TraceMode.RETAIN_ON_FAILURE and failed
        )
        saved: list[Path] = []
        for name, driver in pages.items():
            if driver.closed:
                continue
            trace_path = self._trace_path(artifacts, scenario, name) if keep_trace else None
            try:
                path = session.close_page(driver, trace_path, self._video_path(artifacts, scenario, name))
            except ArtifactError as exc:
                self._logger.warning("page_artifacts_failed", scenario=scenario.scenario_id, page=name, error=str(exc))
                continue
            if path is not None:
                saved.append(path)
        return saved

    @staticmethod
    def _trace_path(artifacts: RunArtifacts, scenario: Scenario, page: str) -> Path:
        return artifacts.run_dir / "traces" / f"{scenario.scenario_id}-{page}.zip"

    def _video_path(self, artifacts: RunArtifacts, scenario: Scenario, page: str) -> Optional[Path]:
        if not self.config.record_video:
            return None
        return artifacts.run_dir / "videos" / f"{scenario.scenario_id}-{page}.webm"

    def _failure_screenshot(
        self,
        driver: PageDriver,
        scenario: Scenario,
        step_index: int,
        artifacts: RunArtifacts,
    ) -> Optional[str]:
        if not self.config.screenshot_on_failure:
            return None
        path = artifacts.run_dir / "failures" / f"{scenario.scenario_id}-step{step_index:02d}.png"
        try:
            driver.screenshot(path, full_page=True)
        except ArtifactError as exc:
            self._logger.warning("failure_screenshot_failed", scenario=scenario.scenario_id, error=str(exc))
            return None
        return str(path)

    @staticmethod
    def _skipped_result(scenario: Scenario, step: ScenarioStep, step_index: int, reason: str) -> StepResult:
        now = datetime.now(timezone.utc)
        return StepResult(
            scenario_id=scenario.scenario_id,
            step_index=step_index,
            step_name=step.name,
            action=step.action,
            page=step.page,
            status=StepStatus.SKIPPED,
            started_at=now,
            finished_at=now,
            duration_ms=0.0,
            skip_reason=reason,
        )

    @staticmethod
    def _artifact_path(raw: str, artifacts: RunArtifacts) -> Path:
        path = Path(raw)
        return path if path.is_absolute() else artifacts.run_dir / path

    def _prepare_artifacts(self) -> RunArtifacts:
        run_dir = self.output_root / self.run_id
        run_dir.mkdir(parents=True, exist_ok=True)
        return RunArtifacts(
            run_dir=run_dir,
            events_file=run_dir / "events.jsonl",
            summary_file=run_dir / "summary.json",
            junit_file=run_dir / "results.junit.xml",
        )

    def _build_report(
        self,
        *,
        session: RemoteSession,
        run_start: datetime,
        run_end: datetime,
        results: list[ScenarioResult],
        artifacts: RunArtifacts,
    ) -> RunReport:
        steps = [step for result in results for step in result.steps]
        statuses = {result.status for result in results}
        if RunStatus.FAILED in statuses:
            status = RunStatus.FAILED
        elif results and statuses == {RunStatus.SKIPPED}:
            status = RunStatus.SKIPPED
        else:
            status = RunStatus.PASSED
        return RunReport(
            run_id=self.run_id,
            endpoint=session.endpoint,
            status=status,
            started_at=run_start,
            finished_at=run_end,
            duration_ms=round((run_end - run_start).total_seconds() * 1000, 3),
            scenarios=results,
            total_steps=len(steps),
            passed_steps=sum(1 for s in steps if s.status == StepStatus.PASSED),
            soft_failed_steps=sum(1 for s in steps if s.status == StepStatus.SOFT_FAILED),
            failed_steps=sum(1 for s in steps if s.status == StepStatus.FAILED),
            skipped_steps=sum(1 for s in steps if s.status in {StepStatus.SKIPPED, StepStatus.BYPASSED}),
            events_file=str(artifacts.events_file),
            summary_file=str(artifacts.summary_file),
            junit_file=str(artifacts.junit_file),
        )

    def _write_junit(self, results: list[ScenarioResult], junit_file: Path) -> None:
        suites = ET.Element("testsuites", attrib={"name": self.run_id})
        for result in results:
            suite = ET.SubElement(
                suites,
                "testsuite",
                attrib={
                    "name": result.scenario_id,
                    "tests": str(len(result.steps)),
                    "failures": str(len([s for s in result.steps if s.status in {StepStatus.FAILED, StepStatus.SOFT_FAILED}])),
                    "skipped": str(len([s for s in result.steps if s.status in {StepStatus.SKIPPED, StepStatus.BYPASSED}])),
                    "time": str(result.duration_ms / 1000),
                },
            )
            for step in result.steps:
                case = ET.SubElement(
                    suite,
                    "testcase",
                    attrib={
                        "classname": result.scenario_id,
                        "name": step.step_name,
                        "time": str(step.duration_ms / 1000),
                    },
                )
                if step.status in {StepStatus.FAILED, StepStatus.SOFT_FAILED}:
                    failure = ET.SubElement(
                        case,
                        "failure",
                        attrib={"message": step.error or "Step failed", "type": step.error_category or "unexpected"},
                    )
                    failure.text = step.traceback or step.error or ""
                elif step.status in {StepStatus.SKIPPED, StepStatus.BYPASSED}:
                    ET.SubElement(case, "skipped", attrib={"message": step.skip_reason or ""})
        tree = ET.ElementTree(suites)
        tree.write(junit_file, encoding="utf-8", xml_declaration=True)


def _check_capture(step: ScenarioStep, subject: str, text: str) -> None:
    if len(text) < step.min_length:
        raise AssertionFailed(subject, f"at least {step.min_length} characters", repr(text))


def _step_detail(step: ScenarioStep) -> str:
    if step.action == StepAction.NAVIGATE:
        return step.url or ""
    if step.is_set:
        return step.target.describe()
    if step.pattern:
        return f"/{step.pattern}/"
    return step.path or step.name
