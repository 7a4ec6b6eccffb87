"""Failure diagnosis, remediation hints and final run output."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, TextIO, Union

from rich.console import Console
from rich.text import Text

from .config import HarnessConfig
from .errors import FailureCategory, categorize
from .models import RunReport, RunStatus, StepResult
from .output_config import OutputFormat

EXIT_OK = 0
EXIT_FAILURE = 1


@dataclass(frozen=True)
class Hint:
    summary: str
    command: Optional[str] = None


@dataclass
class Diagnosis:
    category: FailureCategory
    message: str
    hints: list[Hint] = field(default_factory=list)


def remediation_hints(category: FailureCategory, config: HarnessConfig) -> list[Hint]:
    """Ordered, actionable hints for a failure category."""

    ns = config.namespace
    port = config.service_port
    if category == FailureCategory.CONNECTION:
        return [
            Hint("Make sure the Playwright server is running:", f"kubectl get pods -n {ns}"),
            Hint(
                "Check if port-forward is active:",
                f"kubectl port-forward -n {ns} service/{config.service_name} {port}:{port}",
            ),
            Hint(
                f"Verify the WebSocket endpoint (resolved to {config.endpoint}):",
                f"echo ${config.endpoint_env_var}",
            ),
        ]
    if category == FailureCategory.CONFIGURATION:
        return [
            Hint("Check the PW_* and BROWSER_SMOKE_* environment variables for typos or non-numeric timeouts:", "env | grep -E '^(PW_|BROWSER_SMOKE_)'"),
        ]
    if category == FailureCategory.SESSION:
        return [
            Hint("The remote browser closed the session; check the server logs:", f"kubectl logs -n {ns} service/{config.service_name}"),
            Hint("Re-run once the server is healthy; pages cannot outlive their session."),
        ]
    if category == FailureCategory.SELECTOR:
        return [
            Hint("The page markup may have changed; open the failure screenshot or trace and update the selector."),
            Hint("Use --strict-selectors to surface selectors that match more than one element."),
        ]
    if category == FailureCategory.TIMEOUT:
        return [
            Hint("The site or the remote browser is slow; raise PW_NAVIGATION_TIMEOUT_MS / PW_ACTION_TIMEOUT_MS."),
            Hint("Check outbound network access from the cluster:", f"kubectl exec -n {ns} service/{config.service_name} -- curl -sI https://www.wikipedia.org/"),
        ]
    if category == FailureCategory.ASSERTION:
        return [
            Hint("The page did not show the expected content; inspect the failure screenshot or trace."),
            Hint("Third-party sites change often; confirm the expectation still holds in a local browser."),
        ]
    if category == FailureCategory.ARTIFACT:
        return [
            Hint("Check that the artifacts directory is writable:", f"ls -ld {config.artifacts_dir}"),
        ]
    if category == FailureCategory.BROWSER:
        return [
            Hint("The remote browser rejected the action; check the server logs:", f"kubectl logs -n {ns} service/{config.service_name}"),
        ]
    return [
        Hint("Re-run with --log-level debug to see the full event log."),
    ]


def diagnose(error: Union[BaseException, StepResult], config: HarnessConfig) -> Diagnosis:
    """Build a diagnosis from an escaped exception or a fatal step result."""

    if isinstance(error, StepResult):
        try:
            category = FailureCategory(error.error_category or FailureCategory.UNEXPECTED.value)
        except ValueError:
            category = FailureCategory.UNEXPECTED
        message = f"{error.scenario_id} / step {error.step_index} '{error.step_name}': {error.error}"
    else:
        category = categorize(error)
        message = str(error) or error.__class__.__name__
    return Diagnosis(category=category, message=message, hints=remediation_hints(category, config))


def exit_code_for(report: RunReport) -> int:
    if report.status == RunStatus.FAILED or report.fatal_step is not None:
        return EXIT_FAILURE
    return EXIT_OK


class DiagnosticsReporter:
    """Writes the final run outcome: summary to stdout, failures to stderr."""

    def __init__(
        self,
        config: HarnessConfig,
        *,
        output_format: OutputFormat = OutputFormat.AUTO,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ) -> None:
        self.config = config
        self.output_format = output_format
        self.out = Console(file=stdout, highlight=False, emoji=False, soft_wrap=True)
        self.err = Console(file=stderr, stderr=True, highlight=False, emoji=False, soft_wrap=True)

    def report_failure(self, diagnosis: Diagnosis) -> None:
        self.err.print(Text(f"❌ Test failed: {diagnosis.message}", style="bold red"))
        self.err.print()
        self.err.print(Text(f"🔧 Troubleshooting tips ({diagnosis.category.value}):", style="yellow"))
        for number, hint in enumerate(diagnosis.hints, start=1):
            self.err.print(Text(f"{number}. {hint.summary}"))
            if hint.command:
                self.err.print(Text(f"   {hint.command}", style="cyan"))

    def report_error(self, error: BaseException) -> int:
        self.report_failure(diagnose(error, self.config))
        return EXIT_FAILURE

    def report_run(self, report: RunReport) -> int:
        """Print the summary (and diagnosis on failure); return the exit code."""

        if self.output_format == OutputFormat.JSON:
            self.out.print(report.model_dump_json(indent=2), markup=False)
        else:
            self.report_summary(report)
        code = exit_code_for(report)
        if code != EXIT_OK:
            fatal = report.fatal_step
            if fatal is not None:
                self.report_failure(diagnose(fatal, self.config))
            else:
                self.report_failure(
                    Diagnosis(
                        category=FailureCategory.UNEXPECTED,
                        message=f"Run {report.run_id} failed",
                        hints=remediation_hints(FailureCategory.UNEXPECTED, self.config),
                    )
                )
        return code

    def report_summary(self, report: RunReport) -> None:
        self.out.print()
        self.out.print(Text(f"Run {report.run_id} against {report.endpoint}", style="bold"))
        for scenario in report.scenarios:
            style = {"passed": "green", "skipped": "yellow", "failed": "red"}[scenario.status.value]
            line = Text(f"  {scenario.scenario_id}: {scenario.status.value.upper()}", style=style)
            if scenario.skip_reason:
                line.append(f" ({scenario.skip_reason})", style="dim")
            self.out.print(line)
            for step in scenario.steps:
                self.out.print(Text(f"    {step.step_index}. [{step.status.value}] {step.step_name}"))
                if step.captured_text:
                    self.out.print(Text(f"       → {_shorten(step.captured_text)}", style="dim"))
                # printed in full, unlike captured_text
                for number, text in enumerate(step.captured_texts, start=1):
                    self.out.print(Text(f"       {number}) {text}", style="dim"))
                if step.artifact_path:
                    self.out.print(Text(f"       📸 {step.artifact_path}", style="dim"))
            for path in [*scenario.traces, *scenario.videos]:
                self.out.print(Text(f"    artifact: {path}", style="dim"))
        self.out.print(
            Text(
                f"Steps: {report.total_steps} | Passed: {report.passed_steps} | "
                f"Soft failures: {report.soft_failed_steps} | Failed: {report.failed_steps} | "
                f"Skipped: {report.skipped_steps} | Duration: {report.duration_ms:.0f}ms"
            )
        )
        if report.summary_file:
            self.out.print(Text(f"Summary written to {report.summary_file}", style="dim"))
        if report.status == RunStatus.PASSED:
            self.out.print(Text("🎉 All tests completed successfully!", style="bold green"))
        elif report.status == RunStatus.SKIPPED:
            self.out.print(Text("⏭  All scenarios were skipped for environmental reasons.", style="bold yellow"))


def _shorten(text: str, limit: int = 160) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else flat[: limit - 1] + "…"

