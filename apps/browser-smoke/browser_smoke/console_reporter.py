"""Console reporter with environment detection for scenario progress output."""

import os
import sys
from typing import Optional, TextIO

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn, TimeElapsedColumn
from rich.table import Table
from rich.text import Text

from .output_config import OutputFormat

_STATUS_LABELS = {
    "passed": ("✓ PASS", "green"),
    "soft_failed": ("! SOFT", "yellow"),
    "failed": ("✗ FAIL", "red"),
    "skipped": ("- SKIP", "dim"),
    "bypassed": ("~ BYPASS", "cyan"),
}

_CI_ENV_VARS = ("CI", "JENKINS_HOME", "GITLAB_CI", "TRAVIS", "GITHUB_ACTIONS")


def detect_rich(output_format: OutputFormat, stream: Optional[TextIO] = None) -> bool:
    """Use rich only in an interactive terminal outside CI, unless forced."""
    if output_format == OutputFormat.RICH:
        return True
    if output_format in (OutputFormat.PLAIN, OutputFormat.JSON):
        return False
    target = stream or sys.stdout
    is_terminal = hasattr(target, "isatty") and target.isatty()
    is_ci = any(name in os.environ for name in _CI_ENV_VARS)
    return is_terminal and not is_ci


class ConsoleReporter:
    """
    Progress reporter that adapts to the environment.

    Interactive terminals get a live rich table with a progress bar; CI,
    pipes and redirects get one plain line per step. JSON mode stays silent
    so stdout only carries the final report.
    """

    def __init__(self, output_format: OutputFormat = OutputFormat.AUTO, stream: Optional[TextIO] = None):
        self.output_format = output_format
        # None means whatever sys.stdout is at print time
        self.stream = stream
        self.quiet = output_format == OutputFormat.JSON
        self.use_rich = detect_rich(output_format, stream)
        self.console = Console(file=stream) if self.use_rich else None
        self.live: Optional[Live] = None
        self._pending_step: Optional[int] = None

    def _print(self, message: str = "", end: str = "\n") -> None:
        print(message, end=end, file=self.stream or sys.stdout, flush=True)

    def start_test_suite(self, total_steps: int, scenario_name: str) -> None:
        """Start displaying one scenario."""
        if self.quiet:
            return
        if self.use_rich:
            self.progress = Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
                TimeElapsedColumn(),
                console=self.console,
            )
            self.results_table = Table(show_header=True, header_style="bold cyan")
            self.results_table.add_column("Step", style="dim", width=8)
            self.results_table.add_column("Action", width=20)
            self.results_table.add_column("Target", width=48)
            self.results_table.add_column("Status", width=10)
            self.results_table.add_column("Duration", justify="right", width=10)
            self.progress_task: TaskID = self.progress.add_task(f"[cyan]Running {scenario_name}", total=total_steps)
            self.live = Live(Group(self.progress, self.results_table), console=self.console, refresh_per_second=4)
            self.live.start()
        else:
            self._print(f"Running scenario: {scenario_name}")
            self._print(f"Total steps: {total_steps}")
            self._print("-" * 80)

    def report_step_start(self, step_num: int, action: str, detail: str) -> None:
        if self.quiet or self.use_rich:
            return
        self._pending_step = step_num
        self._print(f"[{step_num}] {action} {detail} ... ", end="")

    def report_step_result(
        self,
        step_num: int,
        action: str,
        detail: str,
        status: str,
        duration_ms: float,
        error_msg: Optional[str] = None,
    ) -> None:
        if self.quiet:
            return
        label, color = _STATUS_LABELS.get(status, (status.upper(), "white"))
        if self.use_rich:
            self.results_table.add_row(
                f"Step {step_num}",
                Text(action),
                Text(detail),
                Text(label, style=color),
                f"{duration_ms:.0f}ms",
            )
            if error_msg and status != "passed":
                self.results_table.add_row("", "", Text(error_msg, style=color), "", "")
            self.progress.update(self.progress_task, advance=1)
            return

        if self._pending_step != step_num:
            self._print(f"[{step_num}] {action} {detail} ... ", end="")
        self._pending_step = None
        self._print(f"{label} ({duration_ms:.0f}ms)")
        if error_msg and status != "passed":
            self._print(f"  {'Reason' if status in ('skipped', 'bypassed') else 'Error'}: {error_msg}")

    def finish_test_suite(self, total: int, passed: int, failed: int, skipped: int, duration_ms: float) -> None:
        """Display the scenario summary."""
        if self.quiet:
            return
        if self.use_rich:
            if self.live:
                self.live.stop()
                self.live = None
            summary_text = Text()
            summary_text.append(f"Total: {total}  ", style="bold")
            summary_text.append(f"Passed: {passed}  ", style="bold green")
            summary_text.append(f"Failed: {failed}  ", style="bold red" if failed > 0 else "bold green")
            summary_text.append(f"Skipped: {skipped}  ", style="bold yellow" if skipped > 0 else "bold")
            summary_text.append(f"Duration: {duration_ms:.0f}ms", style="bold cyan")
            status = "✓ SCENARIO PASSED" if failed == 0 else "✗ SCENARIO HAD FAILURES"
            self.console.print()
            self.console.print(Panel(
                summary_text,
                title=Text(status, style="bold green" if failed == 0 else "bold red"),
                border_style="green" if failed == 0 else "red",
            ))
        else:
            self._print("-" * 80)
            self._print(
                f"Total: {total} | Passed: {passed} | Failed: {failed} | Skipped: {skipped} | "
                f"Duration: {duration_ms:.0f}ms"
            )

    def print_info(self, message: str) -> None:
        if self.quiet:
            return
        if self.use_rich:
            self.console.print(message, style="cyan", markup=False, highlight=False)
        else:
            self._print(message)
