"""CLI entrypoint for browser-smoke."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import structlog
import typer

if __package__ in {None, ""}:
    sys.path.append(str(Path(__file__).resolve().parents[1]))
    __package__ = "browser_smoke"

from .catalog import BUILTIN_SCENARIOS, CONNECTIVITY, DEFAULT_SCENARIOS, get_scenario
from .config import HarnessConfig, SelectorPolicy, TraceMode
from .console_reporter import ConsoleReporter
from .diagnostics import EXIT_OK, DiagnosticsReporter
from .errors import ConfigurationError, HarnessError
from .loader import load_scenario
from .logging_utils import configure_logging
from .models import Scenario
from .output_config import OutputFormat, get_log_format, get_log_level, get_output_format
from .runner import ScenarioRunner
from .session import RemoteSessionClient

LOGGER = structlog.get_logger("browser_smoke")

app = typer.Typer(help="Run smoke scenarios against a remote Playwright browser server.")


def _default_run_id() -> str:
    return datetime.now(timezone.utc).strftime("run-%Y%m%dT%H%M%SZ")


def _select_scenarios(names: list[str], files: list[Path]) -> list[Scenario]:
    scenarios: list[Scenario] = []
    for name in names:
        try:
            scenarios.append(get_scenario(name))
        except KeyError as exc:
            raise typer.BadParameter(str(exc.args[0])) from exc
    for path in files:
        try:
            scenarios.append(load_scenario(path))
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
    if not scenarios:
        scenarios = [BUILTIN_SCENARIOS[name] for name in DEFAULT_SCENARIOS]
    return scenarios


def _execute(
    scenarios: list[Scenario],
    *,
    output_format: OutputFormat,
    log_level: Optional[str],
    run_id: Optional[str],
    output_dir: Optional[Path],
    fail_fast: bool = True,
    client: Optional[RemoteSessionClient] = None,
    **overrides: object,
) -> int:
    """Shared body of `run` and `check`: configure, run, report, return the exit code."""

    configure_logging(get_log_level(log_level), get_log_format(output_format))
    try:
        config = HarnessConfig.from_env(**overrides)
    except ConfigurationError as exc:
        return DiagnosticsReporter(HarnessConfig(), output_format=output_format).report_error(exc)

    diagnostics = DiagnosticsReporter(config, output_format=output_format)
    reporter = ConsoleReporter(output_format=output_format)
    reporter.print_info(f"🔌 Connecting to: {config.endpoint}")
    runner = ScenarioRunner(
        config=config,
        run_id=run_id or _default_run_id(),
        output_root=output_dir,
        client=client or RemoteSessionClient(config),
        reporter=reporter,
        fail_fast=fail_fast,
    )
    try:
        report = runner.run(scenarios)
    except HarnessError as exc:
        return diagnostics.report_error(exc)
    except Exception as exc:  # pragma: no cover - last-resort reporting
        LOGGER.exception("run_crashed")
        return diagnostics.report_error(exc)
    return diagnostics.report_run(report)


@app.command()
def run(
    scenario: list[str] = typer.Argument(
        None,
        help=f"Built-in scenario names ({', '.join(BUILTIN_SCENARIOS)}). Defaults to all site checks.",
    ),
    scenario_file: list[Path] = typer.Option(
        [],
        "--scenario-file",
        "-s",
        exists=True,
        readable=True,
        help="Scenario YAML file(s) to run after the built-in ones.",
    ),
    output_dir: Optional[Path] = typer.Option(
        None,
        help="Root directory for run artifacts (default: BROWSER_SMOKE_ARTIFACTS_DIR or artifacts/browser-smoke).",
    ),
    run_id: Optional[str] = typer.Option(None, help="Run identifier used as the artifacts sub-directory."),
    format: Optional[str] = typer.Option(
        None,
        "--format",
        "-f",
        help="Console output: auto, rich, plain or json (default: CONSOLE_OUTPUT_FORMAT or auto).",
    ),
    log_level: Optional[str] = typer.Option(None, help="Log level (default: BROWSER_SMOKE_LOG_LEVEL or warning)."),
    strict_selectors: bool = typer.Option(
        False,
        "--strict-selectors",
        help="Fail fill/press/click steps whose selector matches more than one element.",
    ),
    fail_fast: bool = typer.Option(True, "--fail-fast/--no-fail-fast", help="Stop the run at the first failed scenario."),
    trace: Optional[TraceMode] = typer.Option(None, help="Playwright tracing: off, on or retain-on-failure."),
    video: bool = typer.Option(False, "--video", help="Record a video of every page (also BROWSER_SMOKE_VIDEO)."),
) -> None:
    """Run built-in and/or YAML scenarios against the remote browser."""

    scenarios = _select_scenarios(scenario or [], scenario_file)
    code = _execute(
        scenarios,
        output_format=get_output_format(format),
        log_level=log_level,
        run_id=run_id,
        output_dir=output_dir,
        fail_fast=fail_fast,
        selector_policy=SelectorPolicy.STRICT if strict_selectors else None,
        trace=trace,
        record_video=True if video else None,
    )
    raise typer.Exit(code)


@app.command()
def check() -> None:
    """Connectivity check: configuration comes from the environment only."""

    raise typer.Exit(_check())


@app.command("list")
def list_scenarios() -> None:
    """List built-in scenarios."""

    for name, scenario in BUILTIN_SCENARIOS.items():
        marker = "" if name in DEFAULT_SCENARIOS else " (check)"
        typer.echo(f"{name}{marker}: {scenario.description or ''}")


@app.command()
def endpoint() -> None:
    """Print the resolved remote endpoint."""

    try:
        config = HarnessConfig.from_env()
    except ConfigurationError as exc:
        raise typer.Exit(DiagnosticsReporter(HarnessConfig()).report_error(exc))
    typer.echo(config.endpoint)


def _check(client: Optional[RemoteSessionClient] = None) -> int:
    output_format = get_output_format()
    banner = ConsoleReporter(output_format=output_format)
    banner.print_info("🎭 Testing remote Playwright server")
    banner.print_info("=" * 42)
    code = _execute(
        [CONNECTIVITY],
        output_format=output_format,
        log_level=None,
        run_id=None,
        output_dir=None,
        client=client,
    )
    if code == EXIT_OK:
        banner.print_info("✅ Remote Playwright server is working")
    return code


def check_main() -> None:
    """Console_scripts hook for browser-smoke-check."""

    sys.exit(_check())


def main() -> None:
    """Console_scripts hook."""

    app()


if __name__ == "__main__":  # pragma: no cover
    main()
