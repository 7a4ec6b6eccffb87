from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from browser_smoke import main
from browser_smoke.session import RemoteSessionClient
from fakes import FakePlaywrightFactory, FakeSite, wikipedia_site

runner = CliRunner()

SCENARIO_YAML = """
scenario_id: wiki-title
description: Wikipedia front page has a title
steps:
  - name: open wikipedia
    action: navigate
    url: https://www.wikipedia.org/
  - name: title mentions wikipedia
    action: assert_title
    pattern: wikipedia
    ignore_case: true
"""


@pytest.fixture
def env(tmp_path: Path) -> dict:
    return {
        "PW_TEST_CONNECT_WS_ENDPOINT": None,
        "PW_WS_ENDPOINT": None,
        "BROWSER_SMOKE_ARTIFACTS_DIR": str(tmp_path / "artifacts"),
        "BROWSER_SMOKE_LOG_LEVEL": "error",
        "CONSOLE_OUTPUT_FORMAT": "plain",
    }


def _use_site(monkeypatch: pytest.MonkeyPatch, site: FakeSite) -> FakePlaywrightFactory:
    factory = FakePlaywrightFactory(site)
    monkeypatch.setattr(
        main,
        "RemoteSessionClient",
        lambda config: RemoteSessionClient(config, playwright_factory=factory),
    )
    return factory


def test_check_reports_unreachable_server(monkeypatch, env) -> None:
    _use_site(monkeypatch, FakeSite(refuse_connections=True))

    result = runner.invoke(main.app, ["check"], env=env)

    assert result.exit_code == 1
    assert "🔌 Connecting to: ws://localhost:3000/" in result.output
    assert "Could not connect to remote browser at ws://localhost:3000/" in result.output
    assert "kubectl get pods -n playwright-cloud" in result.output
    assert "kubectl port-forward -n playwright-cloud service/pw-server 3000:3000" in result.output
    assert "echo $PW_TEST_CONNECT_WS_ENDPOINT" in result.output


def test_check_passes_against_working_server(monkeypatch, env, tmp_path) -> None:
    factory = _use_site(monkeypatch, wikipedia_site())
    env["PW_TEST_CONNECT_WS_ENDPOINT"] = "ws://pw-server.playwright-cloud:3000/"

    result = runner.invoke(main.app, ["check"], env=env)

    assert result.exit_code == 0, result.output
    assert "🎭 Testing remote Playwright server" in result.output
    assert "🎉 All tests completed successfully!" in result.output
    assert "✅ Remote Playwright server is working" in result.output
    assert factory.last.chromium.connect_calls[0][0] == "ws://pw-server.playwright-cloud:3000/"
    screenshots = list((tmp_path / "artifacts").glob("*/killercoda-test-screenshot.png"))
    assert len(screenshots) == 1


def test_run_scenario_file_json(monkeypatch, env, tmp_path) -> None:
    _use_site(monkeypatch, wikipedia_site())
    scenario_file = tmp_path / "wiki.yaml"
    scenario_file.write_text(SCENARIO_YAML, encoding="utf-8")
    output_dir = tmp_path / "out"

    result = runner.invoke(
        main.app,
        ["run", "-s", str(scenario_file), "--output-dir", str(output_dir), "--run-id", "cli-run", "--format", "json"],
        env=env,
    )

    assert result.exit_code == 0, result.output
    summary = json.loads((output_dir / "cli-run" / "summary.json").read_text(encoding="utf-8"))
    assert summary["status"] == "passed"
    assert [s["scenario_id"] for s in summary["scenarios"]] == ["wiki-title"]
    assert '"run_id": "cli-run"' in result.output


def test_run_rejects_unknown_scenario(env) -> None:
    result = runner.invoke(main.app, ["run", "no-such-scenario"], env=env)

    assert result.exit_code == 2
    assert "Unknown scenario" in result.output


def test_run_rejects_invalid_scenario_file(env, tmp_path) -> None:
    scenario_file = tmp_path / "bad.yaml"
    scenario_file.write_text("scenario_id: bad\nsteps:\n  - name: click nothing\n    action: click\n", encoding="utf-8")

    result = runner.invoke(main.app, ["run", "-s", str(scenario_file)], env=env)

    assert result.exit_code == 2


def test_run_rejects_malformed_yaml_file(env, tmp_path) -> None:
    scenario_file = tmp_path / "broken.yaml"
    scenario_file.write_text("scenario_id: [unclosed\nsteps: {", encoding="utf-8")

    result = runner.invoke(main.app, ["run", "-s", str(scenario_file)], env=env)

    assert result.exit_code == 2
    assert isinstance(result.exception, SystemExit)
    assert "Traceback" not in result.output


def test_run_invalid_timeout_is_configuration_error(env) -> None:
    env["PW_ACTION_TIMEOUT_MS"] = "-5"

    result = runner.invoke(main.app, ["run", "connectivity"], env=env)

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output
    assert "action_timeout_ms" in result.output


def test_list_shows_builtin_scenarios(env) -> None:
    result = runner.invoke(main.app, ["list"], env=env)

    assert result.exit_code == 0
    assert "connectivity (check)" in result.output
    assert "google-search:" in result.output
    assert "wikipedia-search:" in result.output


def test_endpoint_uses_fallback_variable(env) -> None:
    env["PW_WS_ENDPOINT"] = "ws://fallback:3000/"

    result = runner.invoke(main.app, ["endpoint"], env=env)

    assert result.exit_code == 0
    assert result.output.strip() == "ws://fallback:3000/"
