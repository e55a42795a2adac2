"""Tests for CLI commands using Click's CliRunner."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner
from conftest import FakeBackend, make_axe_result, make_violation

from allyscan.cli import main


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch) -> Path:
    """Isolated cwd and data directory; no config or env overrides leak in."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    for name in (
        "ALLY_STANDARD",
        "ALLY_BATCH_SIZE",
        "ALLY_TIMEOUT",
        "ALLY_ENGINE",
        "ALLY_AXE_SCRIPT",
        "ALLY_NO_CACHE",
    ):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


@pytest.fixture
def fake_browser(workspace: Path):
    backend = FakeBackend()
    with (
        patch("allyscan.cli.scan.create_backend", return_value=backend),
        patch("allyscan.cli.scan.load_axe_source", return_value="window.axe = {};"),
        patch("allyscan.cli.scan.git_info", return_value=("main", "abc1234")),
    ):
        yield backend


def test_main_help():
    runner = CliRunner()
    result = runner.invoke(main, ["--help"])
    assert result.exit_code == 0
    assert "accessibility" in result.output
    for command in ("scan", "history", "cache", "doctor", "server"):
        assert command in result.output


def test_main_version():
    runner = CliRunner()
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_scan_help():
    runner = CliRunner()
    result = runner.invoke(main, ["scan", "--help"])
    assert result.exit_code == 0
    assert "--url" in result.output
    assert "--standard" in result.output
    assert "--batch-size" in result.output


def test_scan_writes_report(fake_browser: FakeBackend, site: Path, workspace: Path):
    index = (site / "index.html").resolve().as_uri()
    fake_browser.results[index] = make_axe_result(make_violation("image-alt", "critical"))

    runner = CliRunner()
    result = runner.invoke(main, ["scan", str(site), "--ci", "-o", "out", "--format", "sarif"])

    assert result.exit_code == 0, result.output
    report = json.loads((workspace / "out" / "scan.json").read_text())
    assert report["totalFiles"] == 3
    assert report["summary"]["score"] == 75
    assert [Path(r["file"]).name for r in report["results"]] == [
        "about.htm",
        "post.html",
        "index.html",
    ]
    assert (workspace / "out" / "scan.sarif").is_file()
    assert fake_browser.closes == 1


def test_second_scan_uses_cache_and_records_history(
    fake_browser: FakeBackend, site: Path, workspace: Path
):
    runner = CliRunner()
    first = runner.invoke(main, ["scan", str(site), "--ci", "-o", "out"])
    second = runner.invoke(main, ["scan", str(site), "--ci", "-o", "out"])

    assert first.exit_code == 0, first.output
    assert second.exit_code == 0, second.output
    assert len(fake_browser.visits) == 3

    history = runner.invoke(main, ["history", "--all-projects", "--json"])
    assert history.exit_code == 0, history.output
    payload = json.loads(history.stdout)
    assert payload["stats"]["scans"] == 2
    assert payload["entries"][0]["branch"] == "main"


def test_scan_json_to_stdout(fake_browser: FakeBackend, site: Path):
    runner = CliRunner()
    result = runner.invoke(main, ["scan", str(site / "index.html"), "--json", "--no-cache"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["totalFiles"] == 1


def test_scan_empty_directory_fails(fake_browser: FakeBackend, workspace: Path):
    empty = workspace / "empty"
    empty.mkdir()
    runner = CliRunner()
    result = runner.invoke(main, ["scan", str(empty), "--ci"])
    assert result.exit_code == 1
    assert fake_browser.launches == 0


def test_scan_path_and_url_conflict(fake_browser: FakeBackend, site: Path):
    runner = CliRunner()
    result = runner.invoke(main, ["scan", str(site), "--url", "https://example.com"])
    assert result.exit_code == 2


def test_scan_invalid_standard(fake_browser: FakeBackend, site: Path):
    runner = CliRunner()
    result = runner.invoke(main, ["scan", str(site), "--standard", "wcag9"])
    assert result.exit_code == 2


def test_simulate_needs_one_url(fake_browser: FakeBackend):
    runner = CliRunner()
    result = runner.invoke(main, ["scan", "--simulate", "protanopia"])
    assert result.exit_code == 2


def test_simulate_writes_screenshot(fake_browser: FakeBackend, workspace: Path):
    runner = CliRunner()
    result = runner.invoke(
        main,
        ["scan", "--url", "https://example.com", "--simulate", "tritanopia", "-o", "shots"],
    )
    assert result.exit_code == 0, result.output
    assert (workspace / "shots" / "simulate-tritanopia.png").is_file()


def test_cache_stats_json(workspace: Path):
    runner = CliRunner()
    result = runner.invoke(main, ["cache", "stats", "--json"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["entries"] == 0
    assert (workspace / "data" / "allyscan" / "ally.db").is_file()


def test_cache_clear(workspace: Path):
    runner = CliRunner()
    result = runner.invoke(main, ["cache", "clear"])
    assert result.exit_code == 0, result.output


def test_history_empty(workspace: Path):
    runner = CliRunner()
    result = runner.invoke(main, ["history", "--json"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["entries"] == []


def test_doctor_all_installed(workspace: Path):
    runner = CliRunner()
    with patch("allyscan.browser.factory.importlib.util.find_spec", return_value=object()):
        result = runner.invoke(main, ["doctor"])
    assert result.exit_code == 0, result.output


def test_doctor_selected_engine_missing(workspace: Path, monkeypatch):
    monkeypatch.setenv("ALLY_ENGINE", "selenium")
    runner = CliRunner()
    with patch("allyscan.browser.factory.importlib.util.find_spec", return_value=None):
        result = runner.invoke(main, ["doctor"])
    assert result.exit_code == 1


@pytest.fixture
def bad_config(workspace: Path) -> Path:
    path = workspace / ".allyrc.yaml"
    path.write_text("- scan\n- report\n")
    return path


@pytest.mark.parametrize(
    "args", [["cache", "clear"], ["cache", "prune"], ["cache", "stats", "--json"], ["history"]]
)
def test_invalid_config_exits_2(bad_config: Path, args: list[str]):
    runner = CliRunner()
    result = runner.invoke(main, args)
    assert result.exit_code == 2
    assert "Error:" in result.output
    assert "mapping" in result.output
    assert result.exception is None or isinstance(result.exception, SystemExit)


def test_server_help_lists_routes():
    runner = CliRunner()
    result = runner.invoke(main, ["server", "--help"])
    assert result.exit_code == 0
    for route in ("/api/history", "/api/history/stats", "/api/cache", "/api/reports/latest"):
        assert route in result.output
    assert "/api/docs" in result.output


def test_server_banner_shows_routes(workspace: Path):
    pytest.importorskip("uvicorn")
    pytest.importorskip("fastapi")
    runner = CliRunner()
    with (
        patch("allyscan.web.app.create_app", AsyncMock(return_value=object())),
        patch("uvicorn.Config") as uv_config,
        patch("uvicorn.Server") as uv_server,
    ):
        uv_server.return_value.serve = AsyncMock()
        result = runner.invoke(main, ["server", "--port", "9001"])

    assert result.exit_code == 0, result.output
    assert "http://127.0.0.1:9001/api/history/stats" in result.output
    assert "http://127.0.0.1:9001/api/docs" in result.output
    assert uv_config.call_args.kwargs["port"] == 9001
    uv_server.return_value.serve.assert_awaited_once()


def test_server_invalid_config_exits_2(bad_config: Path):
    pytest.importorskip("uvicorn")
    runner = CliRunner()
    result = runner.invoke(main, ["server"])
    assert result.exit_code == 2
