"""Tests for the dashboard API."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from conftest import run_async

pytest.importorskip("fastapi")

from fastapi.testclient import TestClient  # noqa: E402

from allyscan.config import AllyConfig  # noqa: E402
from allyscan.scanner.models import ScanResult  # noqa: E402
from allyscan.scanner.standards import Standard  # noqa: E402
from allyscan.scanner.targets import Target  # noqa: E402
from allyscan.storage.cache import ResultCache, SqliteCacheStore  # noqa: E402
from allyscan.storage.repos import HistoryEntry, HistoryRepo  # noqa: E402
from allyscan.web.app import create_app  # noqa: E402


@pytest.fixture
def app(tmp_path: Path):
    config = AllyConfig(data_dir=tmp_path / "data", report_output=tmp_path / "reports")
    app = run_async(create_app(config))
    yield app
    run_async(app.state.db.close())


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


def _record(app, *scores: int, root: str = "/site") -> None:
    repo = HistoryRepo(app.state.db)
    for score in scores:
        entry = HistoryEntry(
            timestamp="2024-05-01T12:00:00.000Z", score=score, total_violations=0, root=root
        )
        run_async(repo.append(entry))


class TestHistoryApi:
    def test_list(self, app, client: TestClient):
        _record(app, 60, 80)
        _record(app, 99, root="/other")

        resp = client.get("/api/history", params={"root": "/site"})
        assert resp.status_code == 200
        assert [e["score"] for e in resp.json()] == [60, 80]

    def test_stats(self, app, client: TestClient):
        _record(app, 60, 80)
        resp = client.get("/api/history/stats")
        assert resp.status_code == 200
        data = resp.json()
        assert data["scans"] == 2
        assert data["change"] == 20
        assert data["trend"] == "improving"

    def test_stats_empty(self, client: TestClient):
        data = client.get("/api/history/stats").json()
        assert data["scans"] == 0
        assert data["latest"] is None

    def test_limit_validated(self, client: TestClient):
        assert client.get("/api/history", params={"limit": 0}).status_code == 422


class TestCacheApi:
    def test_stats_and_clear(self, app, client: TestClient, tmp_path: Path):
        page = tmp_path / "a.html"
        page.write_text("<p>")
        cache = ResultCache(SqliteCacheStore(app.state.db))
        target = Target.from_path(page)
        result = ScanResult(url=target.url, file=target.identity, timestamp="t")
        run_async(cache.put(target, Standard.WCAG2AA, result))

        assert client.get("/api/cache").json()["entries"] == 1
        resp = client.delete("/api/cache")
        assert resp.json() == {"status": "cleared", "removed": 1}
        assert client.get("/api/cache").json()["entries"] == 0


class TestReportsApi:
    def test_missing_report(self, client: TestClient):
        resp = client.get("/api/reports/latest")
        assert resp.status_code == 404

    def test_latest_report(self, app, client: TestClient):
        output = app.state.config.report_output
        output.mkdir(parents=True)
        (output / "scan.json").write_text(json.dumps({"version": "1.0.0", "totalFiles": 2}))

        resp = client.get("/api/reports/latest")
        assert resp.status_code == 200
        assert resp.json()["totalFiles"] == 2

    def test_corrupt_report(self, app, client: TestClient):
        output = app.state.config.report_output
        output.mkdir(parents=True)
        (output / "scan.json").write_text("{not json")
        assert client.get("/api/reports/latest").status_code == 500
