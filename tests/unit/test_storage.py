"""Tests for the SQLite storage layer."""

from __future__ import annotations

from pathlib import Path

import aiosqlite
import pytest
from conftest import run_async

from allyscan.scanner.models import ScanFailure, ScanResult, Severity, Violation, ViolationNode
from allyscan.scanner.summary import create_report
from allyscan.storage.db import SCHEMA_VERSION, get_db
from allyscan.storage.repos import HistoryEntry, HistoryRepo


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "nested" / "test.db"


@pytest.fixture
def db(db_path: Path):
    conn = run_async(get_db(db_path))
    yield conn
    run_async(conn.close())


def _entry(score: int, root: str = "/site", **kwargs) -> HistoryEntry:
    return HistoryEntry(
        timestamp="2024-05-01T12:00:00.000Z",
        score=score,
        total_violations=kwargs.pop("total_violations", 0),
        root=root,
        **kwargs,
    )


class TestDatabase:
    def test_creates_parent_dirs_and_schema(self, db, db_path: Path):
        assert db_path.exists()

        async def version():
            cursor = await db.execute("SELECT version FROM schema_version")
            return (await cursor.fetchone())[0]

        assert run_async(version()) == SCHEMA_VERSION
        assert SCHEMA_VERSION == 1

    def test_reopen_is_idempotent(self, db_path: Path):
        async def open_twice():
            first = await get_db(db_path)
            await HistoryRepo(first).append(_entry(90))
            await first.close()
            second = await get_db(db_path)
            count = await HistoryRepo(second).count()
            await second.close()
            return count

        assert run_async(open_twice()) == 1

    def test_unstamped_database_gets_schema(self, db_path: Path):
        async def build_partial():
            db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = await aiosqlite.connect(str(db_path))
            await conn.execute("CREATE TABLE schema_version (version INTEGER NOT NULL)")
            await conn.commit()
            await conn.close()

        async def reopen():
            conn = await get_db(db_path)
            await HistoryRepo(conn).append(_entry(77))
            entries = await HistoryRepo(conn).list_recent()
            cursor = await conn.execute("SELECT version FROM schema_version")
            versions = [row[0] for row in await cursor.fetchall()]
            await conn.close()
            return entries, versions

        run_async(build_partial())
        entries, versions = run_async(reopen())
        assert versions == [SCHEMA_VERSION]
        assert entries[0].score == 77


class TestHistoryRepo:
    def test_append_and_list(self, db):
        repo = HistoryRepo(db)
        row_id = run_async(repo.append(_entry(80, branch="main", commit="abc1234")))

        entries = run_async(repo.list_recent())
        assert len(entries) == 1
        assert entries[0].id == row_id
        assert entries[0].branch == "main"
        assert entries[0].commit == "abc1234"

    def test_list_recent_is_oldest_first_and_limited(self, db):
        repo = HistoryRepo(db)
        for score in (60, 70, 80, 90):
            run_async(repo.append(_entry(score)))

        entries = run_async(repo.list_recent(limit=3))
        assert [e.score for e in entries] == [70, 80, 90]

    def test_filter_by_root(self, db):
        repo = HistoryRepo(db)
        run_async(repo.append(_entry(50, root="/a")))
        run_async(repo.append(_entry(60, root="/b")))
        run_async(repo.append(_entry(70, root="/a")))

        assert [e.score for e in run_async(repo.list_recent(root="/a"))] == [50, 70]
        assert run_async(repo.count("/b")) == 1
        assert run_async(repo.count()) == 3

    def test_clear(self, db):
        repo = HistoryRepo(db)
        run_async(repo.append(_entry(50)))
        run_async(repo.append(_entry(60)))
        assert run_async(repo.clear()) == 2
        assert run_async(repo.list_recent()) == []


class TestHistoryEntry:
    def test_from_report(self):
        violation = Violation(
            id="image-alt",
            impact=Severity.CRITICAL,
            description="d",
            help="h",
            help_url="u",
            nodes=(ViolationNode("<img>", ("img",)),),
        )
        report = create_report(
            [ScanResult(url="file:///a.html", file="/a.html", timestamp="t", violations=(violation,))],
            errors=[ScanFailure("/b.html", "boom")],
        )

        entry = HistoryEntry.from_report(report, root="/site", command="ally scan .")

        assert entry.score == 75
        assert entry.total_violations == 1
        assert entry.critical == 1
        assert entry.serious == 0
        assert entry.files_scanned == 1
        assert entry.failed == 1
        assert entry.command == "ally scan ."
        assert entry.to_dict()["root"] == "/site"
