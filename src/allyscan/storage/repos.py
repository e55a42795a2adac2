"""Repository classes for async CRUD operations on SQLite."""

from __future__ import annotations

from dataclasses import asdict, dataclass

import aiosqlite

from allyscan.scanner.models import AllyReport, Severity, utc_now_iso


@dataclass(frozen=True)
class HistoryEntry:
    """One completed scan, as recorded in the history log."""

    timestamp: str
    score: int
    total_violations: int
    critical: int = 0
    serious: int = 0
    moderate: int = 0
    minor: int = 0
    files_scanned: int = 0
    failed: int = 0
    root: str = ""
    command: str = ""
    branch: str | None = None
    commit: str | None = None
    id: int | None = None

    @classmethod
    def from_report(
        cls,
        report: AllyReport,
        root: str = "",
        command: str = "",
        branch: str | None = None,
        commit: str | None = None,
    ) -> HistoryEntry:
        counts = report.summary.by_severity
        return cls(
            timestamp=utc_now_iso(),
            score=report.summary.score,
            total_violations=report.summary.total_violations,
            critical=counts[Severity.CRITICAL],
            serious=counts[Severity.SERIOUS],
            moderate=counts[Severity.MODERATE],
            minor=counts[Severity.MINOR],
            files_scanned=report.total_files,
            failed=len(report.errors),
            root=root,
            command=command,
            branch=branch,
            commit=commit,
        )

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> HistoryEntry:
        data = dict(row)
        data["commit"] = data.pop("git_commit", None)
        return cls(**data)

    def to_dict(self) -> dict:
        return asdict(self)


class HistoryRepo:
    """Append-only log of scan scores."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def append(self, entry: HistoryEntry) -> int:
        cursor = await self._db.execute(
            "INSERT INTO history "
            "(timestamp, root, score, total_violations, critical, serious, "
            "moderate, minor, files_scanned, failed, command, branch, git_commit) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                entry.timestamp,
                entry.root,
                entry.score,
                entry.total_violations,
                entry.critical,
                entry.serious,
                entry.moderate,
                entry.minor,
                entry.files_scanned,
                entry.failed,
                entry.command,
                entry.branch,
                entry.commit,
            ),
        )
        await self._db.commit()
        return cursor.lastrowid

    async def list_recent(self, limit: int = 20, root: str | None = None) -> list[HistoryEntry]:
        """Most recent entries, oldest first."""
        if root is None:
            cursor = await self._db.execute(
                "SELECT * FROM history ORDER BY id DESC LIMIT ?", (limit,)
            )
        else:
            cursor = await self._db.execute(
                "SELECT * FROM history WHERE root = ? ORDER BY id DESC LIMIT ?",
                (root, limit),
            )
        rows = [HistoryEntry.from_row(row) async for row in cursor]
        rows.reverse()
        return rows

    async def count(self, root: str | None = None) -> int:
        if root is None:
            cursor = await self._db.execute("SELECT COUNT(*) FROM history")
        else:
            cursor = await self._db.execute(
                "SELECT COUNT(*) FROM history WHERE root = ?", (root,)
            )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def clear(self) -> int:
        cursor = await self._db.execute("DELETE FROM history")
        await self._db.commit()
        return cursor.rowcount
