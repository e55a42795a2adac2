"""Scanner data models — violations, scan results, batch outcomes, reports."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

REPORT_VERSION = "1.0.0"


def utc_now_iso() -> str:
    """ISO-8601 timestamp with millisecond precision and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


class Severity(enum.Enum):
    """Violation impact as reported by the rule engine."""

    CRITICAL = "critical"
    SERIOUS = "serious"
    MODERATE = "moderate"
    MINOR = "minor"

    @classmethod
    def parse(cls, value: str | None) -> Severity:
        """Unknown or missing impact levels count as minor."""
        try:
            return cls(value)
        except ValueError:
            return cls.MINOR


@dataclass(frozen=True)
class ViolationNode:
    """One DOM location failing a rule."""

    html: str
    target: tuple[str, ...]
    failure_summary: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "html": self.html,
            "target": list(self.target),
            "failureSummary": self.failure_summary,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ViolationNode:
        return cls(
            html=str(data["html"]),
            target=tuple(str(t) for t in data["target"]),
            failure_summary=str(data.get("failureSummary", "")),
        )


@dataclass(frozen=True)
class Violation:
    """A single rule failure with the nodes it affects."""

    id: str
    impact: Severity
    description: str
    help: str
    help_url: str
    tags: tuple[str, ...] = ()
    nodes: tuple[ViolationNode, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "impact": self.impact.value,
            "description": self.description,
            "help": self.help,
            "helpUrl": self.help_url,
            "tags": list(self.tags),
            "nodes": [n.to_dict() for n in self.nodes],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Violation:
        return cls(
            id=str(data["id"]),
            impact=Severity(data["impact"]),
            description=str(data["description"]),
            help=str(data["help"]),
            help_url=str(data["helpUrl"]),
            tags=tuple(str(t) for t in data.get("tags", [])),
            nodes=tuple(ViolationNode.from_dict(n) for n in data["nodes"]),
        )


@dataclass(frozen=True)
class ScanResult:
    """Outcome of analysing one target. Immutable once created."""

    url: str
    timestamp: str
    violations: tuple[Violation, ...] = ()
    passes: int = 0
    incomplete: int = 0
    file: str | None = None

    def __post_init__(self) -> None:
        if self.passes < 0 or self.incomplete < 0:
            raise ValueError(
                f"Negative counts in scan result for {self.url}: "
                f"passes={self.passes}, incomplete={self.incomplete}"
            )

    @property
    def identity(self) -> str:
        return self.file or self.url

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"url": self.url}
        if self.file is not None:
            data["file"] = self.file
        data.update(
            {
                "timestamp": self.timestamp,
                "violations": [v.to_dict() for v in self.violations],
                "passes": self.passes,
                "incomplete": self.incomplete,
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScanResult:
        return cls(
            url=str(data["url"]),
            file=data.get("file"),
            timestamp=str(data["timestamp"]),
            violations=tuple(Violation.from_dict(v) for v in data["violations"]),
            passes=int(data["passes"]),
            incomplete=int(data["incomplete"]),
        )


@dataclass(frozen=True)
class ScanFailure:
    """A target that could not be scanned, with the final error message."""

    target: str
    error: str

    def to_dict(self) -> dict[str, str]:
        return {"path": self.target, "error": self.error}


@dataclass
class BatchOutcome:
    """Run-scoped accumulator of successes and failures. Only ever grows."""

    total: int = 0
    results: list[ScanResult] = field(default_factory=list)
    failures: list[ScanFailure] = field(default_factory=list)
    cache_hits: int = 0

    @property
    def processed(self) -> int:
        return len(self.results) + len(self.failures)

    @property
    def is_complete(self) -> bool:
        return self.processed == self.total

    @property
    def scanned(self) -> int:
        """Targets that went through the rule engine in this run."""
        return len(self.results) - self.cache_hits


@dataclass(frozen=True)
class ProgressEvent:
    """Emitted once per finished target, cached or scanned, ok or failed."""

    completed: int
    total: int
    label: str
    target: str
    ok: bool = True
    cached: bool = False
    error: str = ""


@dataclass(frozen=True)
class TopIssue:
    id: str
    count: int
    description: str
    severity: Severity

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "count": self.count,
            "description": self.description,
            "severity": self.severity.value,
        }


@dataclass(frozen=True)
class ReportSummary:
    total_violations: int
    by_severity: dict[Severity, int]
    score: int
    top_issues: tuple[TopIssue, ...] = ()

    @property
    def errors(self) -> int:
        """CI-style error count: critical + serious."""
        return self.by_severity[Severity.CRITICAL] + self.by_severity[Severity.SERIOUS]

    @property
    def warnings(self) -> int:
        return self.by_severity[Severity.MODERATE] + self.by_severity[Severity.MINOR]

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalViolations": self.total_violations,
            "bySeverity": {s.value: self.by_severity[s] for s in Severity},
            "score": self.score,
            "topIssues": [t.to_dict() for t in self.top_issues],
        }


@dataclass(frozen=True)
class AllyReport:
    """Terminal artifact of a run, handed unmodified to renderers and history."""

    scan_date: str
    results: tuple[ScanResult, ...]
    summary: ReportSummary
    errors: tuple[ScanFailure, ...] = ()
    version: str = REPORT_VERSION

    @property
    def total_files(self) -> int:
        return len(self.results)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "version": self.version,
            "scanDate": self.scan_date,
            "totalFiles": self.total_files,
            "results": [r.to_dict() for r in self.results],
            "summary": self.summary.to_dict(),
        }
        if self.errors:
            data["errors"] = [e.to_dict() for e in self.errors]
        return data
