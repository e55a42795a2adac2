"""Score and summary aggregation."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from allyscan.scanner.models import (
    AllyReport,
    ReportSummary,
    ScanFailure,
    ScanResult,
    Severity,
    TopIssue,
    utc_now_iso,
)

SEVERITY_WEIGHTS: dict[Severity, int] = {
    Severity.CRITICAL: 25,
    Severity.SERIOUS: 15,
    Severity.MODERATE: 5,
    Severity.MINOR: 1,
}

# Nodes beyond this many per violation add no further penalty
MAX_NODES_PER_VIOLATION = 10

MAX_PENALTY = 100

TOP_ISSUES_LIMIT = 5


def calculate_score(results: Iterable[ScanResult]) -> int:
    """0-100 accessibility score; 100 means no violations."""
    penalty = 0
    for result in results:
        for violation in result.violations:
            weight = SEVERITY_WEIGHTS[violation.impact]
            penalty += weight * min(len(violation.nodes), MAX_NODES_PER_VIOLATION)
    penalty = min(penalty, MAX_PENALTY)
    return round(max(0, 100 - penalty))


def generate_summary(results: Sequence[ScanResult]) -> ReportSummary:
    by_severity = {severity: 0 for severity in Severity}
    # dicts keep insertion order, which gives first-seen tie-breaking below
    issues: dict[str, list] = {}
    total = 0

    for result in results:
        for violation in result.violations:
            total += 1
            by_severity[violation.impact] += 1
            entry = issues.get(violation.id)
            if entry is None:
                issues[violation.id] = [1, violation.help, violation.impact]
            else:
                entry[0] += 1

    ranked = sorted(issues.items(), key=lambda item: item[1][0], reverse=True)
    top = tuple(
        TopIssue(id=issue_id, count=count, description=help_text, severity=impact)
        for issue_id, (count, help_text, impact) in ranked[:TOP_ISSUES_LIMIT]
    )

    return ReportSummary(
        total_violations=total,
        by_severity=by_severity,
        score=calculate_score(results),
        top_issues=top,
    )


def create_report(
    results: Sequence[ScanResult],
    errors: Iterable[ScanFailure] = (),
) -> AllyReport:
    """Assemble the report for a finished run."""
    return AllyReport(
        scan_date=utc_now_iso(),
        results=tuple(results),
        summary=generate_summary(results),
        errors=tuple(errors),
    )
