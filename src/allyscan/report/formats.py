"""Report renderers: JSON, SARIF 2.1.0, JUnit XML and CSV.

All renderers are pure functions of an AllyReport; file paths are shown
relative to ``root`` (the working directory by default).
"""

from __future__ import annotations

import csv
import io
import json
import logging
import os
import xml.etree.ElementTree as ET
from pathlib import Path

from allyscan import __version__
from allyscan.scanner.models import AllyReport, ScanResult, Severity

logger = logging.getLogger(__name__)

SARIF_SCHEMA = (
    "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/master/"
    "Schemata/sarif-schema-2.1.0.json"
)

CSV_HEADERS = ["file", "violation_id", "impact", "description", "selector", "wcag", "help_url"]

# Renderer output file per format, next to the always-written scan.json
_EXTENSIONS = {"sarif": "sarif", "junit": "xml", "csv": "csv"}

_SARIF_LEVELS = {
    Severity.CRITICAL: "error",
    Severity.SERIOUS: "error",
    Severity.MODERATE: "warning",
    Severity.MINOR: "note",
}


def to_json(report: AllyReport, indent: int | None = 2) -> str:
    return json.dumps(report.to_dict(), indent=indent)


def to_sarif(report: AllyReport, root: Path | None = None) -> str:
    """SARIF 2.1.0 log: one rule per violation id, one result per node."""
    rules: list[dict] = []
    rule_index: dict[str, int] = {}
    results: list[dict] = []

    for result in report.results:
        location = _display_path(result, root)
        for violation in result.violations:
            if violation.id not in rule_index:
                rule_index[violation.id] = len(rules)
                rules.append(
                    {
                        "id": violation.id,
                        "name": violation.id,
                        "shortDescription": {"text": violation.help},
                        "fullDescription": {"text": violation.description},
                        "helpUri": violation.help_url,
                        "defaultConfiguration": {"level": _SARIF_LEVELS[violation.impact]},
                        "properties": {"tags": list(violation.tags)},
                    }
                )
            for node in violation.nodes:
                results.append(
                    {
                        "ruleId": violation.id,
                        "ruleIndex": rule_index[violation.id],
                        "level": _SARIF_LEVELS[violation.impact],
                        "message": {"text": f"{violation.help}. {node.failure_summary}".strip()},
                        "locations": [
                            {
                                "physicalLocation": {
                                    "artifactLocation": {
                                        "uri": location,
                                        "uriBaseId": "%SRCROOT%",
                                    },
                                    # axe-core reports DOM nodes, not source lines
                                    "region": {"startLine": 1, "snippet": {"text": node.html}},
                                }
                            }
                        ],
                    }
                )

    log = {
        "$schema": SARIF_SCHEMA,
        "version": "2.1.0",
        "runs": [
            {
                "tool": {
                    "driver": {
                        "name": "ally",
                        "version": __version__,
                        "rules": rules,
                    }
                },
                "results": results,
            }
        ],
    }
    return json.dumps(log, indent=2)


def to_junit(report: AllyReport, root: Path | None = None) -> str:
    """JUnit XML with one failing testcase per affected node."""
    suites = ET.Element("testsuites", name="ally-a11y")
    suite = ET.SubElement(suites, "testsuite", name="accessibility")
    count = 0

    for result in report.results:
        location = _display_path(result, root)
        for violation in result.violations:
            wcag = ", ".join(t for t in violation.tags if t.startswith("wcag"))
            for node in violation.nodes:
                count += 1
                case = ET.SubElement(
                    suite,
                    "testcase",
                    name=violation.id,
                    classname=violation.impact.value,
                    time="0",
                )
                failure = ET.SubElement(
                    case,
                    "failure",
                    message=f"{violation.help}. {node.failure_summary}".strip(),
                    type=violation.impact.value,
                )
                failure.text = (
                    f"File: {location}\n"
                    f"Selector: {' > '.join(node.target)}\n"
                    f"HTML: {node.html}\n"
                    f"WCAG: {wcag}\n"
                    f"Help: {violation.help_url}"
                )

    for element in (suites, suite):
        element.set("tests", str(count))
        element.set("failures", str(count))
        element.set("errors", "0")
        element.set("time", "0")
    suite.set("skipped", "0")

    ET.indent(suites, space="  ")
    body = ET.tostring(suites, encoding="unicode")
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + body


def to_csv(report: AllyReport, root: Path | None = None) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for result in report.results:
        location = _display_path(result, root)
        for violation in result.violations:
            wcag = "; ".join(t for t in violation.tags if t.startswith("wcag"))
            for node in violation.nodes:
                writer.writerow(
                    [
                        location,
                        violation.id,
                        violation.impact.value,
                        violation.help,
                        " > ".join(node.target),
                        wcag,
                        violation.help_url,
                    ]
                )
    return buf.getvalue()


def render(report: AllyReport, fmt: str, root: Path | None = None) -> str:
    if fmt == "json":
        return to_json(report)
    if fmt == "sarif":
        return to_sarif(report, root)
    if fmt == "junit":
        return to_junit(report, root)
    if fmt == "csv":
        return to_csv(report, root)
    raise ValueError(f"Unknown report format: {fmt}")


def save_report(
    report: AllyReport,
    output_dir: str | Path,
    fmt: str = "json",
    root: Path | None = None,
) -> list[Path]:
    """Write scan.json (always) plus the file for ``fmt``; returns written paths."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    written = [output_dir / "scan.json"]
    written[0].write_text(to_json(report), encoding="utf-8")

    if fmt != "json":
        path = output_dir / f"scan.{_EXTENSIONS[fmt]}"
        path.write_text(render(report, fmt, root), encoding="utf-8")
        written.append(path)

    logger.debug("Wrote report files: %s", ", ".join(str(p) for p in written))
    return written


def _display_path(result: ScanResult, root: Path | None) -> str:
    if result.file is None:
        return result.url
    base = root or Path.cwd()
    try:
        return Path(os.path.relpath(result.file, base)).as_posix()
    except ValueError:
        # Different drive on Windows
        return result.file
