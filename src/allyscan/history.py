"""Score history helpers — trends and git context for history entries."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from pathlib import Path

from allyscan.storage.repos import HistoryEntry

logger = logging.getLogger(__name__)

# Average score movement (points) below which a trend counts as stable
TREND_THRESHOLD = 2.0


def trend(entries: Sequence[HistoryEntry], lookback: int = 5) -> str:
    """Return "improving", "declining" or "stable" over the last ``lookback`` scans.

    Compares the average score of the older half of the window against the
    newer half.
    """
    if len(entries) < 2:
        return "stable"

    scores = [e.score for e in entries[-lookback:]]
    midpoint = len(scores) // 2
    older, newer = scores[:midpoint], scores[midpoint:]
    diff = sum(newer) / len(newer) - sum(older) / len(older)

    if diff > TREND_THRESHOLD:
        return "improving"
    if diff < -TREND_THRESHOLD:
        return "declining"
    return "stable"


def score_change(entries: Sequence[HistoryEntry]) -> int | None:
    """Score delta between the two most recent entries."""
    if len(entries) < 2:
        return None
    return entries[-1].score - entries[-2].score


def best_score(entries: Sequence[HistoryEntry]) -> int | None:
    if not entries:
        return None
    return max(e.score for e in entries)


def worst_score(entries: Sequence[HistoryEntry]) -> int | None:
    if not entries:
        return None
    return min(e.score for e in entries)


def average_score(entries: Sequence[HistoryEntry]) -> int | None:
    if not entries:
        return None
    return round(sum(e.score for e in entries) / len(entries))


def stats(entries: Sequence[HistoryEntry]) -> dict:
    return {
        "scans": len(entries),
        "latest": entries[-1].score if entries else None,
        "best": best_score(entries),
        "worst": worst_score(entries),
        "average": average_score(entries),
        "change": score_change(entries),
        "trend": trend(entries),
    }


def git_info(cwd: str | Path | None = None) -> tuple[str | None, str | None]:
    """Current (branch, short commit), or (None, None) outside a git checkout."""
    branch = _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd)
    commit = _git(["rev-parse", "--short", "HEAD"], cwd) if branch else None
    return branch, commit


def _git(args: list[str], cwd: str | Path | None) -> str | None:
    try:
        proc = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        logger.debug("git unavailable: %s", e)
        return None
    if proc.returncode != 0:
        return None
    return proc.stdout.strip() or None
