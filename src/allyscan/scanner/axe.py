"""axe-core invocation and normalization of its results.

This is the only module that knows axe-core's native result shape; everything
downstream works with the Violation/ViolationNode models.
"""

from __future__ import annotations

import logging
import weakref
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import requests

from allyscan.browser.base import PageHandle
from allyscan.errors import RuleEngineError
from allyscan.scanner.models import Severity, Violation, ViolationNode

logger = logging.getLogger(__name__)

AXE_VERSION = "4.10.2"
AXE_CDN_URL = f"https://cdn.jsdelivr.net/npm/axe-core@{AXE_VERSION}/axe.min.js"

_DOWNLOAD_TIMEOUT = 30

_RUN_AXE_JS = """
(tags) => {
  if (!window.axe || !window.axe.run) {
    return {error: 'axe-core is not loaded in this page'};
  }
  return window.axe.run(document, {runOnly: {type: 'tag', values: tags}});
}
"""


@dataclass(frozen=True)
class EngineResult:
    violations: tuple[Violation, ...]
    passes: int
    incomplete: int


def load_axe_source(path: str | Path | None = None, data_dir: Path | None = None) -> str:
    """Return the axe-core script.

    Resolution order: an explicit path, a copy previously downloaded into
    ``data_dir``, then a one-time download of the pinned release.
    """
    if path:
        script = Path(path).expanduser()
        if not script.is_file():
            raise RuleEngineError(f"axe-core script not found: {script}")
        return script.read_text(encoding="utf-8")

    if data_dir is None:
        raise RuleEngineError(
            "No axe-core script configured. Set ALLY_AXE_SCRIPT or scan.axe_script."
        )

    cached = data_dir / f"axe-{AXE_VERSION}.min.js"
    if cached.is_file():
        return cached.read_text(encoding="utf-8")

    logger.info("Downloading axe-core %s from %s", AXE_VERSION, AXE_CDN_URL)
    try:
        resp = requests.get(AXE_CDN_URL, timeout=_DOWNLOAD_TIMEOUT)
        resp.raise_for_status()
        source = resp.text
    except requests.RequestException as exc:
        raise RuleEngineError(
            f"Could not download axe-core {AXE_VERSION}: {exc}\n\n"
            f"Download axe.min.js manually and point ALLY_AXE_SCRIPT at it."
        ) from exc

    data_dir.mkdir(parents=True, exist_ok=True)
    cached.write_text(source, encoding="utf-8")
    return source


class AxeRunner:
    """Injects axe-core into a page (once) and runs it for a tag set."""

    def __init__(self, source: str) -> None:
        self._source = source
        self._injected: weakref.WeakSet[Any] = weakref.WeakSet()

    async def run(self, page: PageHandle, tags: Iterable[str]) -> EngineResult:
        tag_list = list(tags)
        if not tag_list:
            raise ValueError("At least one rule tag is required")

        if page not in self._injected:
            await page.add_script(self._source)
            self._injected.add(page)

        raw = await page.evaluate(_RUN_AXE_JS, tag_list)
        return normalize_results(raw)


def normalize_results(raw: Any) -> EngineResult:
    """Convert an axe-core results object into our models."""
    if not isinstance(raw, dict):
        raise RuleEngineError(f"Unexpected axe-core result type: {type(raw).__name__}")
    if raw.get("error"):
        raise RuleEngineError(f"axe-core failed: {raw['error']}")

    try:
        violations = tuple(_convert_violation(v) for v in raw.get("violations") or [])
    except (KeyError, TypeError, AttributeError) as exc:
        raise RuleEngineError(f"Malformed axe-core violation: {exc}") from exc

    return EngineResult(
        violations=violations,
        passes=len(raw.get("passes") or []),
        incomplete=len(raw.get("incomplete") or []),
    )


def _convert_violation(v: dict[str, Any]) -> Violation:
    return Violation(
        id=v["id"],
        impact=Severity.parse(v.get("impact")),
        description=v.get("description", ""),
        help=v.get("help", ""),
        help_url=v.get("helpUrl", ""),
        tags=tuple(v.get("tags") or ()),
        nodes=tuple(_convert_node(n) for n in v.get("nodes") or []),
    )


def _convert_node(n: dict[str, Any]) -> ViolationNode:
    # Targets inside shadow DOM / iframes arrive as nested selector lists
    target = tuple(t if isinstance(t, str) else " ".join(t) for t in n.get("target") or [])
    return ViolationNode(
        html=n.get("html", ""),
        target=target,
        failure_summary=n.get("failureSummary") or "",
    )
