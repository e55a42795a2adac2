"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path

import pytest

from allyscan.browser.base import BrowserName, EngineType, WaitCondition
from allyscan.scanner.axe import AxeRunner
from allyscan.scanner.engine import ScanEngine


def make_violation(
    rule_id: str = "image-alt",
    impact: str | None = "critical",
    nodes: int = 1,
    tags: tuple[str, ...] = ("wcag2a", "wcag111"),
) -> dict:
    """A violation in axe-core's native result shape."""
    return {
        "id": rule_id,
        "impact": impact,
        "description": f"{rule_id} description",
        "help": f"{rule_id} help",
        "helpUrl": f"https://dequeuniversity.com/rules/axe/4.10/{rule_id}",
        "tags": list(tags),
        "nodes": [
            {
                "html": f"<img src='{i}.png'>",
                "target": [f"img:nth-child({i + 1})"],
                "failureSummary": "Fix any of the following: Element has no alt attribute",
            }
            for i in range(nodes)
        ],
    }


def make_axe_result(*violations: dict, passes: int = 3, incomplete: int = 0) -> dict:
    return {
        "violations": list(violations),
        "passes": [{"id": f"pass-{i}"} for i in range(passes)],
        "incomplete": [{"id": f"incomplete-{i}"} for i in range(incomplete)],
    }


class FakePage:
    """In-memory PageHandle driven by its FakeBackend's canned results."""

    def __init__(self, backend: FakeBackend) -> None:
        self._backend = backend
        self.url: str | None = None
        self.wait_until: WaitCondition | None = None
        self.html: str | None = None
        self.scripts: list[str] = []
        self.styles: list[str] = []
        self.viewport: tuple[int, int] | None = None
        self.closed = False

    async def goto(self, url, wait_until=WaitCondition.LOAD, timeout=30.0):
        self.url = url
        self.wait_until = wait_until
        self._backend.visits.append(url)
        if self._backend.on_goto is not None:
            self._backend.on_goto(url)
        # Yield so sibling scans in the same batch open their pages too
        await asyncio.sleep(self._backend.delays.get(url, 0))
        pending = self._backend.failures.get(url)
        if pending:
            raise pending.pop(0)

    async def set_content(self, html, wait_until=WaitCondition.DOMCONTENTLOADED):
        self.url = "about:blank"
        self.html = html
        self.wait_until = wait_until

    async def evaluate(self, expression, arg=None):
        self._backend.evaluations.append((self.url, arg))
        return self._backend.results.get(self.url, make_axe_result())

    async def add_script(self, source):
        self.scripts.append(source)

    async def add_style(self, css):
        self.styles.append(css)

    async def set_viewport(self, width, height):
        self.viewport = (width, height)

    async def screenshot(self, path, full_page=True):
        Path(path).write_bytes(b"\x89PNG fake")

    async def close(self):
        if not self.closed:
            self.closed = True
            self._backend.open_pages -= 1


class FakeBackend:
    """BrowserBackend double that records launches, pages and concurrency."""

    engine = EngineType.PLAYWRIGHT
    browser = BrowserName.CHROMIUM

    def __init__(self) -> None:
        self.results: dict[str, dict] = {}
        self.failures: dict[str, list[Exception]] = {}
        self.delays: dict[str, float] = {}
        self.on_goto: Callable[[str], None] | None = None
        self.launch_error: Exception | None = None
        self.visits: list[str] = []
        self.evaluations: list[tuple[str | None, object]] = []
        self.pages: list[FakePage] = []
        self.launches = 0
        self.closes = 0
        self.open_pages = 0
        self.peak_pages = 0
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def launch(self):
        self.launches += 1
        if self.launch_error is not None:
            raise self.launch_error
        self._running = True

    async def new_page(self):
        if not self._running:
            raise RuntimeError("Browser not launched")
        page = FakePage(self)
        self.pages.append(page)
        self.open_pages += 1
        self.peak_pages = max(self.peak_pages, self.open_pages)
        return page

    async def close(self):
        self.closes += 1
        self._running = False


def run_async(coro):
    """Helper to run async functions in sync tests."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def engine(backend: FakeBackend) -> ScanEngine:
    return ScanEngine(backend, AxeRunner("window.axe = {};"), timeout=5.0)


@pytest.fixture
def site(tmp_path: Path) -> Path:
    """A small static site with three pages and one ignored build artefact."""
    root = tmp_path / "site"
    (root / "blog").mkdir(parents=True)
    (root / "node_modules" / "pkg").mkdir(parents=True)
    (root / "index.html").write_text("<html><body><h1>Home</h1></body></html>")
    (root / "about.htm").write_text("<html><body><img src='a.png'></body></html>")
    (root / "blog" / "post.html").write_text("<html><body><p>Post</p></body></html>")
    (root / "node_modules" / "pkg" / "readme.html").write_text("<html></html>")
    (root / "styles.css").write_text("body {}")
    return root
