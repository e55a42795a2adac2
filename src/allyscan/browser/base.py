"""Browser backend protocols — every automation engine must satisfy these."""

from __future__ import annotations

import enum
from typing import Any, Protocol, runtime_checkable


class EngineType(enum.Enum):
    """Browser-automation library driving the browser."""

    PLAYWRIGHT = "playwright"
    SELENIUM = "selenium"


class BrowserName(enum.Enum):
    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"


class WaitCondition(enum.Enum):
    """When a navigation counts as finished.

    NETWORKIDLE is engine-specific: Playwright waits for 500 ms without network
    connections, Selenium approximates it with document.readyState plus a quiet
    window over the resource-timing buffer. Treat it as a heuristic.
    """

    LOAD = "load"
    DOMCONTENTLOADED = "domcontentloaded"
    NETWORKIDLE = "networkidle"


@runtime_checkable
class PageHandle(Protocol):
    """A single browser page/tab, independent of its siblings."""

    async def goto(
        self,
        url: str,
        wait_until: WaitCondition = WaitCondition.LOAD,
        timeout: float = 30.0,
    ) -> None:
        """Navigate and wait for ``wait_until``. Timeout is in seconds."""
        ...

    async def set_content(
        self,
        html: str,
        wait_until: WaitCondition = WaitCondition.DOMCONTENTLOADED,
    ) -> None:
        ...

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        """Call a JavaScript function expression with ``arg`` and await its result."""
        ...

    async def add_script(self, source: str) -> None:
        """Execute raw script source in the page's global scope."""
        ...

    async def add_style(self, css: str) -> None:
        ...

    async def set_viewport(self, width: int, height: int) -> None:
        ...

    async def screenshot(self, path: str, full_page: bool = True) -> None:
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class BrowserBackend(Protocol):
    """One launched browser shared by every page of a run."""

    engine: EngineType
    browser: BrowserName

    async def launch(self) -> None:
        """Start the browser. Raises BackendNotInstalledError/BackendLaunchError."""
        ...

    async def new_page(self) -> PageHandle:
        ...

    async def close(self) -> None:
        """Shut the browser down. Safe to call more than once."""
        ...

    @property
    def is_running(self) -> bool:
        ...
