"""Default backend: Playwright's async API (Chromium, Firefox or WebKit)."""

from __future__ import annotations

import logging
from typing import Any

from allyscan.browser.base import BrowserName, EngineType, WaitCondition
from allyscan.browser.factory import require_engine
from allyscan.errors import BackendLaunchError

logger = logging.getLogger(__name__)

_CHROMIUM_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]


class PlaywrightPage:
    """PageHandle over a playwright.async_api.Page."""

    def __init__(self, page: Any) -> None:
        self._page = page

    async def goto(
        self,
        url: str,
        wait_until: WaitCondition = WaitCondition.LOAD,
        timeout: float = 30.0,
    ) -> None:
        # Playwright's wait states share our names
        await self._page.goto(url, wait_until=wait_until.value, timeout=timeout * 1000)

    async def set_content(
        self,
        html: str,
        wait_until: WaitCondition = WaitCondition.DOMCONTENTLOADED,
    ) -> None:
        await self._page.set_content(html, wait_until=wait_until.value)

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        return await self._page.evaluate(expression, arg)

    async def add_script(self, source: str) -> None:
        await self._page.evaluate(source)

    async def add_style(self, css: str) -> None:
        await self._page.add_style_tag(content=css)

    async def set_viewport(self, width: int, height: int) -> None:
        await self._page.set_viewport_size({"width": width, "height": height})

    async def screenshot(self, path: str, full_page: bool = True) -> None:
        await self._page.screenshot(path=path, full_page=full_page)

    async def close(self) -> None:
        await self._page.close()


class PlaywrightBackend:
    """Launches one Playwright browser and hands out isolated pages."""

    engine = EngineType.PLAYWRIGHT

    def __init__(
        self,
        browser: BrowserName = BrowserName.CHROMIUM,
        headless: bool = True,
    ) -> None:
        self.browser = browser
        self._headless = headless
        self._playwright: Any = None
        self._browser: Any = None

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    async def launch(self) -> None:
        if self._browser is not None:
            return
        require_engine(self.engine)
        from playwright.async_api import async_playwright

        args = _CHROMIUM_ARGS if self.browser is BrowserName.CHROMIUM else []
        try:
            self._playwright = await async_playwright().start()
            launcher = getattr(self._playwright, self.browser.value)
            self._browser = await launcher.launch(headless=self._headless, args=args)
        except Exception as exc:
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
            raise _launch_error(self.browser, exc) from exc
        logger.info("Launched %s via playwright", self.browser.value)

    async def new_page(self) -> PlaywrightPage:
        if self._browser is None:
            raise RuntimeError("Browser not launched — call launch() first")
        page = await self._browser.new_page()
        return PlaywrightPage(page)

    async def close(self) -> None:
        if self._browser is not None:
            try:
                await self._browser.close()
            finally:
                self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


def _launch_error(browser: BrowserName, exc: Exception) -> BackendLaunchError:
    message = str(exc)
    if "Executable doesn't exist" in message or "playwright install" in message:
        return BackendLaunchError(
            "playwright",
            browser.value,
            "browser binaries are not installed",
            hint=(
                f"To install them, run:\n"
                f"  playwright install {browser.value}\n\n"
                f"Or install all browsers:\n"
                f"  playwright install"
            ),
        )
    detail = message.splitlines()[0] if message else type(exc).__name__
    return BackendLaunchError("playwright", browser.value, detail)
