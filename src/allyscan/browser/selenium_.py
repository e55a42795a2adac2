"""Optional backend: Selenium WebDriver (Chrome or Firefox).

Selenium's API is blocking, so every driver call is pushed to a worker thread.
A WebDriver session cannot be shared safely between threads, so each page owns
its own session; the backend itself only validates the installation and
tracks the sessions it handed out.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from allyscan.browser.base import BrowserName, EngineType, WaitCondition
from allyscan.browser.factory import require_engine
from allyscan.errors import BackendLaunchError

logger = logging.getLogger(__name__)

# Resource-timing quiet window used to approximate "network idle"
_IDLE_WINDOW_MS = 500

_READY_STATES = {
    WaitCondition.LOAD: ("complete",),
    WaitCondition.DOMCONTENTLOADED: ("interactive", "complete"),
    WaitCondition.NETWORKIDLE: ("complete",),
}

_NETWORK_QUIET_JS = """
const entries = performance.getEntriesByType('resource') || [];
const now = performance.now();
return entries.every(e => e.responseEnd > 0 && (now - e.responseEnd) > arguments[0]);
"""

_EVALUATE_JS = """
const done = arguments[arguments.length - 1];
Promise.resolve((%s)(arguments[0])).then(
  value => done({ok: true, value: value}),
  err => done({ok: false, error: String((err && err.message) || err)})
);
"""

_ADD_STYLE_JS = """
const style = document.createElement('style');
style.textContent = arguments[0];
(document.head || document.documentElement).appendChild(style);
"""

_WRITE_DOCUMENT_JS = "document.open(); document.write(arguments[0]); document.close();"


class SeleniumPage:
    """PageHandle over a dedicated WebDriver session."""

    def __init__(self, driver: Any, on_close: Any = None) -> None:
        self._driver = driver
        self._on_close = on_close
        self._script_timeout = 30.0

    async def goto(
        self,
        url: str,
        wait_until: WaitCondition = WaitCondition.LOAD,
        timeout: float = 30.0,
    ) -> None:
        await asyncio.to_thread(self._goto, url, wait_until, timeout)

    async def set_content(
        self,
        html: str,
        wait_until: WaitCondition = WaitCondition.DOMCONTENTLOADED,
    ) -> None:
        await asyncio.to_thread(self._set_content, html, wait_until)

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        outcome = await asyncio.to_thread(
            self._driver.execute_async_script, _EVALUATE_JS % expression, arg
        )
        if not isinstance(outcome, dict) or not outcome.get("ok"):
            error = outcome.get("error") if isinstance(outcome, dict) else outcome
            raise RuntimeError(f"Script evaluation failed: {error}")
        return outcome.get("value")

    async def add_script(self, source: str) -> None:
        await asyncio.to_thread(self._driver.execute_script, source)

    async def add_style(self, css: str) -> None:
        await asyncio.to_thread(self._driver.execute_script, _ADD_STYLE_JS, css)

    async def set_viewport(self, width: int, height: int) -> None:
        # Window size, not viewport size: browser chrome eats a few pixels
        await asyncio.to_thread(self._driver.set_window_size, width, height)

    async def screenshot(self, path: str, full_page: bool = True) -> None:
        await asyncio.to_thread(self._screenshot, path, full_page)

    async def close(self) -> None:
        try:
            await asyncio.to_thread(self._driver.quit)
        finally:
            if self._on_close is not None:
                self._on_close(self)

    def _goto(self, url: str, wait_until: WaitCondition, timeout: float) -> None:
        self._driver.set_page_load_timeout(timeout)
        self._driver.set_script_timeout(timeout)
        self._script_timeout = timeout
        self._driver.get(url)
        self._wait(wait_until, timeout)

    def _set_content(self, html: str, wait_until: WaitCondition) -> None:
        self._driver.get("about:blank")
        self._driver.execute_script(_WRITE_DOCUMENT_JS, html)
        self._wait(wait_until, self._script_timeout)

    def _wait(self, wait_until: WaitCondition, timeout: float) -> None:
        from selenium.webdriver.support.ui import WebDriverWait

        states = _READY_STATES[wait_until]
        waiter = WebDriverWait(self._driver, timeout)
        waiter.until(lambda d: d.execute_script("return document.readyState") in states)
        if wait_until is WaitCondition.NETWORKIDLE:
            waiter.until(lambda d: d.execute_script(_NETWORK_QUIET_JS, _IDLE_WINDOW_MS) is True)

    def _screenshot(self, path: str, full_page: bool) -> None:
        # Only geckodriver supports full-page capture
        if full_page and hasattr(self._driver, "save_full_page_screenshot"):
            self._driver.save_full_page_screenshot(path)
        else:
            self._driver.save_screenshot(path)


class SeleniumBackend:
    """Validates the Selenium installation and opens one session per page."""

    engine = EngineType.SELENIUM

    def __init__(
        self,
        browser: BrowserName = BrowserName.CHROMIUM,
        headless: bool = True,
    ) -> None:
        if browser is BrowserName.WEBKIT:
            raise ValueError("The selenium engine cannot drive webkit")
        self.browser = browser
        self._headless = headless
        self._running = False
        self._pages: set[SeleniumPage] = set()

    @property
    def is_running(self) -> bool:
        return self._running

    async def launch(self) -> None:
        if self._running:
            return
        require_engine(self.engine)
        try:
            trial = await asyncio.to_thread(self._start_driver)
        except Exception as exc:
            message = str(exc).strip()
            raise BackendLaunchError(
                "selenium",
                self.browser.value,
                message.splitlines()[0] if message else type(exc).__name__,
                hint=(
                    "Make sure the browser itself is installed. "
                    "Selenium Manager downloads the matching driver on first use."
                ),
            ) from exc
        await asyncio.to_thread(trial.quit)
        self._running = True
        logger.info("Launched %s via selenium", self.browser.value)

    async def new_page(self) -> SeleniumPage:
        if not self._running:
            raise RuntimeError("Browser not launched — call launch() first")
        driver = await asyncio.to_thread(self._start_driver)
        page = SeleniumPage(driver, on_close=self._pages.discard)
        self._pages.add(page)
        return page

    async def close(self) -> None:
        pages = list(self._pages)
        self._pages.clear()
        for page in pages:
            try:
                await page.close()
            except Exception as exc:
                logger.debug("Error closing selenium session: %s", exc)
        self._running = False

    def _start_driver(self) -> Any:
        from selenium import webdriver

        if self.browser is BrowserName.FIREFOX:
            options = webdriver.FirefoxOptions()
            if self._headless:
                options.add_argument("-headless")
            options.page_load_strategy = "eager"
            return webdriver.Firefox(options=options)

        options = webdriver.ChromeOptions()
        if self._headless:
            options.add_argument("--headless=new")
        options.add_argument("--no-sandbox")
        options.add_argument("--disable-dev-shm-usage")
        options.page_load_strategy = "eager"
        return webdriver.Chrome(options=options)
