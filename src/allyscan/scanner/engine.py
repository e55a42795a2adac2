"""Scan engine — runs axe-core against one target on a shared browser."""

from __future__ import annotations

import asyncio
import enum
import logging
from pathlib import Path
from urllib.parse import quote

from allyscan.browser.base import BrowserBackend, WaitCondition
from allyscan.scanner.axe import AxeRunner
from allyscan.scanner.models import ScanResult, utc_now_iso
from allyscan.scanner.standards import DEFAULT_STANDARD, Standard
from allyscan.scanner.targets import Target

logger = logging.getLogger(__name__)

# Default page load timeout in seconds
DEFAULT_TIMEOUT = 30.0

_SIMULATION_VIEWPORT = (1280, 800)


class ColorBlindness(enum.Enum):
    PROTANOPIA = "protanopia"
    DEUTERANOPIA = "deuteranopia"
    TRITANOPIA = "tritanopia"


# feColorMatrix values per simulated deficiency
_COLOR_MATRICES = {
    ColorBlindness.PROTANOPIA: (
        "0.567 0.433 0 0 0 0.558 0.442 0 0 0 0 0.242 0.758 0 0 0 0 0 1 0"
    ),
    ColorBlindness.DEUTERANOPIA: (
        "0.625 0.375 0 0 0 0.7 0.3 0 0 0 0 0.3 0.7 0 0 0 0 0 1 0"
    ),
    ColorBlindness.TRITANOPIA: (
        "0.95 0.05 0 0 0 0 0.433 0.567 0 0 0 0.475 0.525 0 0 0 0 0 1 0"
    ),
}


class ScanEngine:
    """Analyses individual targets on one launched backend.

    The backend is launched once by ``start()`` and shared by every page; each
    scan opens and closes its own page.
    """

    def __init__(
        self,
        backend: BrowserBackend,
        runner: AxeRunner,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.backend = backend
        self._runner = runner
        self._timeout = timeout

    async def start(self) -> None:
        await self.backend.launch()

    async def close(self) -> None:
        await self.backend.close()

    async def __aenter__(self) -> ScanEngine:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def scan_target(
        self, target: Target, standard: Standard = DEFAULT_STANDARD
    ) -> ScanResult:
        """Load a file or URL and return its scan result."""
        # Files settle on load; live pages may keep fetching after it
        wait_until = WaitCondition.LOAD if target.is_file else WaitCondition.NETWORKIDLE
        page = await self.backend.new_page()
        try:
            await page.goto(target.url, wait_until=wait_until, timeout=self._timeout)
            result = await self._runner.run(page, standard.tags)
        finally:
            await page.close()

        logger.debug(
            "Scanned %s: %d violations, %d passes",
            target.identity,
            len(result.violations),
            result.passes,
        )
        return ScanResult(
            url=target.url,
            file=target.identity if target.is_file else None,
            timestamp=utc_now_iso(),
            violations=result.violations,
            passes=result.passes,
            incomplete=result.incomplete,
        )

    async def scan_html(
        self,
        html: str,
        identifier: str = "inline",
        standard: Standard = DEFAULT_STANDARD,
    ) -> ScanResult:
        """Scan a markup string without touching the filesystem."""
        page = await self.backend.new_page()
        try:
            await asyncio.wait_for(
                page.set_content(html, wait_until=WaitCondition.DOMCONTENTLOADED),
                timeout=self._timeout,
            )
            result = await self._runner.run(page, standard.tags)
        finally:
            await page.close()

        return ScanResult(
            url=identifier,
            file=identifier,
            timestamp=utc_now_iso(),
            violations=result.violations,
            passes=result.passes,
            incomplete=result.incomplete,
        )

    async def simulate_color_blindness(
        self,
        url: str,
        kind: ColorBlindness,
        output_path: str | Path,
    ) -> Path:
        """Screenshot a page as seen with a colour-vision deficiency."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        page = await self.backend.new_page()
        try:
            await page.set_viewport(*_SIMULATION_VIEWPORT)
            await page.goto(url, wait_until=WaitCondition.NETWORKIDLE, timeout=self._timeout)
            await page.add_style(color_filter_css(kind))
            # Let the filter paint before capturing
            await asyncio.sleep(0.1)
            await page.screenshot(str(output_path), full_page=True)
        finally:
            await page.close()

        logger.info("Saved %s simulation to %s", kind.value, output_path)
        return output_path


def color_filter_css(kind: ColorBlindness) -> str:
    svg = (
        '<svg xmlns="http://www.w3.org/2000/svg">'
        f'<filter id="{kind.value}">'
        f'<feColorMatrix type="matrix" values="{_COLOR_MATRICES[kind]}"/>'
        "</filter></svg>"
    )
    data_uri = "data:image/svg+xml," + quote(svg)
    return f"html {{ filter: url('{data_uri}#{kind.value}'); }}"
