"""Backend selection and engine availability checks."""

from __future__ import annotations

import importlib.util
import logging

from allyscan.browser.base import BrowserBackend, BrowserName, EngineType
from allyscan.errors import BackendNotInstalledError

logger = logging.getLogger(__name__)

# engine → (importable module, distribution, install command)
_ENGINE_PACKAGES: dict[EngineType, tuple[str, str, str]] = {
    EngineType.PLAYWRIGHT: (
        "playwright",
        "playwright",
        "pip install playwright && playwright install chromium",
    ),
    EngineType.SELENIUM: (
        "selenium",
        "selenium",
        "pip install 'allyscan[selenium]'",
    ),
}

# Browsers each engine can drive
_SUPPORTED: dict[EngineType, frozenset[BrowserName]] = {
    EngineType.PLAYWRIGHT: frozenset(BrowserName),
    EngineType.SELENIUM: frozenset({BrowserName.CHROMIUM, BrowserName.FIREFOX}),
}


def engine_available(engine: EngineType) -> bool:
    """Whether the engine's Python package can be imported."""
    module = _ENGINE_PACKAGES[engine][0]
    return importlib.util.find_spec(module) is not None


def install_command(engine: EngineType) -> str:
    return _ENGINE_PACKAGES[engine][2]


def require_engine(engine: EngineType) -> None:
    """Raise BackendNotInstalledError if the engine's package is missing."""
    if engine_available(engine):
        return
    _, package, command = _ENGINE_PACKAGES[engine]
    logger.debug("Engine %s unavailable: %s not importable", engine.value, package)
    raise BackendNotInstalledError(engine.value, package, command)


def create_backend(
    engine: EngineType | str = EngineType.PLAYWRIGHT,
    browser: BrowserName | str = BrowserName.CHROMIUM,
    headless: bool = True,
) -> BrowserBackend:
    """Resolve an (engine, browser) pair into a backend. Nothing is launched yet."""
    engine = EngineType(engine)
    browser = BrowserName(browser)
    if browser not in _SUPPORTED[engine]:
        supported = ", ".join(sorted(b.value for b in _SUPPORTED[engine]))
        raise ValueError(
            f"The {engine.value} engine cannot drive {browser.value}. "
            f"Supported browsers: {supported}"
        )

    if engine is EngineType.SELENIUM:
        from allyscan.browser.selenium_ import SeleniumBackend

        return SeleniumBackend(browser=browser, headless=headless)

    from allyscan.browser.playwright_ import PlaywrightBackend

    return PlaywrightBackend(browser=browser, headless=headless)
