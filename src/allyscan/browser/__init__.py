"""Browser-automation backends behind a single page/browser contract."""

from allyscan.browser.base import (
    BrowserBackend,
    BrowserName,
    EngineType,
    PageHandle,
    WaitCondition,
)
from allyscan.browser.factory import create_backend, engine_available

__all__ = [
    "BrowserBackend",
    "BrowserName",
    "EngineType",
    "PageHandle",
    "WaitCondition",
    "create_backend",
    "engine_available",
]
