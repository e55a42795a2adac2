"""Tests for backend selection and engine checks."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from conftest import run_async

from allyscan.browser.base import BrowserName, EngineType
from allyscan.browser.factory import (
    create_backend,
    engine_available,
    install_command,
    require_engine,
)
from allyscan.errors import BackendLaunchError, BackendNotInstalledError

FIND_SPEC = "allyscan.browser.factory.importlib.util.find_spec"


class TestCreateBackend:
    def test_selenium_backend(self):
        backend = create_backend("selenium", "firefox")
        assert backend.engine is EngineType.SELENIUM
        assert backend.browser is BrowserName.FIREFOX
        assert not backend.is_running

    def test_selenium_cannot_drive_webkit(self):
        with pytest.raises(ValueError, match="cannot drive webkit"):
            create_backend(EngineType.SELENIUM, BrowserName.WEBKIT)

    def test_unknown_engine(self):
        with pytest.raises(ValueError):
            create_backend("puppeteer")

    def test_construction_does_not_check_package(self):
        with patch(FIND_SPEC, return_value=None):
            backend = create_backend("selenium")
        assert backend.engine is EngineType.SELENIUM


class TestEngineChecks:
    def test_available(self):
        with patch(FIND_SPEC, return_value=object()):
            assert engine_available(EngineType.SELENIUM)

    def test_unavailable(self):
        with patch(FIND_SPEC, return_value=None):
            assert not engine_available(EngineType.SELENIUM)

    def test_require_engine_names_install_command(self):
        with patch(FIND_SPEC, return_value=None):
            with pytest.raises(BackendNotInstalledError) as excinfo:
                require_engine(EngineType.SELENIUM)
        err = excinfo.value
        assert err.package == "selenium"
        assert install_command(EngineType.SELENIUM) in str(err)
        assert "--engine playwright" in str(err)

    def test_missing_package_fails_at_launch(self):
        backend = create_backend("selenium")
        with patch(FIND_SPEC, return_value=None):
            with pytest.raises(BackendNotInstalledError):
                run_async(backend.launch())
        assert not backend.is_running

    def test_pages_require_launch(self):
        backend = create_backend("selenium")
        with pytest.raises(RuntimeError, match="not launched"):
            run_async(backend.new_page())


class TestPlaywrightLaunch:
    def test_driver_start_failure_is_launch_error(self):
        pytest.importorskip("playwright.async_api")
        driver = MagicMock()
        driver.return_value.start = AsyncMock(side_effect=RuntimeError("driver exited early"))
        backend = create_backend("playwright", "chromium")

        with (
            patch(FIND_SPEC, return_value=object()),
            patch("playwright.async_api.async_playwright", driver),
        ):
            with pytest.raises(BackendLaunchError) as excinfo:
                run_async(backend.launch())

        assert excinfo.value.engine == "playwright"
        assert "driver exited early" in str(excinfo.value)
        assert not backend.is_running
