"""Error taxonomy and browser-failure diagnostics."""

from __future__ import annotations

import re
from dataclasses import dataclass


class AllyError(Exception):
    """Base class for errors raised by allyscan itself."""


class ConfigError(AllyError, ValueError):
    """Invalid or unreadable configuration file."""


class NoTargetsError(AllyError):
    """A scan was requested but nothing matched."""


class BackendNotInstalledError(AllyError):
    """The selected browser-automation engine's package is not importable."""

    def __init__(self, engine: str, package: str, install_command: str) -> None:
        self.engine = engine
        self.package = package
        self.install_command = install_command
        super().__init__(
            f"The {engine} engine requires the '{package}' package, "
            f"which is not installed.\n\n"
            f"To install it, run:\n"
            f"  {install_command}\n\n"
            f"Or use the default engine:\n"
            f"  ally scan --engine playwright"
        )


class BackendLaunchError(AllyError):
    """The engine is installed but the browser could not be started."""

    def __init__(self, engine: str, browser: str, detail: str, hint: str = "") -> None:
        self.engine = engine
        self.browser = browser
        self.detail = detail
        self.hint = hint
        message = f"Failed to launch {browser} via {engine}: {detail}"
        if hint:
            message += f"\n\n{hint}"
        super().__init__(message)


class RuleEngineError(AllyError):
    """The rule-evaluation engine returned something we cannot interpret."""


@dataclass(frozen=True)
class Diagnosis:
    message: str
    suggestion: str


_BROWSER_DIAGNOSTICS: list[tuple[re.Pattern[str], Diagnosis]] = [
    (
        re.compile(r"Executable doesn't exist|Could not find (Chrome|Chromium)", re.I),
        Diagnosis(
            "Browser binary is not installed",
            "Run: playwright install chromium",
        ),
    ),
    (
        re.compile(r"net::ERR_NAME_NOT_RESOLVED|ENOTFOUND|Name or service not known", re.I),
        Diagnosis(
            "Could not resolve the host name",
            "Check the URL for typos and make sure you are online",
        ),
    ),
    (
        re.compile(r"net::ERR_CONNECTION_REFUSED|ECONNREFUSED|Connection refused", re.I),
        Diagnosis(
            "Connection refused",
            "Is the development server running? Check the port number",
        ),
    ),
    (
        re.compile(r"Timeout|timed out", re.I),
        Diagnosis(
            "The page took too long to load",
            "Increase the timeout with --timeout, or check that the page loads in a browser",
        ),
    ),
    (
        re.compile(r"Target (page, context or browser )?(has been )?closed|Protocol error", re.I),
        Diagnosis(
            "Browser crashed or was closed unexpectedly",
            "Try running the scan again. If the issue persists, lower --batch-size",
        ),
    ),
    (
        re.compile(r"EPERM|EACCES|Permission denied", re.I),
        Diagnosis(
            "Permission denied",
            "Check file permissions or try running with elevated privileges",
        ),
    ),
]


def diagnose_browser_error(error: BaseException) -> Diagnosis | None:
    """Map a browser failure onto a human explanation, or None if unknown."""
    text = f"{type(error).__name__}: {error}"
    for pattern, diagnosis in _BROWSER_DIAGNOSTICS:
        if pattern.search(text):
            return diagnosis
    return None
