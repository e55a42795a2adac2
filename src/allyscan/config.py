"""Global configuration — XDG paths, project .allyrc file, env vars, defaults.

Precedence, lowest to highest: built-in defaults, the nearest ``.allyrc*``
file, ``ALLY_*`` environment variables, then CLI flags (applied by the CLI).
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from allyscan.browser.base import BrowserName, EngineType
from allyscan.errors import ConfigError
from allyscan.scanner.standards import DEFAULT_STANDARD, Standard

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = (".allyrc.yaml", ".allyrc.yml", ".allyrc.json", ".allyrc")

REPORT_FORMATS = ("json", "sarif", "junit", "csv")

_SCAN_KEYS = {
    "standard",
    "ignore",
    "batch_size",
    "timeout",
    "engine",
    "browser",
    "retries",
    "axe_script",
    "cache",
}
_REPORT_KEYS = {"format", "output"}

_TRUTHY = {"1", "true", "yes", "on"}


def _default_data_dir() -> Path:
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "allyscan"
    return Path.home() / ".local" / "share" / "allyscan"


@dataclass
class AllyConfig:
    """Application-wide configuration."""

    data_dir: Path = field(default_factory=_default_data_dir)
    config_file: Path | None = None
    standard: Standard = DEFAULT_STANDARD
    ignore: list[str] = field(default_factory=list)
    batch_size: int = 4
    timeout: float = 30.0
    engine: EngineType = EngineType.PLAYWRIGHT
    browser: BrowserName = BrowserName.CHROMIUM
    retries: int = 3
    axe_script: Path | None = None
    cache: bool = True
    report_format: str = "json"
    report_output: Path = Path(".ally")
    web_host: str = "127.0.0.1"  # loopback only
    web_port: int = 8471

    @property
    def db_path(self) -> Path:
        return self.data_dir / "ally.db"

    @classmethod
    def load(cls, start: Path | None = None) -> AllyConfig:
        """Load config from the nearest .allyrc file and environment variables."""
        config = cls()

        path = find_config_file(start or Path.cwd())
        if path is not None:
            config.apply_file(path)

        config.apply_env(os.environ)
        return config

    def apply_file(self, path: Path) -> None:
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"Could not read {path}: {exc}") from exc

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"{path}: configuration must be a mapping")

        unknown = set(data) - {"scan", "report"}
        if unknown:
            logger.warning("%s: ignoring unknown sections: %s", path, ", ".join(sorted(unknown)))

        scan = _section(data, "scan", _SCAN_KEYS, path)
        report = _section(data, "report", _REPORT_KEYS, path)

        try:
            self._apply(scan, report, base=path.parent)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{path}: {exc}") from exc

        self.config_file = path
        logger.debug("Loaded configuration from %s", path)

    def apply_env(self, env: Mapping[str, str]) -> None:
        try:
            if env.get("ALLY_STANDARD"):
                self.standard = Standard.parse(env["ALLY_STANDARD"])
            if env.get("ALLY_BATCH_SIZE"):
                self.batch_size = _positive_int(env["ALLY_BATCH_SIZE"], "ALLY_BATCH_SIZE")
            if env.get("ALLY_TIMEOUT"):
                self.timeout = _positive_float(env["ALLY_TIMEOUT"], "ALLY_TIMEOUT")
            if env.get("ALLY_ENGINE"):
                self.engine = _engine(env["ALLY_ENGINE"])
            if env.get("ALLY_AXE_SCRIPT"):
                self.axe_script = Path(env["ALLY_AXE_SCRIPT"]).expanduser()
            if env.get("ALLY_NO_CACHE", "").lower() in _TRUTHY:
                self.cache = False
        except ValueError as exc:
            raise ConfigError(f"Invalid environment override: {exc}") from exc

    def _apply(self, scan: dict[str, Any], report: dict[str, Any], base: Path) -> None:
        if "standard" in scan:
            self.standard = Standard.parse(str(scan["standard"]))
        if "ignore" in scan:
            ignore = scan["ignore"]
            if isinstance(ignore, str):
                ignore = [ignore]
            if not isinstance(ignore, list):
                raise ValueError("scan.ignore must be a list of glob patterns")
            self.ignore = [str(p) for p in ignore]
        if "batch_size" in scan:
            self.batch_size = _positive_int(scan["batch_size"], "scan.batch_size")
        if "timeout" in scan:
            self.timeout = _positive_float(scan["timeout"], "scan.timeout")
        if "engine" in scan:
            self.engine = _engine(str(scan["engine"]))
        if "browser" in scan:
            self.browser = _browser(str(scan["browser"]))
        if "retries" in scan:
            retries = int(scan["retries"])
            if retries < 0:
                raise ValueError("scan.retries must be 0 or more")
            self.retries = retries
        if "axe_script" in scan:
            self.axe_script = (base / str(scan["axe_script"])).expanduser()
        if "cache" in scan:
            self.cache = bool(scan["cache"])

        if "format" in report:
            fmt = str(report["format"]).lower()
            if fmt not in REPORT_FORMATS:
                raise ValueError(
                    f"Invalid report.format: {fmt}. Valid options: {', '.join(REPORT_FORMATS)}"
                )
            self.report_format = fmt
        if "output" in report:
            self.report_output = Path(str(report["output"]))


def find_config_file(start: Path) -> Path | None:
    """Walk up from ``start`` and return the first .allyrc file found."""
    current = start.resolve()
    for directory in (current, *current.parents):
        for name in CONFIG_FILENAMES:
            candidate = directory / name
            if candidate.is_file():
                return candidate
    return None


def _section(data: dict, name: str, allowed: set[str], path: Path) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"{path}: '{name}' must be a mapping")
    unknown = set(section) - allowed
    if unknown:
        raise ConfigError(
            f"{path}: unknown {name} option(s): {', '.join(sorted(unknown))}. "
            f"Valid options: {', '.join(sorted(allowed))}"
        )
    return section


def _positive_int(value: Any, name: str) -> int:
    number = int(value)
    if number < 1:
        raise ValueError(f"{name} must be at least 1, got {number}")
    return number


def _positive_float(value: Any, name: str) -> float:
    number = float(value)
    if number <= 0:
        raise ValueError(f"{name} must be positive, got {number}")
    return number


def _engine(value: str) -> EngineType:
    try:
        return EngineType(value.strip().lower())
    except ValueError:
        valid = ", ".join(e.value for e in EngineType)
        raise ValueError(f"Invalid engine: {value}. Valid options: {valid}") from None


def _browser(value: str) -> BrowserName:
    try:
        return BrowserName(value.strip().lower())
    except ValueError:
        valid = ", ".join(b.value for b in BrowserName)
        raise ValueError(f"Invalid browser: {value}. Valid options: {valid}") from None

