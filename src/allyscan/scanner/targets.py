"""Scan targets and HTML file discovery."""

from __future__ import annotations

import enum
import fnmatch
import logging
import os
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

logger = logging.getLogger(__name__)

HTML_EXTENSIONS = {".html", ".htm"}
COMPONENT_EXTENSIONS = {".jsx", ".tsx", ".vue", ".svelte"}

# Directories to always skip
_SKIP_DIRS = {
    ".git",
    ".hg",
    ".svn",
    ".ally",
    "node_modules",
    "__pycache__",
    ".mypy_cache",
    ".pytest_cache",
    ".ruff_cache",
    ".venv",
    "venv",
    ".tox",
    "dist",
    "build",
}


class TargetKind(enum.Enum):
    FILE = "file"
    URL = "url"


@dataclass(frozen=True)
class Target:
    """A file or URL submitted for analysis. Identity is the absolute path or
    the normalized URL."""

    kind: TargetKind
    identity: str

    @classmethod
    def from_path(cls, path: str | Path) -> Target:
        return cls(TargetKind.FILE, str(Path(path).resolve()))

    @classmethod
    def from_url(cls, url: str) -> Target:
        return cls(TargetKind.URL, normalize_url(url))

    @property
    def is_file(self) -> bool:
        return self.kind is TargetKind.FILE

    @property
    def path(self) -> Path | None:
        return Path(self.identity) if self.is_file else None

    @property
    def url(self) -> str:
        """The address a browser should navigate to."""
        if self.is_file:
            return Path(self.identity).as_uri()
        return self.identity

    def label(self, root: Path | None = None) -> str:
        if self.is_file and root is not None:
            try:
                return Path(self.identity).relative_to(root).as_posix()
            except ValueError:
                pass
        return self.identity


def normalize_url(url: str) -> str:
    """Lower-case scheme and host, drop the fragment, default the path to /."""
    url = url.strip()
    if "://" not in url:
        url = f"https://{url}"
    parts = urlsplit(url)
    if not parts.netloc:
        raise ValueError(f"Not a valid URL: {url}")
    path = parts.path or "/"
    return urlunsplit(
        (parts.scheme.lower(), parts.netloc.lower(), path, parts.query, "")
    )


def load_ignore_file(directory: Path, name: str = ".allyignore") -> list[str]:
    """Read glob patterns from an ignore file; blank lines and # comments skipped."""
    path = directory / name
    if not path.is_file():
        return []
    patterns: list[str] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            patterns.append(line)
    return patterns


def discover_targets(root: str | Path, ignore: Iterable[str] = ()) -> list[Target]:
    """Return HTML file targets under root (or root itself if it is a file)."""
    root = Path(root).resolve()
    if root.is_file():
        return [Target.from_path(root)]
    if not root.is_dir():
        raise FileNotFoundError(f"No such file or directory: {root}")

    patterns = list(ignore)
    found = sorted(_walk(root, patterns, HTML_EXTENSIONS))
    logger.debug("Discovered %d HTML files under %s", len(found), root)
    return [Target.from_path(p) for p in found]


def count_component_files(root: str | Path, ignore: Iterable[str] = ()) -> int:
    """Count component sources that need rendering before they can be scanned."""
    root = Path(root).resolve()
    if not root.is_dir():
        return 0
    return sum(1 for _ in _walk(root, list(ignore), COMPONENT_EXTENSIONS))


def _walk(root: Path, patterns: list[str], extensions: set[str]) -> Iterator[Path]:
    for dirpath, dirs, files in os.walk(root):
        # Prune skipped directories in-place
        dirs[:] = [
            d
            for d in dirs
            if d not in _SKIP_DIRS
            and not d.endswith(".egg-info")
            and not _is_ignored(Path(dirpath, d).relative_to(root).as_posix(), d, patterns)
        ]
        for name in files:
            path = Path(dirpath) / name
            if path.suffix.lower() not in extensions:
                continue
            if _is_ignored(path.relative_to(root).as_posix(), name, patterns):
                continue
            yield path


def _is_ignored(rel_path: str, name: str, patterns: list[str]) -> bool:
    for pattern in patterns:
        pattern = pattern.rstrip("/")
        if fnmatch.fnmatch(rel_path, pattern) or fnmatch.fnmatch(name, pattern):
            return True
        # "**/x/**" style globs from the JS world
        if pattern.startswith("**/") and fnmatch.fnmatch(rel_path, pattern[3:]):
            return True
    return False
