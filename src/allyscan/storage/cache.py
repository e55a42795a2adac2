"""Result cache — skip files whose content has not changed since last scan.

Entries are keyed by (target identity, standard). The staleness key is the
SHA-256 of the file's bytes, so a touched-but-unchanged file still hits. URL
targets have no staleness key and are never cached.

The cache is advisory: every failure mode (missing entry, changed file,
unreadable file, corrupt record, store error) is a miss, never an exception.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import aiosqlite

from allyscan.scanner.models import ScanResult
from allyscan.scanner.standards import Standard
from allyscan.scanner.targets import Target

logger = logging.getLogger(__name__)

_HASH_CHUNK = 1 << 16


@dataclass(frozen=True)
class CacheEntry:
    identity: str
    standard: str
    staleness_key: str
    result_json: str
    cached_at: float


@dataclass(frozen=True)
class CacheStats:
    entries: int
    targets: int
    standards: dict[str, int]
    oldest: float | None = None
    newest: float | None = None

    def to_dict(self) -> dict:
        return {
            "entries": self.entries,
            "targets": self.targets,
            "standards": dict(self.standards),
            "oldest": self.oldest,
            "newest": self.newest,
        }


class CacheStore(Protocol):
    """Storage behind ResultCache."""

    async def load(self, identity: str, standard: str) -> CacheEntry | None: ...

    async def save(self, entry: CacheEntry) -> None: ...

    async def delete(self, identity: str) -> int: ...

    async def clear(self) -> int: ...

    async def entries(self) -> list[CacheEntry]: ...


class MemoryCacheStore:
    """Process-local store; nothing survives the run."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], CacheEntry] = {}

    async def load(self, identity: str, standard: str) -> CacheEntry | None:
        return self._entries.get((identity, standard))

    async def save(self, entry: CacheEntry) -> None:
        self._entries[(entry.identity, entry.standard)] = entry

    async def delete(self, identity: str) -> int:
        keys = [k for k in self._entries if k[0] == identity]
        for key in keys:
            del self._entries[key]
        return len(keys)

    async def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    async def entries(self) -> list[CacheEntry]:
        return list(self._entries.values())


class SqliteCacheStore:
    """Store backed by the ``cache_entries`` table (see storage.db)."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def load(self, identity: str, standard: str) -> CacheEntry | None:
        cursor = await self._db.execute(
            "SELECT identity, standard, staleness_key, result_json, cached_at "
            "FROM cache_entries WHERE identity = ? AND standard = ?",
            (identity, standard),
        )
        row = await cursor.fetchone()
        return CacheEntry(*tuple(row)) if row else None

    async def save(self, entry: CacheEntry) -> None:
        await self._db.execute(
            "INSERT OR REPLACE INTO cache_entries "
            "(identity, standard, staleness_key, result_json, cached_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                entry.identity,
                entry.standard,
                entry.staleness_key,
                entry.result_json,
                entry.cached_at,
            ),
        )
        await self._db.commit()

    async def delete(self, identity: str) -> int:
        cursor = await self._db.execute(
            "DELETE FROM cache_entries WHERE identity = ?", (identity,)
        )
        await self._db.commit()
        return cursor.rowcount

    async def clear(self) -> int:
        cursor = await self._db.execute("DELETE FROM cache_entries")
        await self._db.commit()
        return cursor.rowcount

    async def entries(self) -> list[CacheEntry]:
        cursor = await self._db.execute(
            "SELECT identity, standard, staleness_key, result_json, cached_at "
            "FROM cache_entries ORDER BY identity, standard"
        )
        return [CacheEntry(*tuple(row)) async for row in cursor]


def hash_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(_HASH_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


class ResultCache:
    """(target, standard) → ScanResult, invalidated by file content."""

    def __init__(self, store: CacheStore) -> None:
        self._store = store
        self.hits = 0
        self.misses = 0

    async def get(self, target: Target, standard: Standard) -> ScanResult | None:
        result, _ = await self.lookup(target, standard)
        return result

    async def lookup(
        self, target: Target, standard: Standard
    ) -> tuple[ScanResult | None, str | None]:
        """Return the cached result (or None) and the file's current staleness key.

        A caller that scans on a miss should hand the key back to ``put`` so
        the entry describes the bytes that existed before the scan started.
        """
        key = await _staleness_key(target)
        result = await self._lookup(target, standard, key)
        if result is None:
            self.misses += 1
        else:
            self.hits += 1
        return result, key

    async def put(
        self,
        target: Target,
        standard: Standard,
        result: ScanResult,
        staleness_key: str | None = None,
    ) -> None:
        key = staleness_key or await _staleness_key(target)
        if key is None:
            return
        entry = CacheEntry(
            identity=target.identity,
            standard=standard.value,
            staleness_key=key,
            result_json=json.dumps(result.to_dict()),
            cached_at=time.time(),
        )
        try:
            await self._store.save(entry)
        except Exception as exc:
            logger.warning("Could not write cache entry for %s: %s", target.identity, exc)

    async def clear(self) -> int:
        return await self._store.clear()

    async def stats(self) -> CacheStats:
        entries = await self._store.entries()
        standards: dict[str, int] = {}
        for entry in entries:
            standards[entry.standard] = standards.get(entry.standard, 0) + 1
        times = [e.cached_at for e in entries]
        return CacheStats(
            entries=len(entries),
            targets=len({e.identity for e in entries}),
            standards=standards,
            oldest=min(times) if times else None,
            newest=max(times) if times else None,
        )

    async def prune(self) -> int:
        """Drop entries for files that no longer exist. Returns rows removed."""
        removed = 0
        gone = {e.identity for e in await self._store.entries() if not Path(e.identity).exists()}
        for identity in sorted(gone):
            removed += await self._store.delete(identity)
        if removed:
            logger.info("Pruned %d cache entries for %d missing files", removed, len(gone))
        return removed

    async def _lookup(
        self, target: Target, standard: Standard, key: str | None
    ) -> ScanResult | None:
        if key is None:
            return None
        try:
            entry = await self._store.load(target.identity, standard.value)
        except Exception as exc:
            logger.warning("Cache read failed for %s: %s", target.identity, exc)
            return None
        if entry is None or entry.staleness_key != key:
            return None
        try:
            return ScanResult.from_dict(json.loads(entry.result_json))
        except (ValueError, KeyError, TypeError) as exc:
            logger.debug("Discarding malformed cache entry for %s: %s", target.identity, exc)
            return None


async def _staleness_key(target: Target) -> str | None:
    if not target.is_file:
        return None
    try:
        return await asyncio.to_thread(hash_file, Path(target.identity))
    except OSError as exc:
        logger.debug("Cannot hash %s: %s", target.identity, exc)
        return None
