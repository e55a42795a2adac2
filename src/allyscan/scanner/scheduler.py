"""Batch scheduler — bounded concurrent scanning with a progress stream.

Targets are processed in contiguous chunks of ``batch_size``. Every target in
a chunk is scanned concurrently and the scheduler waits for the whole chunk
before starting the next one, so at most ``batch_size`` pages are open at any
time. Cache hits are resolved up front and never occupy a batch slot.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from pathlib import Path
from typing import TypeVar

from allyscan.scanner.engine import ScanEngine
from allyscan.scanner.models import BatchOutcome, ProgressEvent, ScanFailure, ScanResult
from allyscan.scanner.retry import RetryCallback, RetryPolicy, with_retry
from allyscan.scanner.standards import DEFAULT_STANDARD, Standard
from allyscan.scanner.targets import Target
from allyscan.storage.cache import ResultCache

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 4

T = TypeVar("T")

ProgressCallback = Callable[[ProgressEvent], None]


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    """Split items into contiguous chunks; the last one may be short."""
    if size < 1:
        raise ValueError(f"Chunk size must be at least 1, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class BatchScheduler:
    """Runs scans for a target list and accumulates a BatchOutcome."""

    def __init__(
        self,
        engine: ScanEngine,
        cache: ResultCache | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        retry: RetryPolicy | None = None,
        on_retry: RetryCallback | None = None,
        root: Path | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        self._engine = engine
        self._cache = cache
        self._batch_size = batch_size
        self._retry = retry or RetryPolicy()
        self._on_retry = on_retry
        self._root = root
        self.outcome = BatchOutcome()

    async def stream(
        self,
        targets: Sequence[Target],
        standard: Standard = DEFAULT_STANDARD,
    ) -> AsyncIterator[ProgressEvent]:
        """Yield one ProgressEvent per target as it finishes.

        Closing the iterator early cancels whatever is still running in the
        current batch and waits for those tasks before returning.
        """
        self.outcome = BatchOutcome(total=len(targets))
        completed = 0
        pending: list[Target] = []
        keys: dict[str, str | None] = {}

        for target in targets:
            cached, key = (
                await self._cache.lookup(target, standard) if self._cache else (None, None)
            )
            if cached is None:
                # Hashed before scanning so a mid-scan edit is never cached as current
                keys[target.identity] = key
                pending.append(target)
                continue
            self.outcome.results.append(cached)
            self.outcome.cache_hits += 1
            completed += 1
            yield self._event(completed, target, cached=True)

        if self.outcome.cache_hits:
            logger.info(
                "%d of %d targets served from cache", self.outcome.cache_hits, len(targets)
            )

        tasks: list[asyncio.Future] = []
        try:
            for index, chunk in enumerate(chunked(pending, self._batch_size)):
                logger.debug("Starting batch %d (%d targets)", index + 1, len(chunk))
                tasks = [
                    asyncio.ensure_future(
                        self._scan_one(target, standard, keys.get(target.identity))
                    )
                    for target in chunk
                ]
                # Each task reports its own target; as_completed yields fresh awaitables
                for finished in asyncio.as_completed(tasks):
                    target, result, error = await finished
                    completed += 1
                    if error is None:
                        self.outcome.results.append(result)
                        yield self._event(completed, target)
                    else:
                        self.outcome.failures.append(ScanFailure(target.identity, error))
                        yield self._event(completed, target, ok=False, error=error)
        finally:
            unfinished = [task for task in tasks if not task.done()]
            if unfinished:
                logger.debug("Cancelling %d unfinished scans", len(unfinished))
                for task in unfinished:
                    task.cancel()
                await asyncio.gather(*unfinished, return_exceptions=True)

    async def scan_all(
        self,
        targets: Sequence[Target],
        standard: Standard = DEFAULT_STANDARD,
        on_progress: ProgressCallback | None = None,
    ) -> BatchOutcome:
        """Drain ``stream()``, forwarding each event to ``on_progress``."""
        async for event in self.stream(targets, standard):
            if on_progress is not None:
                try:
                    on_progress(event)
                except Exception as exc:
                    logger.debug("Progress callback raised: %s", exc)
        return self.outcome

    async def _scan_one(
        self, target: Target, standard: Standard, staleness_key: str | None = None
    ) -> tuple[Target, ScanResult | None, str | None]:
        # Never raises: a failure is returned so siblings keep running
        try:
            result = await with_retry(
                lambda: self._engine.scan_target(target, standard),
                max_retries=self._retry.max_retries,
                base_delay=self._retry.base_delay,
                on_retry=self._retry_hook(target),
            )
        except Exception as exc:
            logger.debug("Scan failed for %s: %s", target.identity, exc)
            return target, None, _error_message(exc)

        if self._cache is not None and staleness_key is not None:
            await self._cache.put(target, standard, result, staleness_key=staleness_key)
        return target, result, None

    def _retry_hook(self, target: Target) -> Callable[[int, BaseException, float], None]:
        def hook(attempt: int, error: BaseException, delay: float) -> None:
            logger.info(
                "Retrying %s (attempt %d) in %.1fs: %s",
                target.label(self._root),
                attempt,
                delay,
                _error_message(error),
            )
            if self._on_retry is not None:
                self._on_retry(attempt, error, delay)

        return hook

    def _event(
        self,
        completed: int,
        target: Target,
        ok: bool = True,
        cached: bool = False,
        error: str = "",
    ) -> ProgressEvent:
        return ProgressEvent(
            completed=completed,
            total=self.outcome.total,
            label=target.label(self._root),
            target=target.identity,
            ok=ok,
            cached=cached,
            error=error,
        )


def _error_message(exc: BaseException) -> str:
    message = str(exc).strip()
    return message or type(exc).__name__

