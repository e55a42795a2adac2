"""Scan pipeline — launch, scan, aggregate, always close."""

from __future__ import annotations

import enum
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from allyscan.errors import NoTargetsError
from allyscan.scanner.engine import ScanEngine
from allyscan.scanner.models import AllyReport, BatchOutcome
from allyscan.scanner.retry import RetryCallback, RetryPolicy
from allyscan.scanner.scheduler import DEFAULT_BATCH_SIZE, BatchScheduler, ProgressCallback
from allyscan.scanner.standards import DEFAULT_STANDARD, Standard
from allyscan.scanner.summary import create_report
from allyscan.scanner.targets import Target
from allyscan.storage.cache import ResultCache

logger = logging.getLogger(__name__)


class PipelineState(enum.Enum):
    IDLE = "idle"
    LAUNCHING = "launching"
    SCANNING = "scanning"
    AGGREGATING = "aggregating"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class PipelineResult:
    report: AllyReport
    outcome: BatchOutcome


class ScanPipeline:
    """Drives one run from target list to report.

    ``DONE`` is reached even when individual targets fail; ``FAILED`` means
    the run itself could not proceed (no targets, backend never launched).
    """

    def __init__(
        self,
        engine: ScanEngine,
        cache: ResultCache | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        retry: RetryPolicy | None = None,
        on_retry: RetryCallback | None = None,
        root: Path | None = None,
    ) -> None:
        self._engine = engine
        self._scheduler = BatchScheduler(
            engine,
            cache=cache,
            batch_size=batch_size,
            retry=retry,
            on_retry=on_retry,
            root=root,
        )
        self.state = PipelineState.IDLE

    async def run(
        self,
        targets: Sequence[Target],
        standard: Standard = DEFAULT_STANDARD,
        on_progress: ProgressCallback | None = None,
    ) -> PipelineResult:
        if self.state is not PipelineState.IDLE:
            raise RuntimeError(f"Pipeline already used (state: {self.state.value})")
        if not targets:
            self.state = PipelineState.FAILED
            raise NoTargetsError("No files or URLs to scan")

        self.state = PipelineState.LAUNCHING
        try:
            await self._engine.start()
            self.state = PipelineState.SCANNING
            outcome = await self._scheduler.scan_all(targets, standard, on_progress)

            self.state = PipelineState.AGGREGATING
            report = create_report(outcome.results, outcome.failures)
        except BaseException:
            self.state = PipelineState.FAILED
            raise
        finally:
            await self._engine.close()

        self.state = PipelineState.DONE
        logger.info(
            "Scan finished: %d scanned, %d cached, %d failed, score %d",
            outcome.scanned,
            outcome.cache_hits,
            len(outcome.failures),
            report.summary.score,
        )
        return PipelineResult(report=report, outcome=outcome)
