"""Tests for the scan pipeline lifecycle."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import FakeBackend, make_axe_result, make_violation, run_async

from allyscan.errors import BackendLaunchError, NoTargetsError
from allyscan.scanner.engine import ScanEngine
from allyscan.scanner.pipeline import PipelineState, ScanPipeline
from allyscan.scanner.retry import RetryPolicy
from allyscan.scanner.standards import Standard
from allyscan.scanner.targets import discover_targets
from allyscan.storage.cache import MemoryCacheStore, ResultCache

NO_WAIT = RetryPolicy(max_retries=1, base_delay=0.0)


def test_three_clean_targets(engine: ScanEngine, backend: FakeBackend, site: Path):
    targets = discover_targets(site)
    pipeline = ScanPipeline(engine, batch_size=2, retry=NO_WAIT)

    result = run_async(pipeline.run(targets, Standard.WCAG2AA))

    assert pipeline.state is PipelineState.DONE
    assert result.report.summary.score == 100
    assert result.report.summary.total_violations == 0
    assert result.report.total_files == 3
    assert backend.launches == 1
    assert backend.closes == 1


def test_score_fifty(engine: ScanEngine, backend: FakeBackend, tmp_path: Path):
    page = tmp_path / "index.html"
    page.write_text("<img><input>")
    targets = discover_targets(page)
    backend.results[targets[0].url] = make_axe_result(
        make_violation("image-alt", "critical"),
        make_violation("label", "critical"),
    )

    result = run_async(ScanPipeline(engine, retry=NO_WAIT).run(targets))

    assert result.report.summary.score == 50
    assert result.report.summary.total_violations == 2


def test_cache_primed_under_aa_misses_under_aaa(
    engine: ScanEngine, backend: FakeBackend, site: Path
):
    targets = discover_targets(site)
    cache = ResultCache(MemoryCacheStore())

    run_async(ScanPipeline(engine, cache=cache, retry=NO_WAIT).run(targets, Standard.WCAG2AA))
    again = run_async(
        ScanPipeline(engine, cache=cache, retry=NO_WAIT).run(targets, Standard.WCAG2AA)
    )
    stricter = run_async(
        ScanPipeline(engine, cache=cache, retry=NO_WAIT).run(targets, Standard.WCAG2AAA)
    )

    assert again.outcome.cache_hits == 3
    assert stricter.outcome.cache_hits == 0
    assert len(backend.visits) == 6


def test_repeat_run_is_idempotent(engine: ScanEngine, backend: FakeBackend, site: Path):
    targets = discover_targets(site)
    backend.results[targets[0].url] = make_axe_result(make_violation(nodes=3))

    first = run_async(ScanPipeline(engine, retry=NO_WAIT).run(targets))
    second = run_async(ScanPipeline(engine, retry=NO_WAIT).run(targets))

    def key(report):
        return sorted((r.identity, r.violations, r.passes) for r in report.results)

    assert key(first.report) == key(second.report)
    assert first.report.summary == second.report.summary


def test_per_target_failure_still_done(engine: ScanEngine, backend: FakeBackend, site: Path):
    targets = discover_targets(site)
    backend.failures[targets[1].url] = [ValueError("Target page crashed")]

    pipeline = ScanPipeline(engine, retry=NO_WAIT)
    result = run_async(pipeline.run(targets))

    assert pipeline.state is PipelineState.DONE
    assert result.report.total_files == 2
    assert [e.target for e in result.report.errors] == [targets[1].identity]
    assert result.outcome.processed == 3


def test_no_targets(engine: ScanEngine, backend: FakeBackend):
    pipeline = ScanPipeline(engine)
    with pytest.raises(NoTargetsError):
        run_async(pipeline.run([]))
    assert pipeline.state is PipelineState.FAILED
    assert backend.launches == 0


def test_launch_failure_closes_backend(engine: ScanEngine, backend: FakeBackend, site: Path):
    backend.launch_error = BackendLaunchError("playwright", "chromium", "missing binary")
    pipeline = ScanPipeline(engine)

    with pytest.raises(BackendLaunchError):
        run_async(pipeline.run(discover_targets(site)))

    assert pipeline.state is PipelineState.FAILED
    assert backend.closes == 1
    assert backend.visits == []


def test_progress_callback(engine: ScanEngine, site: Path):
    seen = []
    run_async(
        ScanPipeline(engine, batch_size=1).run(
            discover_targets(site), on_progress=lambda e: seen.append((e.completed, e.total))
        )
    )
    assert seen == [(1, 3), (2, 3), (3, 3)]


def test_pipeline_is_single_use(engine: ScanEngine, site: Path):
    pipeline = ScanPipeline(engine)
    run_async(pipeline.run(discover_targets(site)))
    with pytest.raises(RuntimeError):
        run_async(pipeline.run(discover_targets(site)))
