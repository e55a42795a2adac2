"""REST API for scan history."""

from __future__ import annotations

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel

from allyscan import history as trends
from allyscan.storage.repos import HistoryRepo

router = APIRouter(tags=["history"])


class HistoryStats(BaseModel):
    scans: int
    latest: int | None = None
    best: int | None = None
    worst: int | None = None
    average: int | None = None
    change: int | None = None
    trend: str = "stable"


@router.get("/history")
async def list_history(
    request: Request,
    limit: int = Query(20, ge=1, le=500),
    root: str | None = None,
):
    repo = HistoryRepo(request.app.state.db)
    entries = await repo.list_recent(limit=limit, root=root)
    return [e.to_dict() for e in entries]


@router.get("/history/stats", response_model=HistoryStats)
async def history_stats(
    request: Request,
    lookback: int = Query(20, ge=1, le=500),
    root: str | None = None,
):
    repo = HistoryRepo(request.app.state.db)
    entries = await repo.list_recent(limit=lookback, root=root)
    return HistoryStats(**trends.stats(entries))
