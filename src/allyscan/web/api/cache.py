"""REST API for the result cache."""

from __future__ import annotations

from fastapi import APIRouter, Request

from allyscan.storage.cache import ResultCache, SqliteCacheStore

router = APIRouter(tags=["cache"])


def _cache(request: Request) -> ResultCache:
    return ResultCache(SqliteCacheStore(request.app.state.db))


@router.get("/cache")
async def cache_stats(request: Request):
    stats = await _cache(request).stats()
    return stats.to_dict()


@router.delete("/cache")
async def clear_cache(request: Request):
    removed = await _cache(request).clear()
    return {"status": "cleared", "removed": removed}
