"""REST API for the most recent saved report."""

from __future__ import annotations

import json

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(tags=["reports"])


@router.get("/reports/latest")
async def latest_report(request: Request):
    path = request.app.state.config.report_output / "scan.json"
    if not path.is_file():
        return JSONResponse(
            status_code=404,
            content={"detail": "No report found. Run ally scan first."},
        )
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        return JSONResponse(
            status_code=500,
            content={"detail": f"Could not read {path.name}: {exc}"},
        )
