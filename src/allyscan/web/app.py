"""FastAPI application factory for the ally dashboard API."""

from __future__ import annotations

from fastapi import FastAPI

from allyscan import __version__
from allyscan.config import AllyConfig
from allyscan.storage.db import get_db


async def create_app(
    config: AllyConfig | None = None,
) -> FastAPI:
    """Build and return the FastAPI application."""
    config = config or AllyConfig.load()

    app = FastAPI(
        title="ally",
        version=__version__,
        docs_url="/api/docs",
    )

    # Store config and db in app state
    app.state.config = config
    app.state.db = await get_db(config.db_path)

    # Register API routers
    from allyscan.web.api.cache import router as cache_router
    from allyscan.web.api.history import router as history_router
    from allyscan.web.api.reports import router as reports_router

    app.include_router(history_router, prefix="/api")
    app.include_router(cache_router, prefix="/api")
    app.include_router(reports_router, prefix="/api")

    @app.on_event("shutdown")
    async def shutdown() -> None:
        if hasattr(app.state, "db"):
            await app.state.db.close()

    return app
