"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from nutrilog.api.insights import router as insights_router
from nutrilog.api.logs import router as logs_router
from nutrilog.api.schemas import SyncStatusOut
from nutrilog.app_logging import configure_logging
from nutrilog.containers import AppContainer


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        try:
            await state_container.reconciler.ensure_initial_history_loaded()
        except Exception:
            logger.exception("Initial history load failed")
        yield
        await state_container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(logs_router)
    app.include_router(insights_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/status")
    async def sync_status(request: Request) -> SyncStatusOut:
        """Return the current sync flags and last error."""
        state_container: AppContainer = request.app.state.container
        return SyncStatusOut.from_status(state_container.reconciler.status)

    return app
