"""FastAPI application factory."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fund_watch.api.deps import AppState, api_key_middleware
from fund_watch.api.routes import router
from fund_watch.api.schemas import ErrorResponse
from fund_watch.core.config import FundWatchConfig, load_config
from fund_watch.core.exceptions import (
    ConfigError,
    FetchError,
    FundWatchError,
    StorageError,
    StoreUnavailableError,
)
from fund_watch.runtime import build_runtime
from fund_watch.tracking.schedule import PollSchedule, run_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle."""
    config = app.state._pending_config or load_config()
    runtime = await build_runtime(
        config,
        fetcher=app.state._pending_fetcher,
        notifier=app.state._pending_notifier,
    )

    state = AppState(config=config, store=runtime.store, service=runtime.service)
    if config.schedule.enabled:
        state.scheduler_task = asyncio.create_task(
            run_scheduler(
                runtime.monitor,
                PollSchedule.from_config(config.schedule),
                state.stop_event,
            )
        )
    app.state.app_state = state

    try:
        yield
    finally:
        state.stop_event.set()
        if state.scheduler_task is not None:
            await state.scheduler_task
        await runtime.aclose()


def create_app(config: FundWatchConfig | None = None, fetcher=None, notifier=None) -> FastAPI:
    """Create and configure the FastAPI application.

    `fetcher` and `notifier` replace the HTTP page client and the
    configured notifier; tests use them to stay offline.
    """
    import fund_watch

    app = FastAPI(
        title="Fund Watch API",
        description="Meesman fund price tracking and change notifications",
        version=fund_watch.__version__,
        lifespan=lifespan,
    )

    # Stash overrides so lifespan can retrieve them
    app.state._pending_config = config
    app.state._pending_fetcher = fetcher
    app.state._pending_notifier = notifier

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # API key check; a no-op unless api.api_key is set in the loaded config
    app.middleware("http")(api_key_middleware)

    app.include_router(router, prefix="/api")

    @app.exception_handler(FundWatchError)
    async def fund_watch_exception_handler(request: Request, exc: FundWatchError):
        if isinstance(exc, ConfigError):
            status = 400
        elif isinstance(exc, StoreUnavailableError):
            status = 503
        elif isinstance(exc, FetchError):
            status = 502
        else:
            status = 500

        detail = str(exc)
        if isinstance(exc, StorageError) and status == 500:
            logger.exception("Storage failure while handling %s", request.url.path)
            detail = "Internal storage error"
        return JSONResponse(
            status_code=status,
            content=ErrorResponse(error=type(exc).__name__, detail=detail).model_dump(),
        )

    return app
