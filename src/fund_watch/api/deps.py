"""Dependency injection for FastAPI routes."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from fastapi import Request
from fastapi.responses import JSONResponse

from fund_watch.core.config import FundWatchConfig
from fund_watch.ingestion.store import SqliteStore
from fund_watch.tracking.service import FundService


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan."""

    config: FundWatchConfig
    store: SqliteStore
    service: FundService
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)
    scheduler_task: asyncio.Task | None = None


def get_app_state(request: Request) -> AppState:
    """Dependency: retrieve AppState from the request."""
    return request.app.state.app_state


def get_config(request: Request) -> FundWatchConfig:
    """Dependency: retrieve config."""
    return request.app.state.app_state.config


def get_store(request: Request) -> SqliteStore:
    """Dependency: retrieve storage backend."""
    return request.app.state.app_state.store


def get_service(request: Request) -> FundService:
    """Dependency: retrieve the command surface."""
    return request.app.state.app_state.service


EXEMPT_PATHS = {"/api/health"}


async def api_key_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware: validate X-API-Key header when authentication is enabled."""
    if request.url.path in EXEMPT_PATHS:
        return await call_next(request)

    config = request.app.state.app_state.config
    if config.api.api_key:
        api_key = request.headers.get("X-API-Key")
        if api_key != config.api.api_key:
            return JSONResponse(
                status_code=401,
                content={"error": "Unauthorized", "detail": "Invalid or missing API key"},
            )
    return await call_next(request)
