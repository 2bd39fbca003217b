"""FastAPI route definitions for the fund-watch API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

import fund_watch
from fund_watch.api.deps import get_config, get_service, get_store
from fund_watch.api.schemas import (
    ChangeResultResponse,
    FollowResponse,
    HealthResponse,
    InstrumentResponse,
    ObservationResponse,
    PingRoleRequest,
    PingRoleResponse,
    StatisticsResponse,
    StatusResponse,
    SubscriptionRequest,
    SubscriptionResponse,
    UnfollowResponse,
)
from fund_watch.core.instruments import INSTRUMENTS, get_instrument
from fund_watch.core.models import InstrumentKey
from fund_watch.ingestion.store import SqliteStore
from fund_watch.tracking.service import FundService

router = APIRouter()


# -- Health --


@router.get("/health", response_model=HealthResponse)
async def health_check(
    store: SqliteStore = Depends(get_store),
    config=Depends(get_config),
):
    """System health and basic statistics."""
    return HealthResponse(
        status="ok" if await store.health_check() else "degraded",
        version=fund_watch.__version__,
        storage_backend=config.storage.backend.value,
        instruments=len(INSTRUMENTS),
        subscriptions=await store.count_subscriptions(),
        schedule_enabled=config.schedule.enabled,
    )


# -- Instruments --


@router.get("/instruments", response_model=list[InstrumentResponse])
async def list_instruments():
    """All tracked funds."""
    return [InstrumentResponse.from_model(i) for i in INSTRUMENTS.values()]


@router.get("/instruments/{key}/status", response_model=StatusResponse)
async def instrument_status(
    key: InstrumentKey,
    refresh: bool = Query(False, description="Poll the fund page before answering"),
    service: FundService = Depends(get_service),
):
    """Latest stored price and statistics.

    With refresh=true the fund page is polled first through the normal poll
    path: a changed price is stored and announced to subscribers.
    """
    report = await service.status(key, refresh=refresh)
    return StatusResponse(
        instrument=InstrumentResponse.from_model(report.instrument),
        current=ObservationResponse.from_model(report.current) if report.current else None,
        previous=ObservationResponse.from_model(report.previous) if report.previous else None,
        statistics=StatisticsResponse.from_model(report.statistics),
        poll=ChangeResultResponse.from_model(report.poll) if report.poll else None,
    )


@router.get("/instruments/{key}/history", response_model=list[ObservationResponse])
async def instrument_history(
    key: InstrumentKey,
    limit: int = Query(10, ge=1, le=500),
    service: FundService = Depends(get_service),
):
    """Recorded prices, most recent first."""
    history = await service.history(key, limit=limit)
    return [ObservationResponse.from_model(o) for o in history]


# -- Subscriptions --


@router.post("/instruments/{key}/subscriptions", response_model=FollowResponse)
async def follow_instrument(
    key: InstrumentKey,
    request: SubscriptionRequest,
    service: FundService = Depends(get_service),
):
    """Subscribe a channel to price updates."""
    name = get_instrument(key).display_name
    added = await service.follow(key, request.guild_id, request.channel_id)
    if added:
        message = f"Channel now follows price updates for {name}."
    else:
        message = f"Channel already follows price updates for {name}."
    return FollowResponse(already_subscribed=not added, message=message)


@router.delete("/instruments/{key}/subscriptions", response_model=UnfollowResponse)
async def unfollow_instrument(
    key: InstrumentKey,
    guild_id: str = Query(..., min_length=1),
    channel_id: str = Query(..., min_length=1),
    service: FundService = Depends(get_service),
):
    """Unsubscribe a channel from price updates."""
    name = get_instrument(key).display_name
    removed = await service.unfollow(key, guild_id, channel_id)
    if removed:
        message = f"Channel no longer follows price updates for {name}."
    else:
        message = f"Channel was not following price updates for {name}."
    return UnfollowResponse(found=removed, message=message)


@router.get("/subscriptions", response_model=list[SubscriptionResponse])
async def list_subscriptions(
    instrument: InstrumentKey | None = Query(None),
    service: FundService = Depends(get_service),
):
    """All subscriptions, optionally for one instrument."""
    subs = await service.subscriptions(instrument)
    return [SubscriptionResponse.from_model(s) for s in subs]


# -- Guild settings --


@router.get("/guilds/{guild_id}/ping-role", response_model=PingRoleResponse)
async def get_ping_role(
    guild_id: str,
    service: FundService = Depends(get_service),
):
    return PingRoleResponse(guild_id=guild_id, role_id=await service.get_ping_role(guild_id))


@router.put("/guilds/{guild_id}/ping-role", response_model=PingRoleResponse)
async def set_ping_role(
    guild_id: str,
    request: PingRoleRequest,
    service: FundService = Depends(get_service),
):
    """Set the role mentioned in this guild's updates; null clears it."""
    await service.set_ping_role(guild_id, request.role_id)
    return PingRoleResponse(guild_id=guild_id, role_id=request.role_id)


# -- Manual check --


@router.post("/check", response_model=list[ChangeResultResponse])
async def run_check(service: FundService = Depends(get_service)):
    """Run one poll cycle now."""
    results = await service.check()
    return [ChangeResultResponse.from_model(r) for r in results]
