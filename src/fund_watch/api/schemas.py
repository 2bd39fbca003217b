"""API-specific request/response schemas (Pydantic v2)."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

from fund_watch.core.models import (
    ChangeResult,
    Instrument,
    Observation,
    PriceStatistics,
    Subscription,
)


# -- Error --


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: str
    detail: str | None = None


# -- Instruments & observations --


class InstrumentResponse(BaseModel):
    key: str
    display_name: str
    source_url: str
    identifier_code: str

    @classmethod
    def from_model(cls, instrument: Instrument) -> InstrumentResponse:
        return cls(
            key=instrument.key.value,
            display_name=instrument.display_name,
            source_url=instrument.source_url,
            identifier_code=instrument.identifier_code,
        )


class ObservationResponse(BaseModel):
    price: float
    price_date: date | None
    fetched_at: datetime
    performances: dict[str, float]
    annual_cost_ratio: float | None = None

    @classmethod
    def from_model(cls, obs: Observation) -> ObservationResponse:
        return cls(
            price=obs.price,
            price_date=obs.price_date,
            fetched_at=obs.fetched_at,
            performances={str(year): value for year, value in sorted(obs.performances.items())},
            annual_cost_ratio=obs.annual_cost_ratio,
        )


def _maybe_observation(obs: Observation | None) -> ObservationResponse | None:
    return ObservationResponse.from_model(obs) if obs is not None else None


class StatisticsResponse(BaseModel):
    count: int
    lowest: float | None = None
    highest: float | None = None
    average: float | None = None
    latest: ObservationResponse | None = None
    earliest: ObservationResponse | None = None

    @classmethod
    def from_model(cls, stats: PriceStatistics) -> StatisticsResponse:
        return cls(
            count=stats.count,
            lowest=stats.lowest,
            highest=stats.highest,
            average=stats.average,
            latest=_maybe_observation(stats.latest),
            earliest=_maybe_observation(stats.earliest),
        )


class ChangeResultResponse(BaseModel):
    instrument_key: str
    status: str
    observation: ObservationResponse | None = None
    previous: ObservationResponse | None = None
    reason: str | None = None
    delivered: int = 0
    failed_deliveries: int = 0

    @classmethod
    def from_model(cls, result: ChangeResult) -> ChangeResultResponse:
        return cls(
            instrument_key=result.instrument_key.value,
            status=result.status.value,
            observation=_maybe_observation(result.observation),
            previous=_maybe_observation(result.previous),
            reason=result.reason,
            delivered=result.delivered,
            failed_deliveries=result.failed_deliveries,
        )


class StatusResponse(BaseModel):
    instrument: InstrumentResponse
    current: ObservationResponse | None
    previous: ObservationResponse | None
    statistics: StatisticsResponse
    poll: ChangeResultResponse | None = None


# -- Subscriptions --


class SubscriptionRequest(BaseModel):
    guild_id: str = Field(..., min_length=1)
    channel_id: str = Field(..., min_length=1)


class SubscriptionResponse(BaseModel):
    instrument_key: str
    guild_id: str
    channel_id: str
    subscribed_at: datetime

    @classmethod
    def from_model(cls, sub: Subscription) -> SubscriptionResponse:
        return cls(
            instrument_key=sub.instrument_key.value,
            guild_id=sub.guild_id,
            channel_id=sub.channel_id,
            subscribed_at=sub.subscribed_at,
        )


class FollowResponse(BaseModel):
    already_subscribed: bool
    message: str


class UnfollowResponse(BaseModel):
    found: bool
    message: str


# -- Guild settings --


class PingRoleRequest(BaseModel):
    role_id: str | None = None


class PingRoleResponse(BaseModel):
    guild_id: str
    role_id: str | None


# -- Health --


class HealthResponse(BaseModel):
    status: str
    version: str
    storage_backend: str
    instruments: int
    subscriptions: int
    schedule_enabled: bool
