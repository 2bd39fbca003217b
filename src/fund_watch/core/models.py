"""Pydantic data models: the system's type contracts."""

from __future__ import annotations

import re
from datetime import date, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, field_validator

# --- Type Aliases ---

GuildId = str
ChannelId = str
RoleId = str

# Years outside this range are treated as noise in page text (phone numbers,
# postcodes, founding years).
PERFORMANCE_YEAR_MIN = 2020
PERFORMANCE_YEAR_MAX = 2030

Performances = dict[int, float]

_IDENTIFIER_PATTERN = re.compile(r"^[A-Z]{2}[A-Z0-9]{9}[0-9]$")

# --- Enumerations ---


class InstrumentKey(StrEnum):
    """Funds tracked by fund-watch. Each key has exactly one registry entry."""

    WERELDWIJD = "wereldwijd"
    VERANTWOORD = "verantwoord"


class StorageBackend(StrEnum):
    """Supported storage backends."""

    SQLITE = "sqlite"


class ChangeStatus(StrEnum):
    """Outcome of polling a single instrument."""

    UNCHANGED = "unchanged"
    CHANGED = "changed"
    FETCH_FAILED = "fetch_failed"


def _check_performance_years(v: Performances) -> Performances:
    for year in v:
        if not PERFORMANCE_YEAR_MIN <= year <= PERFORMANCE_YEAR_MAX:
            raise ValueError(
                f"performance year must be in [{PERFORMANCE_YEAR_MIN}, "
                f"{PERFORMANCE_YEAR_MAX}], got {year}"
            )
    return v


# --- Instrument Models ---


class Instrument(BaseModel):
    """Static metadata for a tracked fund."""

    model_config = ConfigDict(frozen=True)

    key: InstrumentKey
    display_name: str
    source_url: str
    identifier_code: str

    @field_validator("source_url")
    @classmethod
    def url_must_be_https(cls, v: str) -> str:
        if not v.startswith("https://"):
            raise ValueError("URL must use HTTPS")
        return v

    @field_validator("identifier_code")
    @classmethod
    def identifier_format(cls, v: str) -> str:
        """Shape check only: 2-letter prefix, 9 alphanumerics, check digit."""
        if not _IDENTIFIER_PATTERN.match(v):
            raise ValueError(f"Invalid identifier code format: {v!r}")
        return v


# --- Observation Models ---


class ObservationDraft(BaseModel):
    """Whatever the extractor managed to find on a page. Every field may be absent."""

    model_config = ConfigDict(frozen=True)

    price: float | None = None
    price_date: date | None = None
    identifier_code: str | None = None
    annual_cost_ratio: float | None = None
    performances: Performances = {}

    @field_validator("performances")
    @classmethod
    def years_in_range(cls, v: Performances) -> Performances:
        return _check_performance_years(v)


class Observation(BaseModel):
    """One recorded price sample for an instrument."""

    model_config = ConfigDict(frozen=True)

    instrument_key: InstrumentKey
    price: float
    price_date: date | None = None
    fetched_at: datetime
    performances: Performances = {}
    annual_cost_ratio: float | None = None

    @field_validator("price")
    @classmethod
    def price_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"price must be positive, got {v}")
        return v

    @field_validator("annual_cost_ratio")
    @classmethod
    def cost_ratio_non_negative(cls, v: float | None) -> float | None:
        if v is not None and v < 0:
            raise ValueError(f"annual_cost_ratio cannot be negative, got {v}")
        return v

    @field_validator("performances")
    @classmethod
    def years_in_range(cls, v: Performances) -> Performances:
        return _check_performance_years(v)

    @property
    def display_date(self) -> str:
        """Price date if known, else the fetch date."""
        if self.price_date is not None:
            return self.price_date.isoformat()
        return self.fetched_at.date().isoformat()


class PriceStatistics(BaseModel):
    """Aggregate view over an instrument's stored observations.

    With zero observations only `count` is populated.
    """

    model_config = ConfigDict(frozen=True)

    count: int
    lowest: float | None = None
    highest: float | None = None
    average: float | None = None
    latest: Observation | None = None
    earliest: Observation | None = None


# --- Subscription Models ---


class Subscription(BaseModel):
    """A channel within a guild that receives updates for one instrument."""

    model_config = ConfigDict(frozen=True)

    instrument_key: InstrumentKey
    guild_id: GuildId
    channel_id: ChannelId
    subscribed_at: datetime


class GuildSetting(BaseModel):
    """Per-guild notification preferences."""

    model_config = ConfigDict(frozen=True)

    guild_id: GuildId
    ping_role_id: RoleId | None = None


# --- Poll & Delivery Models ---


class DeliveryReport(BaseModel):
    """Counts from one notification fan-out."""

    model_config = ConfigDict(frozen=True)

    delivered: int = 0
    failed: int = 0


class ChangeResult(BaseModel):
    """Outcome of polling one instrument."""

    model_config = ConfigDict(frozen=True)

    instrument_key: InstrumentKey
    status: ChangeStatus
    observation: Observation | None = None
    previous: Observation | None = None
    reason: str | None = None
    delivered: int = 0
    failed_deliveries: int = 0

    @property
    def changed(self) -> bool:
        return self.status == ChangeStatus.CHANGED


class PriceNotification(BaseModel):
    """Everything a notifier needs to render one price update."""

    model_config = ConfigDict(frozen=True)

    instrument: Instrument
    observation: Observation
    previous: Observation | None = None
    ping_role_id: RoleId | None = None

    @property
    def absolute_change(self) -> float | None:
        if self.previous is None:
            return None
        return self.observation.price - self.previous.price

    @property
    def percentage_change(self) -> float:
        if self.previous is None:
            return 0.0
        return percentage_change(self.previous.price, self.observation.price)


class StatusReport(BaseModel):
    """Current state of one instrument, as shown by status commands."""

    model_config = ConfigDict(frozen=True)

    instrument: Instrument
    current: Observation | None = None
    previous: Observation | None = None
    statistics: PriceStatistics
    poll: ChangeResult | None = None


def percentage_change(old_price: float, new_price: float) -> float:
    """Relative change from old to new, in percent. Zero when old is zero."""
    if not old_price:
        return 0.0
    return (new_price - old_price) / old_price * 100
