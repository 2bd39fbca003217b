"""fund_watch.core: foundation types, registry, config, and exceptions."""

from fund_watch.core.config import (
    APIConfig,
    DiscordConfig,
    FetchConfig,
    FundWatchConfig,
    ScheduleConfig,
    StorageConfig,
    configure_logging,
    load_config,
)
from fund_watch.core.exceptions import (
    ConfigError,
    DeliveryError,
    ExtractionIncompleteError,
    FetchError,
    FundWatchError,
    StorageError,
    StoreUnavailableError,
    TransportError,
)
from fund_watch.core.instruments import INSTRUMENTS, get_instrument
from fund_watch.core.models import (
    ChangeResult,
    ChangeStatus,
    ChannelId,
    DeliveryReport,
    GuildId,
    GuildSetting,
    Instrument,
    InstrumentKey,
    Observation,
    ObservationDraft,
    Performances,
    PriceNotification,
    PriceStatistics,
    RoleId,
    StatusReport,
    StorageBackend,
    Subscription,
    percentage_change,
)

__all__ = [
    # Type aliases
    "GuildId",
    "ChannelId",
    "RoleId",
    "Performances",
    # Enums
    "InstrumentKey",
    "StorageBackend",
    "ChangeStatus",
    # Instrument registry
    "Instrument",
    "INSTRUMENTS",
    "get_instrument",
    # Observation models
    "ObservationDraft",
    "Observation",
    "PriceStatistics",
    "percentage_change",
    # Subscription models
    "Subscription",
    "GuildSetting",
    # Poll & delivery models
    "ChangeResult",
    "DeliveryReport",
    "PriceNotification",
    "StatusReport",
    # Config
    "FundWatchConfig",
    "FetchConfig",
    "StorageConfig",
    "ScheduleConfig",
    "DiscordConfig",
    "APIConfig",
    "configure_logging",
    "load_config",
    # Exceptions
    "FundWatchError",
    "ConfigError",
    "FetchError",
    "TransportError",
    "ExtractionIncompleteError",
    "StorageError",
    "StoreUnavailableError",
    "DeliveryError",
]
