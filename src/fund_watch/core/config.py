"""Configuration loading, validation, and access."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from fund_watch.core.exceptions import ConfigError
from fund_watch.core.models import StorageBackend

DEFAULT_CONFIG_FILE = "fund-watch.yml"
_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class FetchConfig(BaseModel):
    """Fund page access configuration."""

    model_config = ConfigDict(frozen=True)

    user_agent: str = "fund-watch/0.1 (+https://github.com/fund-watch)"
    request_timeout: int = 30
    rate_limit: int = 2

    @field_validator("rate_limit")
    @classmethod
    def rate_limit_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("rate_limit must be >= 1")
        return v

    @field_validator("request_timeout")
    @classmethod
    def timeout_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("request_timeout must be >= 1")
        return v


class StorageConfig(BaseModel):
    """Storage backend configuration."""

    model_config = ConfigDict(frozen=True)

    backend: StorageBackend = StorageBackend.SQLITE
    sqlite_path: str = "./data/fund_watch.db"


class ScheduleConfig(BaseModel):
    """When the poll cycle runs.

    Weekdays follow datetime.weekday(): Monday is 0. Hours are inclusive
    and interpreted in `timezone`.
    """

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    weekdays: list[int] = [0, 1]
    start_hour: int = 8
    end_hour: int = 22
    timezone: str = "Europe/Amsterdam"

    @field_validator("weekdays", mode="before")
    @classmethod
    def weekdays_from_scalar(cls, v: object) -> object:
        # Env overrides arrive as "2" or "0,2,4"
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        if isinstance(v, int):
            return [v]
        return v

    @field_validator("weekdays")
    @classmethod
    def weekdays_valid(cls, v: list[int]) -> list[int]:
        if not v:
            raise ValueError("weekdays must not be empty")
        for day in v:
            if not 0 <= day <= 6:
                raise ValueError(f"weekdays must be between 0 and 6, got {day}")
        return sorted(set(v))

    @field_validator("start_hour", "end_hour")
    @classmethod
    def hour_valid(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError(f"hour must be between 0 and 23, got {v}")
        return v

    @field_validator("timezone")
    @classmethod
    def timezone_known(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v!r}") from e
        return v

    @model_validator(mode="after")
    def window_ordered(self) -> ScheduleConfig:
        if self.start_hour > self.end_hour:
            raise ValueError("start_hour must be <= end_hour")
        return self


class DiscordConfig(BaseModel):
    """Discord delivery configuration. Without a token, updates are only logged."""

    model_config = ConfigDict(frozen=True)

    token: str | None = None
    api_base: str = "https://discord.com/api/v10"
    request_timeout: int = 15


class APIConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 8000
    api_key: str | None = None


class FundWatchConfig(BaseModel):
    """Root configuration for the entire fund-watch system."""

    model_config = ConfigDict(frozen=True)

    fetch: FetchConfig = FetchConfig()
    storage: StorageConfig = StorageConfig()
    schedule: ScheduleConfig = ScheduleConfig()
    discord: DiscordConfig = DiscordConfig()
    api: APIConfig = APIConfig()
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def log_level_known(cls, v: str) -> str:
        upper = v.upper()
        if upper not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {v!r}")
        return upper


def load_config(
    config_path: str | None = None,
    env_prefix: str = "FUND_WATCH_",
) -> FundWatchConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables (FUND_WATCH_DISCORD__TOKEN, etc.)
    2. YAML file: config_path, else $FUND_WATCH_CONFIG, else ./fund-watch.yml
    3. Built-in defaults

    Nested keys use double-underscore in env vars:
        FUND_WATCH_SCHEDULE__START_HOUR=9  ->  schedule.start_hour = 9

    Environment values stay strings; pydantic coerces them per field.
    """
    data = _read_config_file(_find_config_file(config_path))
    _apply_env_overrides(data, env_prefix)
    try:
        return FundWatchConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def configure_logging(level: str = "INFO") -> None:
    """Set up root logging for CLI and server entry points."""
    logging.basicConfig(level=level, format=_LOG_FORMAT)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _find_config_file(explicit: str | None) -> Path | None:
    if explicit is not None:
        source, raw = "config_path", explicit
    elif os.environ.get("FUND_WATCH_CONFIG"):
        source, raw = "FUND_WATCH_CONFIG", os.environ["FUND_WATCH_CONFIG"]
    else:
        default = Path(DEFAULT_CONFIG_FILE)
        return default if default.is_file() else None

    path = Path(raw)
    if not path.is_file():
        raise ConfigError(
            f"Config file from {source} not found: {raw}",
            context={"field": source, "value": raw},
        )
    return path


def _read_config_file(path: Path | None) -> dict:
    if path is None:
        return {}
    context = {"field": "config_file", "value": str(path)}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read config file: {e}", context=context) from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML config: {e}", context=context) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"YAML config must be a mapping, got {type(data).__name__}", context=context
        )
    return data


def _apply_env_overrides(data: dict, prefix: str) -> dict:
    """Write PREFIX_SECTION__KEY variables into the nested config mapping."""
    for name, value in os.environ.items():
        if not name.startswith(prefix) or name == f"{prefix}CONFIG":
            continue
        *sections, field = name[len(prefix) :].lower().split("__")
        target = data
        for section in sections:
            target = target.setdefault(section, {})
            if not isinstance(target, dict):
                raise ConfigError(
                    f"{name} overrides {section!r}, which is not a mapping",
                    context={"field": name, "value": value},
                )
        target[field] = value
    return data
