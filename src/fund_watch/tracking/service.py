"""Command surface consumed by the CLI and the REST API.

Every method returns plain data; rendering is the front end's job.
"""

from __future__ import annotations

import logging

from fund_watch.core.instruments import get_instrument
from fund_watch.core.models import (
    ChangeResult,
    InstrumentKey,
    Observation,
    StatusReport,
    Subscription,
)
from fund_watch.ingestion.store import StorageProtocol
from fund_watch.tracking.monitor import PriceMonitor

logger = logging.getLogger(__name__)


class FundService:
    """Follow/unfollow, status, history, ping roles, and manual checks."""

    def __init__(self, store: StorageProtocol, monitor: PriceMonitor) -> None:
        self._store = store
        self._monitor = monitor

    async def follow(
        self, key: InstrumentKey, guild_id: str, channel_id: str
    ) -> bool:
        """Subscribe a channel. Returns False if it was already subscribed."""
        added = await self._store.add_subscription(key, guild_id, channel_id)
        if added:
            logger.info("Channel %s in guild %s now follows %s", channel_id, guild_id, key)
        return added

    async def unfollow(
        self, key: InstrumentKey, guild_id: str, channel_id: str
    ) -> bool:
        """Unsubscribe a channel. Returns False if it was not subscribed."""
        removed = await self._store.remove_subscription(key, guild_id, channel_id)
        if removed:
            logger.info("Channel %s in guild %s unfollowed %s", channel_id, guild_id, key)
        return removed

    async def status(self, key: InstrumentKey, refresh: bool = True) -> StatusReport:
        """Current stored state of an instrument.

        With refresh, polls the page first through the normal poll path, so
        a change found here is persisted and announced like a scheduled one.
        """
        poll: ChangeResult | None = None
        if refresh:
            poll = await self._monitor.poll_instrument(key)

        return StatusReport(
            instrument=get_instrument(key),
            current=await self._store.get_latest_observation(key),
            previous=await self._store.get_previous_observation(key),
            statistics=await self._store.get_statistics(key),
            poll=poll,
        )

    async def history(self, key: InstrumentKey, limit: int = 10) -> list[Observation]:
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        return await self._store.get_observation_history(key, limit)

    async def subscriptions(
        self, key: InstrumentKey | None = None
    ) -> list[Subscription]:
        return await self._store.list_subscriptions(key)

    async def set_ping_role(self, guild_id: str, role_id: str | None) -> None:
        await self._store.set_ping_role(guild_id, role_id)
        logger.info("Ping role for guild %s set to %s", guild_id, role_id)

    async def get_ping_role(self, guild_id: str) -> str | None:
        return await self._store.get_ping_role(guild_id)

    async def check(self) -> list[ChangeResult]:
        """Run one poll cycle now."""
        return await self._monitor.run_poll_cycle()
