"""Wiring of store, fetcher, notifier, monitor and service for the entry points."""

from __future__ import annotations

from dataclasses import dataclass

from fund_watch.core.config import FundWatchConfig
from fund_watch.delivery import Notifier, create_notifier
from fund_watch.ingestion.client import PageClient
from fund_watch.ingestion.store import SqliteStore, create_store
from fund_watch.tracking.fanout import NotificationFanout
from fund_watch.tracking.monitor import PageFetcher, PriceMonitor
from fund_watch.tracking.service import FundService


@dataclass
class Runtime:
    config: FundWatchConfig
    store: SqliteStore
    notifier: Notifier
    monitor: PriceMonitor
    service: FundService
    client: PageClient | None = None
    owns_notifier: bool = True

    async def aclose(self) -> None:
        """Close the page client and owned notifier, then the store."""
        try:
            if self.owns_notifier:
                await self.notifier.close()
            if self.client is not None:
                await self.client.close()
        finally:
            await self.store.close()


async def build_runtime(
    config: FundWatchConfig,
    fetcher: PageFetcher | None = None,
    notifier: Notifier | None = None,
) -> Runtime:
    """Open the store and assemble the pipeline.

    Injected collaborators are used as-is and are left open by aclose().
    """
    store = await create_store(config.storage)
    client = PageClient(config.fetch) if fetcher is None else None
    sender = notifier if notifier is not None else create_notifier(config.discord)
    monitor = PriceMonitor(
        store,
        fetcher if fetcher is not None else client,
        fanout=NotificationFanout(store, sender),
    )
    return Runtime(
        config=config,
        store=store,
        notifier=sender,
        monitor=monitor,
        service=FundService(store, monitor),
        client=client,
        owns_notifier=notifier is None,
    )
