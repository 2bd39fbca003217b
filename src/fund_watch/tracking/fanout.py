"""Per-subscriber delivery of a price change."""

from __future__ import annotations

import logging

from fund_watch.core.models import (
    DeliveryReport,
    Instrument,
    Observation,
    PriceNotification,
)
from fund_watch.delivery.base import Notifier
from fund_watch.ingestion.store import StorageProtocol

logger = logging.getLogger(__name__)


class NotificationFanout:
    """Sends one price change to every channel subscribed to the instrument.

    Recipients are attempted sequentially. A failure for one recipient is
    logged and counted; the remaining recipients are still attempted.
    Store failures are not isolated and propagate to the caller.
    """

    def __init__(self, store: StorageProtocol, notifier: Notifier) -> None:
        self._store = store
        self._notifier = notifier

    async def deliver(
        self,
        instrument: Instrument,
        observation: Observation,
        previous: Observation | None = None,
    ) -> DeliveryReport:
        subscriptions = await self._store.list_subscriptions(instrument.key)
        delivered = 0
        failed = 0

        for subscription in subscriptions:
            notification = PriceNotification(
                instrument=instrument,
                observation=observation,
                previous=previous,
                ping_role_id=await self._store.get_ping_role(subscription.guild_id),
            )
            try:
                await self._notifier.send(subscription, notification)
            except Exception as exc:
                failed += 1
                logger.warning(
                    "Failed to notify channel %s (guild %s) about %s: %s",
                    subscription.channel_id,
                    subscription.guild_id,
                    instrument.key,
                    exc,
                    exc_info=True,
                )
                continue
            delivered += 1

        logger.info(
            "Notified %d/%d channels for %s",
            delivered,
            len(subscriptions),
            instrument.display_name,
        )
        return DeliveryReport(delivered=delivered, failed=failed)
