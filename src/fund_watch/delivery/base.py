"""Notifier protocol and the log-only fallback."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from fund_watch.core.models import PriceNotification, Subscription
from fund_watch.delivery.formatting import render_text

logger = logging.getLogger(__name__)


@runtime_checkable
class Notifier(Protocol):
    """Delivers one rendered price update to one subscribed channel.

    Implementations raise on failure; the fan-out isolates each recipient.
    """

    async def send(
        self, subscription: Subscription, notification: PriceNotification
    ) -> None: ...

    async def close(self) -> None: ...


class LogNotifier:
    """Writes updates to the log instead of a chat platform."""

    async def send(
        self, subscription: Subscription, notification: PriceNotification
    ) -> None:
        logger.info(
            "Update for guild %s channel %s:\n%s",
            subscription.guild_id,
            subscription.channel_id,
            render_text(notification),
        )

    async def close(self) -> None:
        return None
