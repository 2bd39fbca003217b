"""Discord delivery over the REST API (no gateway connection)."""

from __future__ import annotations

import logging

import httpx

from fund_watch.core.config import DiscordConfig
from fund_watch.core.exceptions import DeliveryError
from fund_watch.core.models import PriceNotification, Subscription
from fund_watch.delivery.formatting import (
    ACCENT_COLOR,
    headline,
    performance_line,
    price_lines,
)

logger = logging.getLogger(__name__)

_MESSAGES_PATH = "/channels/{channel_id}/messages"


def build_message(notification: PriceNotification) -> dict:
    """Discord message payload: one embed, plus a role mention if configured."""
    embed: dict = {
        "title": headline(notification),
        "url": notification.instrument.source_url,
        "color": ACCENT_COLOR,
        "description": "\n".join(price_lines(notification)),
        "footer": {"text": f"ISIN: {notification.instrument.identifier_code}"},
    }
    perf = performance_line(notification.observation.performances)
    if perf:
        embed["fields"] = [{"name": "Rendement", "value": perf, "inline": False}]

    message: dict = {"embeds": [embed], "allowed_mentions": {"parse": []}}
    if notification.ping_role_id:
        message["content"] = f"<@&{notification.ping_role_id}>"
        message["allowed_mentions"] = {"roles": [notification.ping_role_id]}
    return message


class DiscordNotifier:
    """Posts price updates to Discord channels with a bot token.

    Use via `async with DiscordNotifier(...) as notifier:`.
    """

    def __init__(
        self,
        config: DiscordConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not config.token:
            raise ValueError("DiscordNotifier requires discord.token to be set")
        self._client = httpx.AsyncClient(
            base_url=config.api_base,
            headers={"Authorization": f"Bot {config.token}"},
            timeout=httpx.Timeout(config.request_timeout),
            transport=transport,
        )

    async def __aenter__(self) -> DiscordNotifier:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def send(
        self, subscription: Subscription, notification: PriceNotification
    ) -> None:
        """Post one update.

        Raises:
            DeliveryError: Network error or non-2xx response.
        """
        path = _MESSAGES_PATH.format(channel_id=subscription.channel_id)
        try:
            response = await self._client.post(path, json=build_message(notification))
        except httpx.HTTPError as e:
            raise DeliveryError(
                f"Failed to reach Discord for channel {subscription.channel_id}: {e}",
                context={"channel_id": subscription.channel_id, "error": str(e)},
            ) from e

        if response.is_success:
            return
        raise DeliveryError(
            f"Discord returned HTTP {response.status_code} "
            f"for channel {subscription.channel_id}",
            context={
                "channel_id": subscription.channel_id,
                "status_code": response.status_code,
                "response_body": response.text[:500],
            },
        )
