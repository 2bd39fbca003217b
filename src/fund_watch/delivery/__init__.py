"""Delivery collaborators: notifier protocol, Discord and log notifiers."""

from fund_watch.core.config import DiscordConfig
from fund_watch.delivery.base import LogNotifier, Notifier
from fund_watch.delivery.discord import DiscordNotifier, build_message

__all__ = [
    "Notifier",
    "LogNotifier",
    "DiscordNotifier",
    "build_message",
    "create_notifier",
]


def create_notifier(config: DiscordConfig) -> DiscordNotifier | LogNotifier:
    """DiscordNotifier when a token is configured, else LogNotifier."""
    if config.token:
        return DiscordNotifier(config)
    return LogNotifier()
