"""Shared pytest fixtures for fund-watch."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from fund_watch.core.config import StorageConfig
from fund_watch.core.exceptions import DeliveryError, TransportError
from fund_watch.core.instruments import INSTRUMENTS
from fund_watch.core.models import (
    InstrumentKey,
    Observation,
    PriceNotification,
    StorageBackend,
    Subscription,
)
from fund_watch.ingestion.store import SqliteStore

_WERELDWIJD_URL = INSTRUMENTS[InstrumentKey.WERELDWIJD].source_url
_VERANTWOORD_URL = INSTRUMENTS[InstrumentKey.VERANTWOORD].source_url


def _render_fund_page(price: str, price_date: str | None = "09-01-2026", isin: str = "NL0013689110") -> str:
    """A trimmed-down fund page in the shape the fund site serves."""
    koers = f"€ {price} ({price_date})" if price_date else f"€ {price}"
    return f"""<!DOCTYPE html>
<html lang="nl">
<head>
  <title>Meesman Indexbeleggen</title>
  <style>.koers {{ font-weight: bold; }}</style>
  <script>window.dataLayer = [{{"price": "€ 1,00"}}];</script>
</head>
<body>
  <main>
    <h1>Aandelen Wereldwijd Totaal</h1>
    <div class="koers"><span>Koers</span>&nbsp;<span>{koers}</span></div>
    <p>ISIN: {isin}</p>
    <p>Lopende kosten: 0,40% per jaar</p>
    <section>
      <h2>Rendement</h2>
      <ul>
        <li>2025: 12,3%</li>
        <li>2024: 26,5%</li>
        <li>2023: 18,2%</li>
        <li>2022: -12,9%</li>
      </ul>
    </section>
  </main>
</body>
</html>"""


class FakeFetcher:
    """PageFetcher returning canned pages by URL; an exception value is raised."""

    def __init__(self, pages: dict[str, str | Exception] | None = None) -> None:
        self.pages: dict[str, str | Exception] = dict(pages or {})
        self.calls: list[str] = []

    async def fetch_text(self, url: str) -> str:
        self.calls.append(url)
        page = self.pages.get(url)
        if page is None:
            raise TransportError(f"HTTP 404 from {url}", context={"url": url, "status_code": 404})
        if isinstance(page, Exception):
            raise page
        return page


class RecordingNotifier:
    """Notifier that records every send; channels in `failing` raise DeliveryError."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = set(failing or ())
        self.sent: list[tuple[Subscription, PriceNotification]] = []
        self.closed = False

    async def send(self, subscription: Subscription, notification: PriceNotification) -> None:
        if subscription.channel_id in self.failing:
            raise DeliveryError(
                f"channel {subscription.channel_id} unreachable",
                context={"channel_id": subscription.channel_id},
            )
        self.sent.append((subscription, notification))

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
async def store():
    """An initialized in-memory SqliteStore."""
    config = StorageConfig(backend=StorageBackend.SQLITE, sqlite_path=":memory:")
    s = SqliteStore(config)
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def make_observation():
    """Factory for Observation with overridable defaults."""

    def _make(**overrides):
        defaults = dict(
            instrument_key=InstrumentKey.WERELDWIJD,
            price=96.6307,
            price_date=date(2026, 1, 9),
            fetched_at=datetime(2026, 1, 12, 9, 0, tzinfo=timezone.utc),
            performances={2025: 12.3, 2024: 26.5},
            annual_cost_ratio=0.4,
        )
        defaults.update(overrides)
        return Observation(**defaults)

    return _make


@pytest.fixture
def make_notification(make_observation):
    """Factory for PriceNotification; pass previous_price to include a prior observation."""

    def _make(price=96.6307, previous_price=None, ping_role_id=None, **obs_overrides):
        previous = None
        if previous_price is not None:
            previous = make_observation(price=previous_price, price_date=date(2026, 1, 8))
        return PriceNotification(
            instrument=INSTRUMENTS[InstrumentKey.WERELDWIJD],
            observation=make_observation(price=price, **obs_overrides),
            previous=previous,
            ping_role_id=ping_role_id,
        )

    return _make


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher(
        {
            _WERELDWIJD_URL: _render_fund_page("96,6307"),
            _VERANTWOORD_URL: _render_fund_page("31,2045", isin="NL0015000PW1"),
        }
    )


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def fund_page():
    """Renderer for fund pages: fund_page(price, price_date="09-01-2026", isin=...)."""
    return _render_fund_page


@pytest.fixture
def make_fetcher():
    """Factory for fake page fetchers: make_fetcher({url: html_or_exception})."""
    return FakeFetcher


@pytest.fixture
def make_notifier():
    """Factory for recording notifiers: make_notifier(failing={"channel"})."""
    return RecordingNotifier
