"""Tests for fund_watch.tracking.monitor (PriceMonitor)."""

from __future__ import annotations

from datetime import date

import pytest

from fund_watch.core.exceptions import ExtractionIncompleteError, StorageError, TransportError
from fund_watch.core.instruments import INSTRUMENTS
from fund_watch.core.models import ChangeStatus, InstrumentKey
from fund_watch.tracking.fanout import NotificationFanout
from fund_watch.tracking.monitor import CHANGE_THRESHOLD, PriceMonitor, is_price_change

W = InstrumentKey.WERELDWIJD
V = InstrumentKey.VERANTWOORD
WERELDWIJD_URL = INSTRUMENTS[W].source_url
VERANTWOORD_URL = INSTRUMENTS[V].source_url


@pytest.fixture
def monitor(store, fetcher, notifier) -> PriceMonitor:
    return PriceMonitor(store, fetcher, fanout=NotificationFanout(store, notifier))


# --- Change threshold ---


class TestIsPriceChange:
    def test_no_previous_is_change(self):
        assert is_price_change(None, 96.0)

    def test_below_threshold(self, make_observation):
        assert not is_price_change(make_observation(price=100.0), 100.00005)

    def test_above_threshold(self, make_observation):
        assert is_price_change(make_observation(price=100.0), 100.0002)

    def test_decrease(self, make_observation):
        assert is_price_change(make_observation(price=100.0), 99.9)

    def test_threshold_value(self):
        assert CHANGE_THRESHOLD == 0.0001


# --- fetch_observation ---


class TestFetchObservation:
    async def test_builds_observation(self, monitor):
        obs = await monitor.fetch_observation(W)
        assert obs.instrument_key == W
        assert obs.price == pytest.approx(96.6307)
        assert obs.price_date == date(2026, 1, 9)
        assert obs.annual_cost_ratio == pytest.approx(0.4)
        assert obs.performances[2025] == pytest.approx(12.3)
        assert obs.fetched_at.tzinfo is not None

    async def test_missing_price_raises(self, store, fetcher):
        fetcher.pages[WERELDWIJD_URL] = "<html><body><p>Onderhoud</p><div>later</div></body></html>"
        monitor = PriceMonitor(store, fetcher)
        with pytest.raises(ExtractionIncompleteError) as exc_info:
            await monitor.fetch_observation(W)
        assert exc_info.value.context["instrument_key"] == "wereldwijd"

    async def test_zero_price_raises(self, store, fetcher):
        fetcher.pages[WERELDWIJD_URL] = "€ 0,00 (09-01-2026)"
        with pytest.raises(ExtractionIncompleteError):
            await PriceMonitor(store, fetcher).fetch_observation(W)

    async def test_transport_error_propagates(self, store, make_fetcher):
        with pytest.raises(TransportError):
            await PriceMonitor(store, make_fetcher()).fetch_observation(W)


# --- poll_instrument ---


class TestPollInstrument:
    async def test_first_observation_is_change(self, monitor, store):
        result = await monitor.poll_instrument(W)
        assert result.status == ChangeStatus.CHANGED
        assert result.changed
        assert result.previous is None
        assert (await store.get_latest_observation(W)).price == pytest.approx(96.6307)

    async def test_same_price_unchanged(self, monitor, store):
        await monitor.poll_instrument(W)
        result = await monitor.poll_instrument(W)
        assert result.status == ChangeStatus.UNCHANGED
        assert result.observation.price == pytest.approx(96.6307)
        assert result.previous.price == pytest.approx(96.6307)
        assert (await store.get_statistics(W)).count == 1

    async def test_sub_threshold_move_not_stored(self, monitor, store, fetcher, fund_page):
        fetcher.pages[WERELDWIJD_URL] = fund_page("100,0000", "09-01-2026")
        await monitor.poll_instrument(W)
        fetcher.pages[WERELDWIJD_URL] = fund_page("100,00005", "10-01-2026")

        result = await monitor.poll_instrument(W)
        assert result.status == ChangeStatus.UNCHANGED
        assert (await store.get_statistics(W)).count == 1

    async def test_move_above_threshold_stored(self, monitor, store, fetcher, fund_page):
        fetcher.pages[WERELDWIJD_URL] = fund_page("100,0000", "09-01-2026")
        await monitor.poll_instrument(W)
        fetcher.pages[WERELDWIJD_URL] = fund_page("100,0002", "10-01-2026")

        result = await monitor.poll_instrument(W)
        assert result.status == ChangeStatus.CHANGED
        assert result.previous.price == pytest.approx(100.0)
        assert (await store.get_statistics(W)).count == 2

    async def test_change_with_same_date_overwrites(self, monitor, store, fetcher, fund_page):
        await monitor.poll_instrument(W)
        fetcher.pages[WERELDWIJD_URL] = fund_page("97,0000")

        result = await monitor.poll_instrument(W)
        assert result.status == ChangeStatus.CHANGED
        history = await store.get_observation_history(W)
        assert [o.price for o in history] == [pytest.approx(97.0)]

    async def test_fetch_failure(self, store, notifier, make_fetcher):
        fetcher = make_fetcher({WERELDWIJD_URL: TransportError("connection refused")})
        monitor = PriceMonitor(store, fetcher, fanout=NotificationFanout(store, notifier))

        result = await monitor.poll_instrument(W)
        assert result.status == ChangeStatus.FETCH_FAILED
        assert result.reason == "connection refused"
        assert result.observation is None
        assert await store.get_latest_observation(W) is None

    async def test_extraction_failure_reported(self, monitor, store, fetcher):
        fetcher.pages[WERELDWIJD_URL] = "Geen koers beschikbaar"
        result = await monitor.poll_instrument(W)
        assert result.status == ChangeStatus.FETCH_FAILED
        assert result.reason == "no price found"

    async def test_change_notifies_subscribers(self, monitor, store, notifier):
        await store.add_subscription(W, "g1", "c1")
        await store.add_subscription(V, "g1", "c2")

        result = await monitor.poll_instrument(W)
        assert result.delivered == 1
        assert result.failed_deliveries == 0
        assert [sub.channel_id for sub, _ in notifier.sent] == ["c1"]

    async def test_unchanged_does_not_notify(self, monitor, store, notifier):
        await monitor.poll_instrument(W)
        await store.add_subscription(W, "g1", "c1")
        await monitor.poll_instrument(W)
        assert notifier.sent == []

    async def test_notify_false_skips_fanout(self, monitor, store, notifier):
        await store.add_subscription(W, "g1", "c1")
        result = await monitor.poll_instrument(W, notify=False)
        assert result.status == ChangeStatus.CHANGED
        assert result.delivered == 0
        assert notifier.sent == []

    async def test_without_fanout(self, store, fetcher):
        result = await PriceMonitor(store, fetcher).poll_instrument(W)
        assert result.status == ChangeStatus.CHANGED
        assert result.delivered == 0

    async def test_notification_carries_previous(self, monitor, store, fetcher, notifier, fund_page):
        await monitor.poll_instrument(W)
        await store.add_subscription(W, "g1", "c1")
        fetcher.pages[WERELDWIJD_URL] = fund_page("97,5000", "12-01-2026")

        await monitor.poll_instrument(W)
        (_, notification) = notifier.sent[0]
        assert notification.previous.price == pytest.approx(96.6307)
        assert notification.observation.price == pytest.approx(97.5)

    async def test_page_back_to_older_date_announced_once(
        self, monitor, store, fetcher, notifier, fund_page
    ):
        await store.add_subscription(W, "g1", "c1")
        fetcher.pages[WERELDWIJD_URL] = fund_page("96,0000", "08-01-2026")
        await monitor.poll_instrument(W)
        fetcher.pages[WERELDWIJD_URL] = fund_page("97,0000", "09-01-2026")
        await monitor.poll_instrument(W)

        fetcher.pages[WERELDWIJD_URL] = fund_page("96,0000", "08-01-2026")
        statuses = [(await monitor.poll_instrument(W)).status for _ in range(3)]

        assert statuses == [ChangeStatus.CHANGED, ChangeStatus.UNCHANGED, ChangeStatus.UNCHANGED]
        assert len(notifier.sent) == 3
        latest = await store.get_latest_observation(W)
        assert (latest.price, latest.price_date) == (pytest.approx(96.0), date(2026, 1, 8))
        assert (await store.get_statistics(W)).count == 2

    async def test_storage_error_propagates(self, fetcher):
        class BrokenStore:
            async def get_latest_observation(self, key):
                raise StorageError("disk I/O error")

        with pytest.raises(StorageError):
            await PriceMonitor(BrokenStore(), fetcher).poll_instrument(W)


# --- run_poll_cycle ---


class TestPollCycle:
    async def test_polls_all_in_registry_order(self, monitor, fetcher):
        results = await monitor.run_poll_cycle()
        assert [r.instrument_key for r in results] == [W, V]
        assert fetcher.calls == [WERELDWIJD_URL, VERANTWOORD_URL]

    async def test_failure_does_not_stop_cycle(self, store, notifier, make_fetcher, fund_page):
        fetcher = make_fetcher(
            {
                WERELDWIJD_URL: TransportError("timeout"),
                VERANTWOORD_URL: fund_page("31,2045", isin="NL0015000PW1"),
            }
        )
        monitor = PriceMonitor(store, fetcher, fanout=NotificationFanout(store, notifier))

        results = await monitor.run_poll_cycle()
        assert [r.status for r in results] == [ChangeStatus.FETCH_FAILED, ChangeStatus.CHANGED]
        assert (await store.get_latest_observation(V)).price == pytest.approx(31.2045)

    async def test_delivery_failure_does_not_stop_cycle(self, store, fetcher, make_notifier):
        notifier = make_notifier(failing={"bad"})
        monitor = PriceMonitor(store, fetcher, fanout=NotificationFanout(store, notifier))
        await store.add_subscription(W, "g", "bad")
        await store.add_subscription(V, "g", "good")

        results = await monitor.run_poll_cycle()
        assert results[0].failed_deliveries == 1
        assert results[1].delivered == 1

    async def test_restricted_instruments(self, store, fetcher):
        monitor = PriceMonitor(store, fetcher, instruments={V: INSTRUMENTS[V]})
        results = await monitor.run_poll_cycle()
        assert [r.instrument_key for r in results] == [V]
        assert [i.key for i in monitor.instruments] == [V]
