"""Price change detection: one poll per instrument, one cycle over all of them."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Protocol

from fund_watch.core.exceptions import ExtractionIncompleteError, FetchError
from fund_watch.core.instruments import INSTRUMENTS
from fund_watch.core.models import (
    ChangeResult,
    ChangeStatus,
    DeliveryReport,
    Instrument,
    InstrumentKey,
    Observation,
)
from fund_watch.ingestion.extractor import PageExtractor
from fund_watch.ingestion.store import StorageProtocol
from fund_watch.tracking.fanout import NotificationFanout

logger = logging.getLogger(__name__)

# Prices carry four decimals; anything smaller is float round-trip noise.
CHANGE_THRESHOLD = 0.0001


class PageFetcher(Protocol):
    async def fetch_text(self, url: str) -> str: ...


def is_price_change(previous: Observation | None, new_price: float) -> bool:
    """True if there is no prior observation or the price moved by at least CHANGE_THRESHOLD."""
    if previous is None:
        return True
    return abs(new_price - previous.price) >= CHANGE_THRESHOLD


class PriceMonitor:
    """Fetches fund pages, detects price changes, persists and announces them.

    Instruments are polled strictly one after another. Fetch and extraction
    failures are reported as FETCH_FAILED results and never abort a cycle;
    storage failures propagate.

    Polls never overlap: a single poll and a whole cycle each hold the
    monitor lock.
    """

    def __init__(
        self,
        store: StorageProtocol,
        fetcher: PageFetcher,
        fanout: NotificationFanout | None = None,
        extractor: PageExtractor | None = None,
        instruments: dict[InstrumentKey, Instrument] | None = None,
    ) -> None:
        self._store = store
        self._fetcher = fetcher
        self._fanout = fanout
        self._extractor = extractor or PageExtractor()
        self._instruments = instruments if instruments is not None else INSTRUMENTS
        self._lock = asyncio.Lock()

    @property
    def instruments(self) -> list[Instrument]:
        return list(self._instruments.values())

    async def fetch_observation(self, key: InstrumentKey) -> Observation:
        """Fetch and extract the current observation for one instrument.

        Raises:
            TransportError: The page could not be fetched.
            ExtractionIncompleteError: The page had no recognizable price.
        """
        instrument = self._instruments[key]
        raw = await self._fetcher.fetch_text(instrument.source_url)
        draft = self._extractor.extract(raw, key)

        if draft.price is None or draft.price <= 0:
            raise ExtractionIncompleteError(
                "no price found",
                context={
                    "instrument_key": str(key),
                    "url": instrument.source_url,
                    "reason": "price",
                },
            )

        if draft.identifier_code and draft.identifier_code != instrument.identifier_code:
            logger.debug(
                "Page for %s shows identifier %s (registry: %s)",
                key,
                draft.identifier_code,
                instrument.identifier_code,
            )

        return Observation(
            instrument_key=key,
            price=draft.price,
            price_date=draft.price_date,
            fetched_at=datetime.now(timezone.utc),
            performances=draft.performances,
            annual_cost_ratio=draft.annual_cost_ratio,
        )

    async def poll_instrument(
        self, key: InstrumentKey, notify: bool = True
    ) -> ChangeResult:
        """Poll one instrument; persist and announce the observation if the price changed."""
        async with self._lock:
            return await self._poll(key, notify)

    async def _poll(self, key: InstrumentKey, notify: bool) -> ChangeResult:
        instrument = self._instruments[key]
        logger.info("Checking for price updates for %s", instrument.display_name)

        try:
            observation = await self.fetch_observation(key)
        except FetchError as exc:
            logger.warning("Fetch failed for %s: %s", instrument.display_name, exc)
            return ChangeResult(
                instrument_key=key,
                status=ChangeStatus.FETCH_FAILED,
                reason=str(exc),
            )

        previous = await self._store.get_latest_observation(key)
        if not is_price_change(previous, observation.price):
            logger.info(
                "No price change for %s (%.4f)", instrument.display_name, observation.price
            )
            return ChangeResult(
                instrument_key=key,
                status=ChangeStatus.UNCHANGED,
                observation=observation,
                previous=previous,
            )

        logger.info(
            "%s price changed: %s -> %.4f",
            instrument.display_name,
            f"{previous.price:.4f}" if previous is not None else "N/A",
            observation.price,
        )
        await self._store.upsert_observation(observation)

        report = DeliveryReport()
        if notify and self._fanout is not None:
            report = await self._fanout.deliver(instrument, observation, previous)

        return ChangeResult(
            instrument_key=key,
            status=ChangeStatus.CHANGED,
            observation=observation,
            previous=previous,
            delivered=report.delivered,
            failed_deliveries=report.failed,
        )

    async def run_poll_cycle(self) -> list[ChangeResult]:
        """Poll every instrument in registry order."""
        results = []
        async with self._lock:
            for key in self._instruments:
                results.append(await self._poll(key, notify=True))

        changed = sum(1 for r in results if r.status == ChangeStatus.CHANGED)
        failed = sum(1 for r in results if r.status == ChangeStatus.FETCH_FAILED)
        logger.info(
            "Poll cycle complete: %d instruments, %d changed, %d failed",
            len(results),
            changed,
            failed,
        )
        return results
