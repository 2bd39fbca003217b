"""Calendar schedule for poll cycles and the loop that follows it."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from typing import Protocol
from zoneinfo import ZoneInfo

from fund_watch.core.config import ScheduleConfig
from fund_watch.core.models import ChangeResult

logger = logging.getLogger(__name__)

# A week of hourly slots is enough to reach any configured weekday.
_MAX_SLOTS = 24 * 8


class PollCycleRunner(Protocol):
    async def run_poll_cycle(self) -> list[ChangeResult]: ...


class PollSchedule:
    """Top of every hour within [start_hour, end_hour] on the given weekdays.

    Hours and weekdays are evaluated on the wall clock of `tz_name`.
    Weekdays follow datetime.weekday(): Monday is 0.
    """

    def __init__(
        self,
        weekdays: Iterable[int] = (0, 1),
        start_hour: int = 8,
        end_hour: int = 22,
        tz_name: str = "Europe/Amsterdam",
    ) -> None:
        self.weekdays = frozenset(weekdays)
        self.start_hour = start_hour
        self.end_hour = end_hour
        self.tz = ZoneInfo(tz_name)

    @classmethod
    def from_config(cls, config: ScheduleConfig) -> PollSchedule:
        return cls(
            weekdays=config.weekdays,
            start_hour=config.start_hour,
            end_hour=config.end_hour,
            tz_name=config.timezone,
        )

    def is_active(self, moment: datetime) -> bool:
        """True if `moment` falls inside the schedule window (any minute)."""
        local = _as_aware(moment).astimezone(self.tz)
        return (
            local.weekday() in self.weekdays
            and self.start_hour <= local.hour <= self.end_hour
        )

    def next_run(self, after: datetime) -> datetime:
        """First scheduled slot strictly after `after`, as an aware local datetime."""
        local = _as_aware(after).astimezone(self.tz).replace(tzinfo=None)
        candidate = local.replace(minute=0, second=0, microsecond=0)
        for _ in range(_MAX_SLOTS):
            candidate += timedelta(hours=1)
            if (
                candidate.weekday() in self.weekdays
                and self.start_hour <= candidate.hour <= self.end_hour
            ):
                return candidate.replace(tzinfo=self.tz)
        raise ValueError("Schedule has no slots")


def _as_aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def run_scheduler(
    monitor: PollCycleRunner,
    schedule: PollSchedule,
    stop_event: asyncio.Event,
    now: Callable[[], datetime] = _utcnow,
) -> None:
    """Run poll cycles on schedule until stop_event is set.

    A cycle that raises is logged; the loop carries on with the next slot.
    """
    while not stop_event.is_set():
        next_run = schedule.next_run(now())
        delay = max((next_run - now()).total_seconds(), 0.0)
        logger.info("Next poll cycle at %s", next_run.isoformat())

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay)
        except TimeoutError:
            pass
        else:
            break

        try:
            await monitor.run_poll_cycle()
        except Exception:
            logger.exception("Poll cycle failed")

    logger.info("Scheduler stopped")
