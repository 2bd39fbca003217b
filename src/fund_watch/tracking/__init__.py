"""Price tracking: change detection, fan-out, scheduling, and the command surface."""

from fund_watch.tracking.fanout import NotificationFanout
from fund_watch.tracking.monitor import CHANGE_THRESHOLD, PriceMonitor, is_price_change
from fund_watch.tracking.schedule import PollSchedule, run_scheduler
from fund_watch.tracking.service import FundService

__all__ = [
    "CHANGE_THRESHOLD",
    "FundService",
    "NotificationFanout",
    "PollSchedule",
    "PriceMonitor",
    "is_price_change",
    "run_scheduler",
]
