from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo

from studio_scheduler.core import config

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    """Current naive local time, optionally read in the configured zone."""
    if config.SCHEDULER_TIME_ZONE:
        return datetime.now(ZoneInfo(config.SCHEDULER_TIME_ZONE)).replace(tzinfo=None)
    return datetime.now()


def fixed_clock(moment: datetime) -> Clock:
    return lambda: moment
