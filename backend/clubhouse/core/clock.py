"""Clock abstraction. Services never read the system clock directly; tests inject a fixed one."""
from datetime import datetime
from typing import Protocol

import pytz

from clubhouse.config import settings


class Clock(Protocol):
    def now(self) -> datetime:
        """Current instant, timezone-aware, in the resource timezone."""
        ...


class SystemClock:
    def __init__(self, tz_name: str | None = None):
        self.tz = pytz.timezone(tz_name or settings.resource_timezone)

    def now(self) -> datetime:
        return datetime.now(pytz.utc).astimezone(self.tz)


def as_utc(value: datetime) -> datetime:
    """Normalize a stored or computed datetime to aware UTC. Naive values are assumed UTC (SQLite)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=pytz.utc)
    return value.astimezone(pytz.utc)
