"""
Booking-day time grid in the resource timezone.

A booking day starts at the opening hour of `date` and runs past midnight until closing
(02:00 the next calendar day). Points are minutes from midnight of `date`, so 00:30 after
midnight is 1470. Bookings may start up to latest_start; later points exist only so a
duration can run past midnight.
"""
from datetime import date, datetime, time, timedelta

import pytz

from clubhouse.config import Settings, settings as default_settings
from clubhouse.core.clock import Clock

MINUTES_PER_DAY = 24 * 60
# HH:MM before this hour belongs to the night after the booking date
NEXT_DAY_CUTOFF_HOUR = 6


def time_to_minutes(value: str) -> int:
    """'20:30' -> 1230, '01:00' -> 1500. Raises ValueError for anything that is not HH:MM."""
    hours, sep, minutes = (value or "").strip().partition(":")
    if not sep or not hours.isdigit() or not minutes.isdigit() or len(minutes) != 2:
        raise ValueError(f"Invalid time {value!r}. Use HH:MM.")
    h, m = int(hours), int(minutes)
    if h > 23 or m > 59:
        raise ValueError(f"Invalid time {value!r}. Use HH:MM.")
    total = h * 60 + m
    if h < NEXT_DAY_CUTOFF_HOUR:
        total += MINUTES_PER_DAY
    return total


def minutes_to_time(minutes: int) -> str:
    return f"{(minutes // 60) % 24:02d}:{minutes % 60:02d}"


class TimeGrid:
    def __init__(self, clock: Clock, settings: Settings | None = None):
        self.clock = clock
        self.settings = settings or default_settings
        self.tz = pytz.timezone(self.settings.resource_timezone)
        self.slot_minutes = self.settings.slot_minutes
        self.latest_start = time_to_minutes(self.settings.latest_start)
        self.closing = time_to_minutes(self.settings.closing_time)

    def now(self) -> datetime:
        return self.clock.now().astimezone(self.tz)

    def today(self) -> date:
        return self.now().date()

    def opening_minutes(self, day: date) -> int:
        if day.weekday() >= 5:
            return self.settings.weekend_opening_hour * 60
        return self.settings.weekday_opening_hour * 60

    def grid_points(self, day: date) -> list[int]:
        """Every slot point of the booking day, opening through the last point before closing."""
        return list(range(self.opening_minutes(day), self.closing, self.slot_minutes))

    def selectable_starts(self, day: date) -> list[int]:
        return [p for p in self.grid_points(day) if p <= self.latest_start]

    def point_datetime(self, day: date, minutes: int) -> datetime:
        """Aware datetime for a grid point; points past 24:00 land on the next calendar day."""
        naive = datetime.combine(day, time()) + timedelta(minutes=minutes)
        return self.tz.localize(naive)

    def is_past(self, day: date, minutes: int) -> bool:
        return self.point_datetime(day, minutes) < self.now()

    def is_priority_window(self, minutes: int, day: date) -> bool:
        s = self.settings
        return (
            day.weekday() in s.priority_weekdays
            and time_to_minutes(s.priority_start) <= minutes < time_to_minutes(s.priority_end)
        )

    def is_priority_active(self, minutes: int, day: date) -> bool:
        """Bar priority applies only to future dates; same-day mahjong may use a free evening."""
        return self.is_priority_window(minutes, day) and day > self.today()

    def horizon_end(self) -> date:
        return self.today() + timedelta(days=self.settings.booking_horizon_days)

    def within_horizon(self, day: date) -> bool:
        return self.today() <= day <= self.horizon_end()
