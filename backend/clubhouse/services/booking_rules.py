"""
Creation-time booking rules. Pure: reads only its arguments and the grid's clock.

Checks run in a fixed order (parse, horizon, past, range, duration limit, operating hours)
and the first failure is raised as ValidationFailed with a reason constant from core.errors.
"""
import logging
from datetime import date

from clubhouse.core.constants import ResourceType
from clubhouse.core.errors import (
    REASON_DURATION_LIMIT,
    REASON_HORIZON,
    REASON_INVALID_PARTY_SIZE,
    REASON_INVALID_RANGE,
    REASON_INVALID_TIME,
    REASON_INVALID_TYPE,
    REASON_OUTSIDE_HOURS,
    REASON_PAST,
    ValidationFailed,
)
from clubhouse.services.time_grid import TimeGrid, time_to_minutes

logger = logging.getLogger(__name__)


def parse_slot_time(grid: TimeGrid, value: str) -> int:
    try:
        minutes = time_to_minutes(value)
    except ValueError as e:
        raise ValidationFailed(REASON_INVALID_TIME, str(e)) from e
    if minutes % grid.slot_minutes:
        raise ValidationFailed(
            REASON_INVALID_TIME, f"{value} is not on the {grid.slot_minutes}-minute grid"
        )
    return minutes


def max_duration_minutes(grid: TimeGrid, resource_type: str, party_size: int) -> int | None:
    """Duration cap for a booking, or None when uncapped."""
    s = grid.settings
    if resource_type == ResourceType.BAR and party_size < s.bar_small_party_size:
        return s.bar_small_party_max_minutes
    return None


def validate_create(
    grid: TimeGrid,
    day: date,
    start: str,
    end: str,
    resource_type: str,
    party_size: int,
) -> tuple[int, int]:
    """Validate a new booking request. Returns (start_minutes, end_minutes) on success."""
    if resource_type not in ResourceType.ALL:
        raise ValidationFailed(REASON_INVALID_TYPE, f"Unknown resource type {resource_type!r}")
    if party_size is None or party_size < 1:
        raise ValidationFailed(REASON_INVALID_PARTY_SIZE, "Party size must be at least 1")
    start_m = parse_slot_time(grid, start)
    end_m = parse_slot_time(grid, end)

    if not grid.within_horizon(day):
        logger.warning("Rejected booking for %s: outside %s..%s", day, grid.today(), grid.horizon_end())
        raise ValidationFailed(
            REASON_HORIZON,
            f"Bookings are open from {grid.today()} through {grid.horizon_end()}",
        )
    if grid.is_past(day, start_m):
        raise ValidationFailed(REASON_PAST, f"{start} on {day} has already passed")
    if end_m <= start_m:
        raise ValidationFailed(REASON_INVALID_RANGE, "End time must be after start time")
    cap = max_duration_minutes(grid, resource_type, party_size)
    if cap is not None and end_m - start_m > cap:
        raise ValidationFailed(
            REASON_DURATION_LIMIT,
            f"Bar bookings under {grid.settings.bar_small_party_size} guests are limited to {cap // 60} hours",
        )
    if start_m not in grid.selectable_starts(day) or end_m > grid.closing:
        raise ValidationFailed(REASON_OUTSIDE_HOURS, f"{start}-{end} is outside opening hours on {day}")
    return start_m, end_m
