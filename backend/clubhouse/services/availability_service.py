"""
Per-slot availability for one resource type on one booking day.

Precedence per grid point: past > blocked > booked (own type) > booked (other shared-room type)
> restricted (mahjong during active bar priority) > available. Read-only.
"""
from dataclasses import dataclass
from datetime import date
from typing import Iterable

from sqlalchemy.orm import Session

from clubhouse.config import Settings
from clubhouse.core.clock import Clock
from clubhouse.core.constants import ReservationStatus, ResourceType, SlotStatus
from clubhouse.core.errors import REASON_INVALID_TYPE, ValidationFailed
from clubhouse.db.repository import ClubRepository
from clubhouse.services.booking_rules import max_duration_minutes
from clubhouse.services.time_grid import TimeGrid, minutes_to_time, time_to_minutes


@dataclass(frozen=True)
class SlotState:
    minutes: int
    time: str
    status: str
    selectable: bool  # may start a booking here


def _intervals(rows) -> list[tuple[int, int]]:
    return [(time_to_minutes(r.start_time), time_to_minutes(r.end_time)) for r in rows]


def _covered(point: int, intervals: list[tuple[int, int]]) -> bool:
    return any(start <= point < end for start, end in intervals)


def _other_shared_type(resource_type: str) -> str | None:
    if resource_type == ResourceType.BAR:
        return ResourceType.MAHJONG
    if resource_type == ResourceType.MAHJONG:
        return ResourceType.BAR
    return None


class AvailabilityService:
    def __init__(
        self,
        db: Session,
        clock: Clock,
        settings: Settings | None = None,
        repository: ClubRepository | None = None,
    ):
        self.repo = repository or ClubRepository(db)
        self.grid = TimeGrid(clock, settings)

    def compute_status(
        self,
        day: date,
        resource_type: str,
        exclude_ids: Iterable[int] = (),
        occupying: Iterable[str] = ReservationStatus.ACTIVE,
    ) -> list[SlotState]:
        """Status of every grid point of `day` for `resource_type`.

        exclude_ids drops specific reservations (the one being re-checked); occupying narrows which
        reservation statuses hold a slot (promotion re-checks against confirmed bookings only).
        """
        if resource_type not in ResourceType.ALL:
            raise ValidationFailed(REASON_INVALID_TYPE, f"Unknown resource type {resource_type!r}")
        exclude = list(exclude_ids)
        occupying = list(occupying)
        blocks = []
        if resource_type in ResourceType.BLOCKABLE:
            blocks = _intervals(self.repo.blocked_slots(day, resource_type))
        own = _intervals(self.repo.reservations_on(day, [resource_type], occupying, exclude))
        other_type = _other_shared_type(resource_type)
        cross = []
        if other_type:
            cross = _intervals(self.repo.reservations_on(day, [other_type], occupying, exclude))

        states = []
        for point in self.grid.grid_points(day):
            if self.grid.is_past(day, point):
                status = SlotStatus.PAST
            elif _covered(point, blocks):
                status = SlotStatus.BLOCKED
            elif _covered(point, own) or _covered(point, cross):
                status = SlotStatus.BOOKED
            elif resource_type == ResourceType.MAHJONG and self.grid.is_priority_active(point, day):
                status = SlotStatus.RESTRICTED
            else:
                status = SlotStatus.AVAILABLE
            states.append(
                SlotState(
                    minutes=point,
                    time=minutes_to_time(point),
                    status=status,
                    selectable=point <= self.grid.latest_start,
                )
            )
        return states

    def available_slots(self, day: date, resource_type: str) -> list[str]:
        """HH:MM start times a new booking could use right now."""
        return [
            s.time
            for s in self.compute_status(day, resource_type)
            if s.selectable and s.status == SlotStatus.AVAILABLE
        ]

    def range_status(
        self,
        day: date,
        resource_type: str,
        start_minutes: int,
        end_minutes: int,
        exclude_ids: Iterable[int] = (),
        occupying: Iterable[str] = ReservationStatus.ACTIVE,
    ) -> dict[int, str]:
        """Statuses of the grid points spanned by [start, end)."""
        return {
            s.minutes: s.status
            for s in self.compute_status(day, resource_type, exclude_ids, occupying)
            if start_minutes <= s.minutes < end_minutes
        }

    def is_range_available(
        self,
        day: date,
        resource_type: str,
        start_minutes: int,
        end_minutes: int,
        exclude_ids: Iterable[int] = (),
        occupying: Iterable[str] = ReservationStatus.ACTIVE,
    ) -> bool:
        statuses = self.range_status(day, resource_type, start_minutes, end_minutes, exclude_ids, occupying)
        expected = len(range(start_minutes, end_minutes, self.grid.slot_minutes))
        return len(statuses) == expected and all(v == SlotStatus.AVAILABLE for v in statuses.values())

    def max_available_duration(self, day: date, resource_type: str, start: str, party_size: int = 1) -> int:
        """Longest bookable duration in minutes from `start`; 0 when the start itself is unavailable."""
        start_m = time_to_minutes(start)
        duration = 0
        for s in self.compute_status(day, resource_type):
            if s.minutes < start_m:
                continue
            if s.minutes != start_m + duration or s.status != SlotStatus.AVAILABLE:
                break
            duration += self.grid.slot_minutes
        cap = max_duration_minutes(self.grid, resource_type, party_size)
        if cap is not None:
            duration = min(duration, cap)
        return duration

    def has_overlapping_reservation(
        self,
        user_id: str,
        day: date,
        start: str,
        end: str,
        exclude_id: int | None = None,
    ) -> bool:
        """True when the user already holds an active reservation of any type overlapping [start, end)."""
        start_m, end_m = time_to_minutes(start), time_to_minutes(end)
        for r in self.repo.reservations_for_user(user_id):
            if r.date != day or r.id == exclude_id or r.status not in ReservationStatus.ACTIVE:
                continue
            if time_to_minutes(r.start_time) < end_m and start_m < time_to_minutes(r.end_time):
                return True
        return False
