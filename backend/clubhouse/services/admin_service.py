"""
Admin operations the booking engine relies on: blocked slots and user purge.
"""
import logging
from datetime import date

from sqlalchemy.orm import Session

from clubhouse.core.constants import ResourceType
from clubhouse.core.errors import REASON_INVALID_RANGE, REASON_INVALID_TYPE, NotFound, UserNotFound, ValidationFailed
from clubhouse.db.repository import ClubRepository
from clubhouse.models import BlockedSlot
from clubhouse.services.time_grid import minutes_to_time, time_to_minutes

logger = logging.getLogger(__name__)


def block_slot(
    db: Session,
    resource_type: str,
    day: date,
    start_time: str,
    end_time: str,
    reason: str | None = None,
) -> BlockedSlot:
    """Make [start_time, end_time) unbookable for bar or mahjong on `day`."""
    if resource_type not in ResourceType.BLOCKABLE:
        raise ValidationFailed(REASON_INVALID_TYPE, "Only bar and mahjong slots can be blocked")
    try:
        start_m, end_m = time_to_minutes(start_time), time_to_minutes(end_time)
    except ValueError as e:
        raise ValidationFailed(REASON_INVALID_RANGE, str(e)) from e
    if end_m <= start_m:
        raise ValidationFailed(REASON_INVALID_RANGE, "End time must be after start time")
    row = BlockedSlot(
        type=resource_type,
        date=day,
        start_time=minutes_to_time(start_m),
        end_time=minutes_to_time(end_m),
        reason=(reason or "").strip() or None,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("Blocked %s on %s %s-%s", resource_type, day, row.start_time, row.end_time)
    return row


def unblock_slot(db: Session, slot_id: int) -> None:
    row = ClubRepository(db).get_blocked_slot(slot_id)
    if row is None:
        raise NotFound(f"Blocked slot {slot_id} not found")
    db.delete(row)
    db.commit()


def list_blocked_slots(db: Session, day: date | None = None, resource_type: str | None = None) -> list[BlockedSlot]:
    return ClubRepository(db).blocked_slots(day, resource_type)


def purge_user(db: Session, user_id: str) -> dict[str, int]:
    """Delete a user and everything they own in one transaction. Returns row counts per table."""
    repo = ClubRepository(db)
    if repo.get_user(user_id) is None:
        raise UserNotFound(f"User {user_id} not found")
    counts = repo.purge_user(user_id)
    logger.info("Purged user %s: %s", user_id, counts)
    return counts
