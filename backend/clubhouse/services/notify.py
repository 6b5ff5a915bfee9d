"""
Notification collaborator. Dispatch is best-effort: callers invoke it only after committing state,
and a failure is logged, never propagated into the operation that triggered it.
"""
import logging
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clubhouse.models.notification_outbox import NotificationOutbox

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def dispatch(self, user_id: str, message: str, channel: str) -> None:
        ...


class LoggingNotifier:
    """Writes messages to the log only (local runs, scripts)."""

    def dispatch(self, user_id: str, message: str, channel: str) -> None:
        logger.info("[%s] to %s: %s", channel, user_id, message)


class OutboxNotifier:
    """Queues messages in notification_outbox for an external sender to deliver."""

    def __init__(self, db: Session):
        self.db = db

    def dispatch(self, user_id: str, message: str, channel: str) -> None:
        try:
            self.db.add(NotificationOutbox(user_id=user_id, channel=channel, message=message, status="pending"))
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise


def notify_best_effort(notifier: Notifier | None, user_id: str, message: str, channel: str) -> bool:
    """Dispatch and report success. Never raises."""
    if notifier is None:
        return False
    try:
        notifier.dispatch(user_id, message, channel)
        return True
    except Exception as e:
        logger.warning("Notification to %s via %s failed: %s", user_id, channel, e, exc_info=True)
        return False


def promotion_message(resource_type: str, day, start_time: str, end_time: str) -> str:
    return f"Good news! Your waitlisted {resource_type} booking on {day} {start_time}-{end_time} is now confirmed."


def poker_confirmed_message(day, start_time: str, blind_level: str) -> str:
    return f"You're in: poker {day} at {start_time} ({blind_level}). See you at the table."


def join_invite_message(day, start_time: str, blind_level: str, link: str) -> str:
    return f"New poker game {day} at {start_time} ({blind_level}). Join the waitlist: {link}"


def confirm_request_message(day, start_time: str, link: str) -> str:
    return f"A seat opened for poker {day} at {start_time}. Confirm or decline: {link}"
