"""Identity collaborator: user existence, strikes and roles. Protocol plus the database-backed default."""
import logging
from typing import Callable, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clubhouse.core.constants import UserRole
from clubhouse.core.errors import ClubError, DependencyUnavailable, PermissionDenied, UserNotFound
from clubhouse.models.user import User

logger = logging.getLogger(__name__)

# Runs before a booking or waitlist join is committed; raises to veto.
PreCommitHook = Callable[[str], None]


class IdentityProvider(Protocol):
    def ensure_user_exists(self, user_id: str) -> bool:
        """True when the user is present and active. Raises DependencyUnavailable when it cannot tell."""
        ...

    def user_strike_count(self, user_id: str) -> int:
        ...

    def is_admin(self, user_id: str) -> bool:
        ...


class DatabaseIdentityProvider:
    def __init__(self, db: Session):
        self.db = db

    def _load(self, user_id: str) -> User | None:
        try:
            return self.db.get(User, user_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DependencyUnavailable(f"User store unavailable: {e}") from e

    def ensure_user_exists(self, user_id: str) -> bool:
        user = self._load(user_id)
        return user is not None and bool(user.is_active)

    def user_strike_count(self, user_id: str) -> int:
        user = self._load(user_id)
        return (user.strikes or 0) if user else 0

    def is_admin(self, user_id: str) -> bool:
        user = self._load(user_id)
        return bool(user and user.role == UserRole.ADMIN)


def require_user(identity: IdentityProvider, user_id: str) -> None:
    """Load-bearing existence check: a collaborator failure is DependencyUnavailable, never 'no such user'."""
    try:
        exists = identity.ensure_user_exists(user_id)
    except ClubError:
        raise
    except Exception as e:
        raise DependencyUnavailable(f"Could not verify user {user_id}: {e}") from e
    if not exists:
        raise UserNotFound(f"User {user_id} not found")


def strike_guard(identity: IdentityProvider, limit: int) -> PreCommitHook:
    """Hook that refuses users at or above `limit` strikes."""

    def guard(user_id: str) -> None:
        try:
            strikes = identity.user_strike_count(user_id)
        except ClubError:
            raise
        except Exception as e:
            raise DependencyUnavailable(f"Could not read strikes for {user_id}: {e}") from e
        if strikes >= limit:
            logger.info("Blocked %s: %s strikes (limit %s)", user_id, strikes, limit)
            raise PermissionDenied(f"Account has {strikes} strikes; new bookings are blocked")

    return guard
