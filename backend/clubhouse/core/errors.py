"""
Centralized error taxonomy for the booking engine.

Every failure a caller can act on is a ClubError subclass with a stable `kind`.
Calling layers (HTTP, admin tools) map kinds to their own responses with error_payload()
instead of matching on messages.
"""
from __future__ import annotations

# ---------------------------------------------------------------------------
# Constants: failure kinds and validation reasons
# ---------------------------------------------------------------------------

KIND_NOT_FOUND = "not_found"
KIND_PERMISSION_DENIED = "permission_denied"
KIND_ALREADY_CANCELLED = "already_cancelled"
KIND_ALREADY_ON_WAITLIST = "already_on_waitlist"
KIND_GAME_NOT_OPEN = "game_not_open"
KIND_CAPACITY_REACHED = "capacity_reached"
KIND_TOKEN_EXPIRED = "token_expired"
KIND_TOKEN_ALREADY_USED = "token_already_used"
KIND_VALIDATION_FAILED = "validation_failed"
KIND_CONFLICT_LOST = "conflict_lost"
KIND_DEPENDENCY_UNAVAILABLE = "dependency_unavailable"

REASON_HORIZON = "horizon"
REASON_PAST = "past"
REASON_INVALID_RANGE = "invalid_range"
REASON_DURATION_LIMIT = "duration_limit"
REASON_INVALID_TIME = "invalid_time"
REASON_OUTSIDE_HOURS = "outside_hours"
REASON_INVALID_TYPE = "invalid_type"
REASON_INVALID_PARTY_SIZE = "invalid_party_size"


class ClubError(Exception):
    kind = "error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind


class NotFound(ClubError):
    kind = KIND_NOT_FOUND


class UserNotFound(NotFound):
    pass


class TokenNotFound(NotFound):
    pass


class PermissionDenied(ClubError):
    kind = KIND_PERMISSION_DENIED


class AlreadyCancelled(ClubError):
    kind = KIND_ALREADY_CANCELLED


class AlreadyOnWaitlist(ClubError):
    kind = KIND_ALREADY_ON_WAITLIST

    def __init__(self, position: int, message: str = ""):
        super().__init__(message or f"Already on the waitlist at position {position}")
        self.position = position


class GameNotOpen(ClubError):
    kind = KIND_GAME_NOT_OPEN


class CapacityReached(ClubError):
    kind = KIND_CAPACITY_REACHED


class TokenExpired(ClubError):
    kind = KIND_TOKEN_EXPIRED


class TokenAlreadyUsed(ClubError):
    kind = KIND_TOKEN_ALREADY_USED


class ValidationFailed(ClubError):
    kind = KIND_VALIDATION_FAILED

    def __init__(self, reason: str, message: str = ""):
        super().__init__(message or reason)
        self.reason = reason


class ConflictLost(ClubError):
    """Another writer confirmed an overlapping reservation first."""

    kind = KIND_CONFLICT_LOST


class DependencyUnavailable(ClubError):
    kind = KIND_DEPENDENCY_UNAVAILABLE


def error_payload(exc: ClubError) -> dict:
    """Stable dict for a calling layer: {kind, message} plus reason/position when present."""
    payload = {"kind": exc.kind, "message": exc.message}
    if isinstance(exc, ValidationFailed):
        payload["reason"] = exc.reason
    if isinstance(exc, AlreadyOnWaitlist):
        payload["position"] = exc.position
    return payload
