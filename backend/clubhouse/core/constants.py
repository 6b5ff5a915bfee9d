"""
Centralized domain constants (resource types, statuses, token purposes).

Statuses are stored as plain strings; use these names instead of scattering literals.
"""


class ResourceType:
    BAR = "bar"
    MAHJONG = "mahjong"
    POKER = "poker"
    ALL = (BAR, MAHJONG, POKER)
    # Bar and mahjong share one physical room
    SHARED_ROOM = (BAR, MAHJONG)
    BLOCKABLE = SHARED_ROOM


# Room key for reservation_slot_claims; bar and mahjong claim the same room
SHARED_ROOM_KEY = "shared"


class SlotStatus:
    AVAILABLE = "available"
    BOOKED = "booked"
    BLOCKED = "blocked"
    RESTRICTED = "restricted"
    PAST = "past"


class ReservationStatus:
    CONFIRMED = "confirmed"
    WAITLISTED = "waitlisted"
    CANCELLED = "cancelled"
    ACTIVE = (CONFIRMED, WAITLISTED)


class GameStatus:
    OPEN = "open"
    CLOSED = "closed"


class EntryStatus:
    WAITING = "waiting"
    CONFIRMED = "confirmed"
    DECLINED = "declined"


class TokenStatus:
    PENDING = "pending"
    SENT = "sent"
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    EXPIRED = "expired"
    FAILED = "failed"
    # Still usable (if not past expires_at)
    OUTSTANDING = (PENDING, SENT)
    RESPONSES = (CONFIRMED, DECLINED)


class TokenPurpose:
    JOIN_INVITE = "join_invite"
    CONFIRM_RESERVATION = "confirm_reservation"
    ALL = (JOIN_INVITE, CONFIRM_RESERVATION)


class UserRole:
    MEMBER = "member"
    ADMIN = "admin"


class OutboxStatus:
    PENDING = "pending"
    SENT = "sent"
