from clubhouse.models.blocked_slot import BlockedSlot
from clubhouse.models.notification_outbox import NotificationOutbox
from clubhouse.models.notification_token import NotificationToken
from clubhouse.models.poker_game import PokerGame
from clubhouse.models.reservation import Reservation
from clubhouse.models.seat_claim import PokerSeatClaim
from clubhouse.models.slot_claim import ReservationSlotClaim
from clubhouse.models.user import User
from clubhouse.models.waitlist_entry import WaitlistEntry

__all__ = [
    "BlockedSlot",
    "NotificationOutbox",
    "NotificationToken",
    "PokerGame",
    "PokerSeatClaim",
    "Reservation",
    "ReservationSlotClaim",
    "User",
    "WaitlistEntry",
]
