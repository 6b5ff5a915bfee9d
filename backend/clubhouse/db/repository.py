"""
Query and write helpers over the booking tables.

Services own transactions (commit/rollback); the repository only adds, flushes and queries,
except purge_user (one transaction of its own) and a failed claim flush, which leaves the
session unusable and must be rolled back before raising.
"""
import logging
from datetime import date, datetime
from typing import Iterable

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clubhouse.core.constants import (
    SHARED_ROOM_KEY,
    GameStatus,
    EntryStatus,
    ReservationStatus,
    ResourceType,
    TokenStatus,
)
from clubhouse.core.errors import CapacityReached, ConflictLost
from clubhouse.db.tables import PURGE_USER_TABLE_NAMES
from clubhouse.models import (
    BlockedSlot,
    NotificationOutbox,
    NotificationToken,
    PokerGame,
    PokerSeatClaim,
    Reservation,
    ReservationSlotClaim,
    User,
    WaitlistEntry,
)

logger = logging.getLogger(__name__)


class ClubRepository:
    def __init__(self, db: Session):
        self.db = db

    # --- users ---------------------------------------------------------------

    def get_user(self, user_id: str) -> User | None:
        return self.db.get(User, user_id)

    def purge_user(self, user_id: str) -> dict[str, int]:
        """Delete every row owned by a user in one transaction, in PURGE_USER_TABLE_NAMES order.

        Returns deleted counts per table.
        """
        db = self.db
        reservation_ids = select(Reservation.id).where(Reservation.user_id == user_id)
        owned = {
            "notification_tokens": (NotificationToken, NotificationToken.user_id == user_id),
            "poker_waitlist": (WaitlistEntry, WaitlistEntry.user_id == user_id),
            "poker_seat_claims": (PokerSeatClaim, PokerSeatClaim.user_id == user_id),
            "reservation_slot_claims": (ReservationSlotClaim, ReservationSlotClaim.reservation_id.in_(reservation_ids)),
            "reservations": (Reservation, Reservation.user_id == user_id),
            "notification_outbox": (NotificationOutbox, NotificationOutbox.user_id == user_id),
            "users": (User, User.id == user_id),
        }
        counts = {}
        try:
            for table in PURGE_USER_TABLE_NAMES:
                model, condition = owned[table]
                counts[table] = db.query(model).filter(condition).delete(synchronize_session=False)
            db.commit()
        except Exception:
            db.rollback()
            raise
        return counts

    # --- reservations --------------------------------------------------------

    def get_reservation(self, reservation_id: int) -> Reservation | None:
        return self.db.get(Reservation, reservation_id)

    def reservations_on(
        self,
        day: date,
        types: Iterable[str],
        statuses: Iterable[str] = ReservationStatus.ACTIVE,
        exclude_ids: Iterable[int] = (),
        start_time: str | None = None,
    ) -> list[Reservation]:
        q = self.db.query(Reservation).filter(
            Reservation.date == day,
            Reservation.type.in_(list(types)),
            Reservation.status.in_(list(statuses)),
        )
        exclude = list(exclude_ids)
        if exclude:
            q = q.filter(Reservation.id.notin_(exclude))
        if start_time is not None:
            q = q.filter(Reservation.start_time == start_time)
        return q.order_by(Reservation.created_at.asc(), Reservation.id.asc()).all()

    def reservations_for_user(self, user_id: str, include_cancelled: bool = False) -> list[Reservation]:
        q = self.db.query(Reservation).filter(Reservation.user_id == user_id)
        if not include_cancelled:
            q = q.filter(Reservation.status != ReservationStatus.CANCELLED)
        return q.order_by(Reservation.date.asc(), Reservation.start_time.asc()).all()

    def insert_confirmed_reservation(self, reservation: Reservation, slot_minutes: Iterable[int]) -> Reservation:
        """Insert a confirmed reservation and claim its shared-room points atomically.

        Raises ConflictLost (after rolling back the session) when another confirmed reservation
        already holds one of the points.
        """
        reservation.status = ReservationStatus.CONFIRMED
        self.db.add(reservation)
        self.db.flush()
        self.claim_slots(reservation, slot_minutes)
        return reservation

    def claim_slots(self, reservation: Reservation, slot_minutes: Iterable[int]) -> None:
        if reservation.type not in ResourceType.SHARED_ROOM:
            return
        for minute in slot_minutes:
            self.db.add(
                ReservationSlotClaim(
                    reservation_id=reservation.id,
                    room=SHARED_ROOM_KEY,
                    date=reservation.date,
                    slot_minute=minute,
                )
            )
        try:
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            logger.info("Slot claim conflict for %s on %s: %s", reservation.type, reservation.date, e.orig)
            raise ConflictLost(f"{reservation.type} on {reservation.date} was confirmed by another booking") from e

    def release_claims(self, reservation_id: int) -> int:
        """Free the room points or poker seat held by a reservation."""
        slots = (
            self.db.query(ReservationSlotClaim)
            .filter(ReservationSlotClaim.reservation_id == reservation_id)
            .delete(synchronize_session=False)
        )
        seats = (
            self.db.query(PokerSeatClaim)
            .filter(PokerSeatClaim.reservation_id == reservation_id)
            .delete(synchronize_session=False)
        )
        return slots + seats

    # --- blocked slots -------------------------------------------------------

    def blocked_slots(self, day: date | None = None, resource_type: str | None = None) -> list[BlockedSlot]:
        q = self.db.query(BlockedSlot)
        if day is not None:
            q = q.filter(BlockedSlot.date == day)
        if resource_type is not None:
            q = q.filter(BlockedSlot.type == resource_type)
        return q.order_by(BlockedSlot.date.asc(), BlockedSlot.start_time.asc()).all()

    def get_blocked_slot(self, slot_id: int) -> BlockedSlot | None:
        return self.db.get(BlockedSlot, slot_id)

    # --- poker games and waitlist --------------------------------------------

    def get_game(self, game_id: int) -> PokerGame | None:
        return self.db.get(PokerGame, game_id)

    def find_open_game(self, day: date, start_time: str) -> PokerGame | None:
        return (
            self.db.query(PokerGame)
            .filter(
                PokerGame.date == day,
                PokerGame.start_time == start_time,
                PokerGame.status == GameStatus.OPEN,
            )
            .order_by(PokerGame.id.asc())
            .first()
        )

    def open_games(self, on_or_before: date | None = None, on_or_after: date | None = None) -> list[PokerGame]:
        q = self.db.query(PokerGame).filter(PokerGame.status == GameStatus.OPEN)
        if on_or_before is not None:
            q = q.filter(PokerGame.date <= on_or_before)
        if on_or_after is not None:
            q = q.filter(PokerGame.date >= on_or_after)
        return q.order_by(PokerGame.date.asc(), PokerGame.start_time.asc()).all()

    def get_entry(self, game_id: int, user_id: str) -> WaitlistEntry | None:
        return (
            self.db.query(WaitlistEntry)
            .filter(WaitlistEntry.game_id == game_id, WaitlistEntry.user_id == user_id)
            .first()
        )

    def entries_for_game(self, game_id: int) -> list[WaitlistEntry]:
        return (
            self.db.query(WaitlistEntry)
            .filter(WaitlistEntry.game_id == game_id)
            .order_by(WaitlistEntry.position.asc())
            .all()
        )

    def next_waiting_entry(self, game_id: int) -> WaitlistEntry | None:
        return (
            self.db.query(WaitlistEntry)
            .filter(WaitlistEntry.game_id == game_id, WaitlistEntry.status == EntryStatus.WAITING)
            .order_by(WaitlistEntry.position.asc())
            .first()
        )

    def next_position(self, game_id: int) -> int:
        current = (
            self.db.query(func.max(WaitlistEntry.position)).filter(WaitlistEntry.game_id == game_id).scalar()
        )
        return (current or 0) + 1

    def confirmed_count(self, game_id: int) -> int:
        return (
            self.db.query(func.count(WaitlistEntry.id))
            .filter(WaitlistEntry.game_id == game_id, WaitlistEntry.status == EntryStatus.CONFIRMED)
            .scalar()
        ) or 0

    def transition_entry(self, entry_id: int, from_status: str, to_status: str) -> bool:
        """Compare-and-swap on entry status. True only for the single caller whose UPDATE matched."""
        return (
            self.db.query(WaitlistEntry)
            .filter(WaitlistEntry.id == entry_id, WaitlistEntry.status == from_status)
            .update({WaitlistEntry.status: to_status}, synchronize_session=False)
        ) == 1

    def get_seat(self, game_id: int, user_id: str) -> PokerSeatClaim | None:
        return (
            self.db.query(PokerSeatClaim)
            .filter(PokerSeatClaim.game_id == game_id, PokerSeatClaim.user_id == user_id)
            .first()
        )

    def claim_seat(self, game_id: int, user_id: str, reservation_id: int, capacity: int) -> PokerSeatClaim:
        """Take the lowest free seat number in 1..capacity for a flushed poker reservation.

        Raises CapacityReached when every seat is taken, and ConflictLost (after rolling back the
        session) when a concurrent writer took the same seat or already seated this user.
        """
        taken = {
            n for (n,) in self.db.query(PokerSeatClaim.seat_no).filter(PokerSeatClaim.game_id == game_id).all()
        }
        free = [n for n in range(1, capacity + 1) if n not in taken]
        if not free:
            raise CapacityReached(f"Poker game {game_id} is full ({capacity} players)")
        claim = PokerSeatClaim(game_id=game_id, user_id=user_id, seat_no=free[0], reservation_id=reservation_id)
        self.db.add(claim)
        try:
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            logger.info("Seat claim conflict on game %s for %s: %s", game_id, user_id, e.orig)
            raise ConflictLost(f"Seat on poker game {game_id} was taken by another confirmation") from e
        return claim

    def release_seat(self, game_id: int, user_id: str) -> int:
        return (
            self.db.query(PokerSeatClaim)
            .filter(PokerSeatClaim.game_id == game_id, PokerSeatClaim.user_id == user_id)
            .delete(synchronize_session=False)
        )

    def cancel_game_reservations(self, game: PokerGame) -> int:
        self.db.query(PokerSeatClaim).filter(PokerSeatClaim.game_id == game.id).delete(synchronize_session=False)
        return (
            self.db.query(Reservation)
            .filter(
                Reservation.type == ResourceType.POKER,
                Reservation.date == game.date,
                Reservation.start_time == game.start_time,
                Reservation.status == ReservationStatus.CONFIRMED,
            )
            .update({Reservation.status: ReservationStatus.CANCELLED}, synchronize_session=False)
        )

    # --- notification tokens -------------------------------------------------

    def get_token(self, token: str) -> NotificationToken | None:
        return self.db.get(NotificationToken, token)

    def transition_token(
        self,
        token: str,
        new_status: str,
        now: datetime,
        from_statuses: Iterable[str] = TokenStatus.OUTSTANDING,
        require_unexpired: bool = True,
    ) -> bool:
        """Compare-and-swap on token status. True only for the single caller whose UPDATE matched."""
        q = self.db.query(NotificationToken).filter(
            NotificationToken.token == token,
            NotificationToken.status.in_(list(from_statuses)),
        )
        if require_unexpired:
            q = q.filter(NotificationToken.expires_at > now)
        values = {NotificationToken.status: new_status}
        if new_status in TokenStatus.RESPONSES:
            values[NotificationToken.used_at] = now
        elif new_status == TokenStatus.SENT:
            values[NotificationToken.sent_at] = now
        return q.update(values, synchronize_session=False) == 1

    def expire_outstanding_tokens(
        self,
        game_id: int | None = None,
        user_id: str | None = None,
        purpose: str | None = None,
        expired_before: datetime | None = None,
        closed_games: bool = False,
    ) -> int:
        """Move outstanding (pending/sent) tokens matching the filters to expired. Never touches used tokens."""
        q = self.db.query(NotificationToken).filter(NotificationToken.status.in_(TokenStatus.OUTSTANDING))
        if game_id is not None:
            q = q.filter(NotificationToken.game_id == game_id)
        if user_id is not None:
            q = q.filter(NotificationToken.user_id == user_id)
        if purpose is not None:
            q = q.filter(NotificationToken.purpose == purpose)
        conditions = []
        if expired_before is not None:
            conditions.append(NotificationToken.expires_at <= expired_before)
        if closed_games:
            open_ids = select(PokerGame.id).where(PokerGame.status == GameStatus.OPEN)
            conditions.append(NotificationToken.game_id.is_(None))
            conditions.append(NotificationToken.game_id.notin_(open_ids))
        if conditions:
            q = q.filter(or_(*conditions))
        return q.update({NotificationToken.status: TokenStatus.EXPIRED}, synchronize_session=False)
