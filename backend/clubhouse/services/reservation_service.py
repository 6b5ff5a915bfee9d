"""
Reservation lifecycle: create (confirmed or waitlisted), cancel, and waitlist promotion.

Create re-checks every spanned grid point inside the writing transaction; the slot-claim unique
constraint decides between two writers that both saw the room free, and the loser is stored
as waitlisted. Cancelling a confirmed reservation calls promote_from_waitlist exactly once.
"""
import logging
from datetime import date

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clubhouse.config import Settings
from clubhouse.core.clock import Clock
from clubhouse.core.constants import ReservationStatus, ResourceType
from clubhouse.core.errors import AlreadyCancelled, ConflictLost, NotFound, PermissionDenied
from clubhouse.db.repository import ClubRepository
from clubhouse.models import Reservation, WaitlistEntry
from clubhouse.services.availability_service import AvailabilityService
from clubhouse.services.booking_rules import validate_create
from clubhouse.services.identity import (
    DatabaseIdentityProvider,
    IdentityProvider,
    PreCommitHook,
    require_user,
    strike_guard,
)
from clubhouse.services.notify import Notifier, notify_best_effort, promotion_message
from clubhouse.services.time_grid import minutes_to_time, time_to_minutes
from clubhouse.services.waitlist_service import WaitlistService

logger = logging.getLogger(__name__)


class ReservationService:
    def __init__(
        self,
        db: Session,
        clock: Clock,
        *,
        settings: Settings | None = None,
        identity: IdentityProvider | None = None,
        notifier: Notifier | None = None,
        waitlist: WaitlistService | None = None,
        pre_commit_hooks: list[PreCommitHook] | None = None,
    ):
        self.db = db
        self.repo = ClubRepository(db)
        self.availability = AvailabilityService(db, clock, settings, repository=self.repo)
        self.grid = self.availability.grid
        self.settings = self.grid.settings
        self.identity = identity or DatabaseIdentityProvider(db)
        self.notifier = notifier
        if pre_commit_hooks is None:
            pre_commit_hooks = [strike_guard(self.identity, self.settings.strike_limit)]
        self.pre_commit_hooks = pre_commit_hooks
        self.waitlist = waitlist or WaitlistService(
            db,
            clock,
            settings=settings,
            identity=self.identity,
            notifier=notifier,
            pre_commit_hooks=pre_commit_hooks,
        )

    def get(self, reservation_id: int) -> Reservation:
        reservation = self.repo.get_reservation(reservation_id)
        if reservation is None:
            raise NotFound(f"Reservation {reservation_id} not found")
        return reservation

    def list_for_user(self, user_id: str, include_cancelled: bool = False) -> list[Reservation]:
        return self.repo.reservations_for_user(user_id, include_cancelled)

    def list_for_date(self, day: date, resource_type: str | None = None) -> list[Reservation]:
        types = [resource_type] if resource_type else list(ResourceType.ALL)
        return self.repo.reservations_on(day, types, statuses=ReservationStatus.ACTIVE)

    def create(
        self,
        user_id: str,
        day: date,
        start: str,
        end: str,
        resource_type: str,
        party_size: int = 1,
        notes: str | None = None,
    ) -> Reservation:
        """Validate and store a booking: confirmed when every spanned point is available, else waitlisted."""
        start_m, end_m = validate_create(self.grid, day, start, end, resource_type, party_size)
        require_user(self.identity, user_id)
        for hook in self.pre_commit_hooks:
            hook(user_id)

        fields = dict(
            user_id=user_id,
            type=resource_type,
            date=day,
            start_time=minutes_to_time(start_m),
            end_time=minutes_to_time(end_m),
            party_size=party_size,
            notes=notes,
        )
        if self.availability.is_range_available(day, resource_type, start_m, end_m):
            spanned = range(start_m, end_m, self.grid.slot_minutes)
            try:
                reservation = self.repo.insert_confirmed_reservation(Reservation(**fields), spanned)
                self.db.commit()
            except ConflictLost as e:
                logger.warning("Lost confirm race for %s %s %s-%s: %s", resource_type, day, start, end, e)
            else:
                self.db.refresh(reservation)
                logger.info("Reservation %s confirmed for %s (%s %s %s-%s)", reservation.id, user_id, resource_type, day, start, end)
                return reservation

        reservation = Reservation(status=ReservationStatus.WAITLISTED, **fields)
        self.db.add(reservation)
        self.db.commit()
        self.db.refresh(reservation)
        logger.info("Reservation %s waitlisted for %s (%s %s %s-%s)", reservation.id, user_id, resource_type, day, start, end)
        return reservation

    def cancel(self, reservation_id: int, requesting_user_id: str) -> Reservation:
        reservation = self.get(reservation_id)
        if reservation.user_id != requesting_user_id and not self.identity.is_admin(requesting_user_id):
            raise PermissionDenied("Only the owner or an admin can cancel this reservation")
        if reservation.status == ReservationStatus.CANCELLED:
            raise AlreadyCancelled(f"Reservation {reservation_id} is already cancelled")

        was_confirmed = reservation.status == ReservationStatus.CONFIRMED
        reservation.status = ReservationStatus.CANCELLED
        self.repo.release_claims(reservation.id)
        self.db.commit()
        logger.info("Reservation %s cancelled by %s", reservation.id, requesting_user_id)
        if was_confirmed:
            self.promote_from_waitlist(reservation)
        return reservation

    def promote_from_waitlist(self, cancelled: Reservation) -> Reservation | None:
        """Give a freed confirmed slot to the next waiting booking. Returns the promoted reservation, if any.

        The cancellation is already committed; a failure here is logged and leaves the waitlist as it was.
        """
        try:
            if cancelled.type == ResourceType.POKER:
                return self._promote_poker(cancelled)
            return self._promote_room(cancelled)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Promotion after cancelling reservation %s failed", cancelled.id)
            return None

    def _promote_room(self, cancelled: Reservation) -> Reservation | None:
        candidates = self.repo.reservations_on(
            cancelled.date,
            [cancelled.type],
            statuses=(ReservationStatus.WAITLISTED,),
            start_time=cancelled.start_time,
        )
        if not candidates:
            return None
        candidate = candidates[0]
        start_m, end_m = time_to_minutes(candidate.start_time), time_to_minutes(candidate.end_time)
        free = self.availability.is_range_available(
            candidate.date,
            candidate.type,
            start_m,
            end_m,
            exclude_ids=[candidate.id],
            occupying=(ReservationStatus.CONFIRMED,),
        )
        if not free:
            logger.info("Reservation %s stays waitlisted: slot still occupied", candidate.id)
            return None
        try:
            self.repo.claim_slots(candidate, range(start_m, end_m, self.grid.slot_minutes))
        except ConflictLost:
            return None
        candidate.status = ReservationStatus.CONFIRMED
        self.db.commit()
        logger.info("Promoted reservation %s for %s", candidate.id, candidate.user_id)
        notify_best_effort(
            self.notifier,
            candidate.user_id,
            promotion_message(candidate.type, candidate.date, candidate.start_time, candidate.end_time),
            self.settings.notify_channel,
        )
        return candidate

    def _promote_poker(self, cancelled: Reservation) -> Reservation | None:
        game = self.repo.find_open_game(cancelled.date, cancelled.start_time)
        if game is None:
            return None
        entry: WaitlistEntry | None = self.repo.get_entry(game.id, cancelled.user_id)
        if entry is not None:
            self.db.delete(entry)
            self.db.commit()
        return self.waitlist.promote_next(game)
