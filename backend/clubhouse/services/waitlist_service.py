"""
Poker games and their waitlists.

Entry states: waiting -> confirmed | declined. Positions come from max(position)+1 at join time
and are never renumbered; (game, position) and (game, user) are unique in the store, so a
concurrent join either retries with the next position or finds its own earlier entry.
A confirmed player holds one seat claim; seat numbers run 1..capacity and are unique per game.
"""
import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clubhouse.config import Settings
from clubhouse.core.clock import Clock
from clubhouse.core.constants import EntryStatus, GameStatus, ReservationStatus, ResourceType
from clubhouse.core.errors import (
    REASON_HORIZON,
    REASON_PAST,
    CapacityReached,
    ClubError,
    ConflictLost,
    GameNotOpen,
    NotFound,
    ValidationFailed,
)
from clubhouse.db.repository import ClubRepository
from clubhouse.models import PokerGame, Reservation, WaitlistEntry
from clubhouse.services.booking_rules import parse_slot_time
from clubhouse.services.identity import (
    DatabaseIdentityProvider,
    IdentityProvider,
    PreCommitHook,
    require_user,
    strike_guard,
)
from clubhouse.services.notify import Notifier, notify_best_effort, poker_confirmed_message
from clubhouse.services.time_grid import TimeGrid, minutes_to_time, time_to_minutes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JoinResult:
    entry_id: int
    position: int
    status: str
    already_on_waitlist: bool = False


class WaitlistService:
    def __init__(
        self,
        db: Session,
        clock: Clock,
        *,
        settings: Settings | None = None,
        identity: IdentityProvider | None = None,
        notifier: Notifier | None = None,
        pre_commit_hooks: list[PreCommitHook] | None = None,
    ):
        self.db = db
        self.repo = ClubRepository(db)
        self.grid = TimeGrid(clock, settings)
        self.settings = self.grid.settings
        self.identity = identity or DatabaseIdentityProvider(db)
        self.notifier = notifier
        if pre_commit_hooks is None:
            pre_commit_hooks = [strike_guard(self.identity, self.settings.strike_limit)]
        self.pre_commit_hooks = pre_commit_hooks

    # --- games ---------------------------------------------------------------

    def create_game(
        self,
        day: date,
        start_time: str,
        blind_level: str,
        notes: str | None = None,
        max_players: int | None = None,
    ) -> PokerGame:
        start_m = parse_slot_time(self.grid, start_time)
        if not self.grid.within_horizon(day):
            raise ValidationFailed(REASON_HORIZON, f"Games can be scheduled {self.grid.today()} through {self.grid.horizon_end()}")
        if self.grid.is_past(day, start_m):
            raise ValidationFailed(REASON_PAST, f"{start_time} on {day} has already passed")
        game = PokerGame(
            date=day,
            start_time=minutes_to_time(start_m),
            blind_level=(blind_level or "").strip(),
            status=GameStatus.OPEN,
            notes=notes,
            max_players=max_players,
        )
        self.db.add(game)
        self.db.commit()
        self.db.refresh(game)
        logger.info("Created poker game %s on %s %s", game.id, game.date, game.start_time)
        return game

    def get_game(self, game_id: int) -> PokerGame:
        game = self.repo.get_game(game_id)
        if game is None:
            raise NotFound(f"Poker game {game_id} not found")
        return game

    def game_has_started(self, game: PokerGame) -> bool:
        return self.grid.is_past(game.date, time_to_minutes(game.start_time))

    def _require_open(self, game_id: int) -> PokerGame:
        game = self.get_game(game_id)
        if game.status != GameStatus.OPEN or self.game_has_started(game):
            raise GameNotOpen(f"Poker game {game_id} is not open")
        return game

    def capacity(self, game: PokerGame) -> int:
        return game.max_players or self.settings.poker_max_players

    def confirmed_count(self, game: PokerGame) -> int:
        return self.repo.confirmed_count(game.id)

    def list_upcoming_games(self) -> list[PokerGame]:
        self.auto_close_expired_games()
        return self.repo.open_games(on_or_after=self.grid.today())

    def close_game(self, game_id: int) -> PokerGame:
        """Admin close: expire the game's tokens and cancel its confirmed poker reservations."""
        game = self.get_game(game_id)
        game.status = GameStatus.CLOSED
        expired = self.repo.expire_outstanding_tokens(game_id=game.id)
        cancelled = self.repo.cancel_game_reservations(game)
        self.db.commit()
        logger.info("Closed poker game %s (%s tokens expired, %s reservations cancelled)", game.id, expired, cancelled)
        return game

    def delete_game(self, game_id: int) -> None:
        game = self.get_game(game_id)
        expired = self.repo.expire_outstanding_tokens(game_id=game.id)
        cancelled = self.repo.cancel_game_reservations(game)
        for entry in self.repo.entries_for_game(game.id):
            self.db.delete(entry)
        self.db.delete(game)
        self.db.commit()
        logger.info("Deleted poker game %s (%s tokens expired, %s reservations cancelled)", game_id, expired, cancelled)

    def auto_close_expired_games(self) -> list[int]:
        """Close every open game whose start has passed and expire its tokens. Idempotent."""
        closed = []
        for game in self.repo.open_games(on_or_before=self.grid.today()):
            if not self.game_has_started(game):
                continue
            game.status = GameStatus.CLOSED
            self.repo.expire_outstanding_tokens(game_id=game.id)
            closed.append(game.id)
        if closed:
            self.db.commit()
            logger.info("Auto-closed poker games %s", closed)
        return closed

    # --- waitlist ------------------------------------------------------------

    def join(self, game_id: int, user_id: str, commit: bool = True) -> JoinResult:
        """Append the user to the game's waitlist, or return their existing entry.

        With commit=False the entry is only flushed so the caller can commit it together with
        other changes; a position collision then raises ConflictLost instead of retrying.
        """
        game = self._require_open(game_id)
        existing = self.repo.get_entry(game.id, user_id)
        if existing is not None:
            return JoinResult(existing.id, existing.position, existing.status, already_on_waitlist=True)
        require_user(self.identity, user_id)
        for hook in self.pre_commit_hooks:
            hook(user_id)

        attempts = self.settings.write_retry_attempts if commit else 1
        for _ in range(attempts):
            entry = WaitlistEntry(
                game_id=game.id,
                user_id=user_id,
                position=self.repo.next_position(game.id),
                status=EntryStatus.WAITING,
            )
            self.db.add(entry)
            try:
                if commit:
                    self.db.commit()
                else:
                    self.db.flush()
            except IntegrityError:
                self.db.rollback()
                if not commit:
                    break
                existing = self.repo.get_entry(game.id, user_id)
                if existing is not None:
                    return JoinResult(existing.id, existing.position, existing.status, already_on_waitlist=True)
                logger.warning("Waitlist position collision on game %s; retrying", game.id)
                continue
            logger.info("User %s joined game %s at position %s", user_id, game.id, entry.position)
            return JoinResult(entry.id, entry.position, entry.status)
        raise ConflictLost(f"Could not assign a waitlist position on game {game_id}")

    def confirm(self, game_id: int, user_id: str, commit: bool = True) -> Reservation:
        """Flip the user's entry to confirmed and seat them with a poker reservation. Idempotent.

        The flip is a conditional UPDATE from waiting, so of two concurrent confirms of one entry only
        one seats the player and the other returns that same reservation. Seats are claimed under
        UNIQUE(game, seat_no), which holds capacity when different players are confirmed at once.
        With commit=False nothing is committed and a seat collision raises ConflictLost instead of retrying.
        """
        attempts = self.settings.write_retry_attempts if commit else 1
        for _ in range(attempts):
            try:
                reservation, seated = self._confirm_once(game_id, user_id)
            except ConflictLost:
                if not commit:
                    raise
                logger.warning("Seat collision on game %s; retrying confirm for %s", game_id, user_id)
                continue
            except ClubError:
                if commit:
                    self.db.rollback()
                raise
            if commit:
                self.db.commit()
                if seated:
                    game = self.get_game(game_id)
                    notify_best_effort(
                        self.notifier,
                        user_id,
                        poker_confirmed_message(game.date, game.start_time, game.blind_level),
                        self.settings.notify_channel,
                    )
            if seated:
                logger.info("Confirmed %s for game %s (reservation %s)", user_id, game_id, reservation.id)
            return reservation
        raise ConflictLost(f"Could not seat {user_id} on game {game_id}")

    def _confirm_once(self, game_id: int, user_id: str) -> tuple[Reservation, bool]:
        game = self._require_open(game_id)
        entry = self.repo.get_entry(game.id, user_id)
        if entry is None or entry.status == EntryStatus.DECLINED:
            raise NotFound(f"No waiting entry for {user_id} on game {game_id}")
        if entry.status == EntryStatus.WAITING:
            if self.repo.transition_entry(entry.id, EntryStatus.WAITING, EntryStatus.CONFIRMED):
                return self._seat(game, user_id), True
            self.db.refresh(entry)
            if entry.status != EntryStatus.CONFIRMED:
                raise NotFound(f"No waiting entry for {user_id} on game {game_id}")
        seat = self.repo.get_seat(game.id, user_id)
        if seat is not None:
            reservation = self.repo.get_reservation(seat.reservation_id)
            if reservation is not None:
                return reservation, False
        return self._seat(game, user_id), False

    def decline(self, game_id: int, user_id: str, commit: bool = True) -> WaitlistEntry:
        entry = self.repo.get_entry(game_id, user_id)
        if entry is None or entry.status != EntryStatus.WAITING:
            raise NotFound(f"No waiting entry for {user_id} on game {game_id}")
        entry.status = EntryStatus.DECLINED
        if commit:
            self.db.commit()
        else:
            self.db.flush()
        logger.info("User %s declined game %s", user_id, game_id)
        return entry

    def remove_entry(self, game_id: int, user_id: str) -> None:
        """Hard delete regardless of status. Remaining positions keep their numbers.

        A confirmed player also gives up their seat and their poker reservation is cancelled.
        """
        entry = self.repo.get_entry(game_id, user_id)
        if entry is None:
            raise NotFound(f"{user_id} is not on the waitlist for game {game_id}")
        seat = self.repo.get_seat(game_id, user_id)
        if seat is not None:
            reservation = self.repo.get_reservation(seat.reservation_id)
            if reservation is not None and reservation.status == ReservationStatus.CONFIRMED:
                reservation.status = ReservationStatus.CANCELLED
            self.repo.release_seat(game_id, user_id)
        self.db.delete(entry)
        self.db.commit()

    def waitlist_position(self, game_id: int, user_id: str) -> int:
        """-1 when not on the list, 0 when confirmed, otherwise the assigned position."""
        entry = self.repo.get_entry(game_id, user_id)
        if entry is None:
            return -1
        if entry.status == EntryStatus.CONFIRMED:
            return 0
        return entry.position

    def list_waitlist(self, game_id: int) -> list[WaitlistEntry]:
        self.get_game(game_id)
        return self.repo.entries_for_game(game_id)

    def promote_next(self, game: PokerGame) -> Reservation | None:
        """Confirm the earliest waiting entry if the game has room."""
        entry = self.repo.next_waiting_entry(game.id)
        if entry is None:
            return None
        try:
            return self.confirm(game.id, entry.user_id)
        except (CapacityReached, ConflictLost, GameNotOpen) as e:
            logger.info("No promotion on game %s: %s", game.id, e)
            return None

    def _seat(self, game: PokerGame, user_id: str) -> Reservation:
        # the caller's entry is already confirmed, so the count includes it
        capacity = self.capacity(game)
        if self.confirmed_count(game) > capacity:
            raise CapacityReached(f"Poker game {game.id} is full ({capacity} players)")
        start_m = time_to_minutes(game.start_time)
        reservation = Reservation(
            user_id=user_id,
            type=ResourceType.POKER,
            date=game.date,
            start_time=game.start_time,
            end_time=minutes_to_time(start_m + self.grid.slot_minutes),
            party_size=1,
            status=ReservationStatus.CONFIRMED,
        )
        self.db.add(reservation)
        self.db.flush()
        self.repo.claim_seat(game.id, user_id, reservation.id, capacity)
        return reservation
