"""
Single-use, time-limited notification tokens.

Token states: pending -> sent -> confirmed | declined | expired | failed. Expiry is checked lazily on
every read and use; expire_stale_tokens() is the batch sweep. Consuming a token is a conditional
UPDATE on (status, expires_at), so of two concurrent consumers exactly one wins.
"""
import logging
import secrets
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clubhouse.config import Settings
from clubhouse.core.clock import Clock, as_utc
from clubhouse.core.constants import GameStatus, TokenPurpose, TokenStatus
from clubhouse.core.errors import (
    REASON_INVALID_TYPE,
    AlreadyOnWaitlist,
    ConflictLost,
    GameNotOpen,
    NotFound,
    TokenAlreadyUsed,
    TokenExpired,
    TokenNotFound,
    UserNotFound,
    ValidationFailed,
)
from clubhouse.db.repository import ClubRepository
from clubhouse.models import NotificationToken, Reservation, WaitlistEntry
from clubhouse.services.notify import (
    Notifier,
    confirm_request_message,
    join_invite_message,
)
from clubhouse.services.waitlist_service import JoinResult, WaitlistService

logger = logging.getLogger(__name__)

_LINK_PATHS = {
    TokenPurpose.JOIN_INVITE: "join",
    TokenPurpose.CONFIRM_RESERVATION: "confirm",
}


class TokenService:
    def __init__(
        self,
        db: Session,
        clock: Clock,
        *,
        settings: Settings | None = None,
        waitlist: WaitlistService | None = None,
        notifier: Notifier | None = None,
    ):
        self.db = db
        self.clock = clock
        self.repo = ClubRepository(db)
        self.waitlist = waitlist or WaitlistService(db, clock, settings=settings, notifier=notifier)
        self.settings = self.waitlist.settings
        self.notifier = notifier

    def _now(self) -> datetime:
        return as_utc(self.clock.now())

    def link_for(self, token: NotificationToken) -> str:
        base = self.settings.public_base_url.rstrip("/")
        return f"{base}/poker/{_LINK_PATHS[token.purpose]}/{token.token}"

    # --- issue and track -----------------------------------------------------

    def issue_token(
        self,
        game_id: int,
        user_id: str,
        purpose: str,
        ttl: timedelta | None = None,
    ) -> NotificationToken:
        """New pending token. Any still-outstanding token for the same (game, user, purpose) is expired first.

        A unique index allows one outstanding token per (game, user, purpose); when a concurrent issuer
        commits first, the insert fails and the supersede is retried so the later token wins.
        """
        if purpose not in TokenPurpose.ALL:
            raise ValidationFailed(REASON_INVALID_TYPE, f"Unknown token purpose {purpose!r}")
        game = self.repo.get_game(game_id)
        if game is None:
            raise NotFound(f"Poker game {game_id} not found")
        if game.status != GameStatus.OPEN:
            raise GameNotOpen(f"Poker game {game_id} is not open")
        if self.repo.get_user(user_id) is None:
            raise UserNotFound(f"User {user_id} not found")

        for _ in range(self.settings.write_retry_attempts):
            now = self._now()
            superseded = self.repo.expire_outstanding_tokens(game_id=game_id, user_id=user_id, purpose=purpose)
            if superseded:
                logger.info("Expired %s earlier %s token(s) for %s on game %s", superseded, purpose, user_id, game_id)
            row = NotificationToken(
                token=secrets.token_hex(self.settings.token_bytes),
                game_id=game_id,
                user_id=user_id,
                purpose=purpose,
                status=TokenStatus.PENDING,
                created_at=now,
                expires_at=now + (ttl if ttl is not None else timedelta(hours=self.settings.token_ttl_hours)),
            )
            self.db.add(row)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.warning("Concurrent %s token issued for %s on game %s; superseding it", purpose, user_id, game_id)
                continue
            self.db.refresh(row)
            return row
        raise ConflictLost(f"Could not issue a {purpose} token for {user_id} on game {game_id}")

    def get_token(self, token: str) -> NotificationToken:
        """Look up a token, expiring it first if its time has passed."""
        row = self.repo.get_token(token)
        if row is None:
            raise TokenNotFound("Token not found")
        if row.status in TokenStatus.OUTSTANDING and self._now() >= as_utc(row.expires_at):
            self._expire(row)
        return row

    def mark_sent(self, token: str) -> NotificationToken:
        if self.repo.transition_token(token, TokenStatus.SENT, self._now(), from_statuses=(TokenStatus.PENDING,)):
            self.db.commit()
        return self._reload(token)

    def mark_failed(self, token: str) -> NotificationToken:
        if self.repo.transition_token(
            token, TokenStatus.FAILED, self._now(), from_statuses=TokenStatus.OUTSTANDING, require_unexpired=False
        ):
            self.db.commit()
        return self._reload(token)

    def _reload(self, token: str) -> NotificationToken:
        row = self.repo.get_token(token)
        if row is None:
            raise TokenNotFound("Token not found")
        self.db.refresh(row)
        return row

    def _expire(self, row: NotificationToken) -> None:
        if self.repo.transition_token(
            row.token, TokenStatus.EXPIRED, self._now(), from_statuses=TokenStatus.OUTSTANDING, require_unexpired=False
        ):
            self.db.commit()
        self.db.refresh(row)

    # --- consume -------------------------------------------------------------

    def consume_token(self, token: str, response: str) -> Reservation | WaitlistEntry | JoinResult | None:
        """Use a token once. The token update and the waitlist transition commit together or not at all.

        Returns the poker Reservation (confirm), the declined WaitlistEntry (decline), the JoinResult
        (join invite accepted) or None (join invite declined).

        Expiry is reported before prior use: a used token past its expiry raises TokenExpired.
        """
        if response not in TokenStatus.RESPONSES:
            raise ValidationFailed(REASON_INVALID_TYPE, f"Unknown token response {response!r}")
        row = self.get_token(token)
        if row.status == TokenStatus.EXPIRED or self._now() >= as_utc(row.expires_at):
            raise TokenExpired("This link has expired")
        if row.status not in TokenStatus.OUTSTANDING:
            raise TokenAlreadyUsed("This link has already been used")

        now = self._now()
        if not self.repo.transition_token(token, response, now):
            self.db.rollback()
            self.db.refresh(row)
            if row.status == TokenStatus.EXPIRED or now >= as_utc(row.expires_at):
                raise TokenExpired("This link has expired")
            raise TokenAlreadyUsed("This link has already been used")

        try:
            result = self._apply(row, response)
        except Exception:
            self.db.rollback()
            raise
        self.db.commit()
        logger.info("Token for %s on game %s consumed: %s", row.user_id, row.game_id, response)
        return result

    def _apply(self, row: NotificationToken, response: str):
        if row.game_id is None:
            raise GameNotOpen("The game for this link no longer exists")
        if row.purpose == TokenPurpose.JOIN_INVITE:
            if response == TokenStatus.DECLINED:
                return None
            joined = self.waitlist.join(row.game_id, row.user_id, commit=False)
            if joined.already_on_waitlist:
                raise AlreadyOnWaitlist(joined.position)
            return joined
        if response == TokenStatus.CONFIRMED:
            return self.waitlist.confirm(row.game_id, row.user_id, commit=False)
        return self.waitlist.decline(row.game_id, row.user_id, commit=False)

    # --- batch expiry --------------------------------------------------------

    def expire_tokens_for_game(self, game_id: int) -> int:
        count = self.repo.expire_outstanding_tokens(game_id=game_id)
        self.db.commit()
        if count:
            logger.info("Expired %s token(s) for game %s", count, game_id)
        return count

    def expire_stale_tokens(self) -> int:
        """Sweep: expire outstanding tokens that are past expiry or whose game is closed or gone."""
        now = self._now()
        count = self.repo.expire_outstanding_tokens(expired_before=now, closed_games=True)
        self.db.commit()
        if count:
            logger.info("Expired %s stale token(s)", count)
        return count

    # --- outbound ------------------------------------------------------------

    def send_invitations(self, game_id: int, user_ids: list[str]) -> list[NotificationToken]:
        """Issue a join-invite token per user and dispatch it. Tokens end up sent or failed."""
        game = self.waitlist.get_game(game_id)
        tokens = []
        for user_id in user_ids:
            row = self.issue_token(game_id, user_id, TokenPurpose.JOIN_INVITE)
            message = join_invite_message(game.date, game.start_time, game.blind_level, self.link_for(row))
            tokens.append(self._dispatch(row, message))
        return tokens

    def send_confirmation_request(self, game_id: int, user_id: str) -> NotificationToken:
        """Ask a waiting player to confirm or decline a freed seat."""
        game = self.waitlist.get_game(game_id)
        if self.waitlist.waitlist_position(game_id, user_id) <= 0:
            raise NotFound(f"No waiting entry for {user_id} on game {game_id}")
        row = self.issue_token(game_id, user_id, TokenPurpose.CONFIRM_RESERVATION)
        return self._dispatch(row, confirm_request_message(game.date, game.start_time, self.link_for(row)))

    def _dispatch(self, row: NotificationToken, message: str) -> NotificationToken:
        if self.notifier is None:
            return row
        try:
            self.notifier.dispatch(row.user_id, message, self.settings.notify_channel)
        except Exception as e:
            logger.warning("Dispatch of %s token to %s failed: %s", row.purpose, row.user_id, e, exc_info=True)
            return self.mark_failed(row.token)
        return self.mark_sent(row.token)
