import threading
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from clubhouse.core.clock import as_utc
from clubhouse.core.constants import EntryStatus, GameStatus, ReservationStatus, TokenPurpose, TokenStatus
from clubhouse.core.errors import (
    AlreadyOnWaitlist,
    CapacityReached,
    GameNotOpen,
    NotFound,
    TokenAlreadyUsed,
    TokenExpired,
    TokenNotFound,
    UserNotFound,
)
from clubhouse.models import NotificationToken, Reservation, WaitlistEntry
from clubhouse.services.token_service import TokenService
from clubhouse.services.waitlist_service import WaitlistService
from tests.helpers import THU, FailingNotifier, RecordingNotifier, add_game, add_user


@pytest.fixture
def game(members):
    return add_game(members, THU, "19:00", max_players=2)


def test_issue_token_is_pending_with_default_ttl(members, clock, game):
    token = TokenService(members, clock).issue_token(game.id, "alice@club.test", TokenPurpose.JOIN_INVITE)
    assert token.status == TokenStatus.PENDING
    assert len(token.token) == 32
    assert as_utc(token.expires_at) == as_utc(clock.now()) + timedelta(hours=4)


def test_issue_token_requires_open_game_and_known_user(members, clock, game):
    service = TokenService(members, clock)
    closed = add_game(members, THU, "21:00", status=GameStatus.CLOSED)
    with pytest.raises(GameNotOpen):
        service.issue_token(closed.id, "alice@club.test", TokenPurpose.JOIN_INVITE)
    with pytest.raises(NotFound):
        service.issue_token(9999, "alice@club.test", TokenPurpose.JOIN_INVITE)
    with pytest.raises(UserNotFound):
        service.issue_token(game.id, "nobody@club.test", TokenPurpose.JOIN_INVITE)


def test_reissuing_expires_the_outstanding_token(members, clock, game):
    service = TokenService(members, clock)
    first = service.issue_token(game.id, "alice@club.test", TokenPurpose.JOIN_INVITE)
    other_purpose = service.issue_token(game.id, "alice@club.test", TokenPurpose.CONFIRM_RESERVATION)
    second = service.issue_token(game.id, "alice@club.test", TokenPurpose.JOIN_INVITE)

    assert members.get(NotificationToken, first.token).status == TokenStatus.EXPIRED
    assert members.get(NotificationToken, other_purpose.token).status == TokenStatus.PENDING
    assert second.status == TokenStatus.PENDING
    with pytest.raises(TokenExpired):
        service.consume_token(first.token, TokenStatus.CONFIRMED)


def test_join_invite_accepted_once(members, clock, game):
    service = TokenService(members, clock)
    token = service.issue_token(game.id, "alice@club.test", TokenPurpose.JOIN_INVITE)

    joined = service.consume_token(token.token, TokenStatus.CONFIRMED)
    assert joined.position == 1
    with pytest.raises(TokenAlreadyUsed):
        service.consume_token(token.token, TokenStatus.CONFIRMED)
    with pytest.raises(TokenAlreadyUsed):
        service.consume_token(token.token, TokenStatus.DECLINED)
    assert members.get(NotificationToken, token.token).used_at is not None


def test_declined_invite_does_not_join(members, clock, game):
    service = TokenService(members, clock)
    token = service.issue_token(game.id, "alice@club.test", TokenPurpose.JOIN_INVITE)
    assert service.consume_token(token.token, TokenStatus.DECLINED) is None
    assert members.query(WaitlistEntry).count() == 0
    assert members.get(NotificationToken, token.token).status == TokenStatus.DECLINED


def test_invite_for_someone_already_waiting_reports_position(members, clock, game):
    waitlist = WaitlistService(members, clock)
    waitlist.join(game.id, "bob@club.test")
    waitlist.join(game.id, "alice@club.test")
    service = TokenService(members, clock, waitlist=waitlist)
    token = service.issue_token(game.id, "alice@club.test", TokenPurpose.JOIN_INVITE)

    with pytest.raises(AlreadyOnWaitlist) as exc:
        service.consume_token(token.token, TokenStatus.CONFIRMED)
    assert exc.value.position == 2


def test_expired_token_is_rejected_even_if_never_sent(members, clock, game):
    service = TokenService(members, clock)
    token = service.issue_token(game.id, "alice@club.test", TokenPurpose.JOIN_INVITE, ttl=timedelta(minutes=30))
    clock.advance(minutes=30)

    with pytest.raises(TokenExpired):
        service.consume_token(token.token, TokenStatus.CONFIRMED)
    assert members.get(NotificationToken, token.token).status == TokenStatus.EXPIRED
    assert members.query(WaitlistEntry).count() == 0


def test_unknown_token(members, clock):
    with pytest.raises(TokenNotFound):
        TokenService(members, clock).consume_token("nope", TokenStatus.CONFIRMED)


def test_confirm_reservation_token_materializes_seat(members, clock, game):
    waitlist = WaitlistService(members, clock)
    waitlist.join(game.id, "alice@club.test")
    service = TokenService(members, clock, waitlist=waitlist)
    token = service.issue_token(game.id, "alice@club.test", TokenPurpose.CONFIRM_RESERVATION)

    seat = service.consume_token(token.token, TokenStatus.CONFIRMED)

    assert isinstance(seat, Reservation)
    assert (seat.type, seat.status, seat.date, seat.start_time) == ("poker", ReservationStatus.CONFIRMED, THU, "19:00")
    assert waitlist.waitlist_position(game.id, "alice@club.test") == 0


def test_confirm_reservation_token_decline(members, clock, game):
    waitlist = WaitlistService(members, clock)
    waitlist.join(game.id, "alice@club.test")
    service = TokenService(members, clock, waitlist=waitlist)
    token = service.issue_token(game.id, "alice@club.test", TokenPurpose.CONFIRM_RESERVATION)

    entry = service.consume_token(token.token, TokenStatus.DECLINED)
    assert entry.status == EntryStatus.DECLINED
    assert members.query(Reservation).count() == 0


def test_failed_transition_leaves_token_usable(members, clock, game):
    waitlist = WaitlistService(members, clock)
    for user_id in ("alice@club.test", "bob@club.test", "carol@club.test"):
        waitlist.join(game.id, user_id)
    waitlist.confirm(game.id, "alice@club.test")
    waitlist.confirm(game.id, "bob@club.test")
    service = TokenService(members, clock, waitlist=waitlist)
    token = service.issue_token(game.id, "carol@club.test", TokenPurpose.CONFIRM_RESERVATION)

    with pytest.raises(CapacityReached):
        service.consume_token(token.token, TokenStatus.CONFIRMED)
    assert members.get(NotificationToken, token.token).status == TokenStatus.PENDING

    waitlist.remove_entry(game.id, "bob@club.test")
    assert isinstance(service.consume_token(token.token, TokenStatus.CONFIRMED), Reservation)


def test_stale_reader_loses_to_committed_consume(file_sessions, clock):
    setup = file_sessions()
    add_user(setup, "alice@club.test")
    game_id = add_game(setup, THU).id
    token = TokenService(setup, clock).issue_token(game_id, "alice@club.test", TokenPurpose.JOIN_INVITE).token
    setup.close()

    first_db, second_db = file_sessions(), file_sessions()
    try:
        first, second = TokenService(first_db, clock), TokenService(second_db, clock)
        assert first.get_token(token).status == TokenStatus.PENDING
        assert second.get_token(token).status == TokenStatus.PENDING

        first.consume_token(token, TokenStatus.CONFIRMED)
        with pytest.raises(TokenAlreadyUsed):
            second.consume_token(token, TokenStatus.DECLINED)
    finally:
        first_db.close()
        second_db.close()


def test_concurrent_consume_has_exactly_one_winner(file_sessions, clock):
    setup = file_sessions()
    add_user(setup, "alice@club.test")
    game_id = add_game(setup, THU).id
    token = TokenService(setup, clock).issue_token(game_id, "alice@club.test", TokenPurpose.JOIN_INVITE).token
    setup.close()

    barrier = threading.Barrier(2)
    wins, failures, errors = [], [], []

    def consume():
        db = file_sessions()
        try:
            service = TokenService(db, clock)
            barrier.wait()
            wins.append(service.consume_token(token, TokenStatus.CONFIRMED))
        except (TokenAlreadyUsed, TokenExpired) as e:
            failures.append(e)
        except Exception as e:
            errors.append(e)
        finally:
            db.close()

    threads = [threading.Thread(target=consume) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert errors == []
    assert len(wins) == 1
    assert len(failures) == 1
    check = file_sessions()
    try:
        assert check.query(WaitlistEntry).count() == 1
    finally:
        check.close()


def test_store_allows_one_outstanding_token_per_game_user_and_purpose(members, clock, game):
    first = TokenService(members, clock).issue_token(game.id, "alice@club.test", TokenPurpose.JOIN_INVITE)
    members.add(
        NotificationToken(
            token="f" * 32,
            game_id=game.id,
            user_id="alice@club.test",
            purpose=TokenPurpose.JOIN_INVITE,
            status=TokenStatus.SENT,
            expires_at=first.expires_at,
        )
    )
    with pytest.raises(IntegrityError):
        members.commit()
    members.rollback()


def test_issue_supersedes_a_token_committed_concurrently(members, clock, game, monkeypatch):
    service = TokenService(members, clock)
    first = service.issue_token(game.id, "alice@club.test", TokenPurpose.JOIN_INVITE)

    # the first supersede runs before the other issuer's token is visible and matches nothing
    real_expire = service.repo.expire_outstanding_tokens
    calls = []

    def expire_late(**kwargs):
        calls.append(kwargs)
        if len(calls) == 1:
            return 0
        return real_expire(**kwargs)

    monkeypatch.setattr(service.repo, "expire_outstanding_tokens", expire_late)
    second = service.issue_token(game.id, "alice@club.test", TokenPurpose.JOIN_INVITE)

    assert len(calls) == 2
    assert members.get(NotificationToken, first.token).status == TokenStatus.EXPIRED
    assert second.status == TokenStatus.PENDING
    outstanding = members.query(NotificationToken).filter(
        NotificationToken.user_id == "alice@club.test",
        NotificationToken.status.in_(TokenStatus.OUTSTANDING),
    )
    assert [t.token for t in outstanding] == [second.token]


def test_used_token_past_expiry_reports_expired(members, clock, game):
    service = TokenService(members, clock)
    token = service.issue_token(game.id, "alice@club.test", TokenPurpose.JOIN_INVITE, ttl=timedelta(minutes=30))
    service.consume_token(token.token, TokenStatus.DECLINED)
    with pytest.raises(TokenAlreadyUsed):
        service.consume_token(token.token, TokenStatus.CONFIRMED)

    clock.advance(minutes=30)

    with pytest.raises(TokenExpired):
        service.consume_token(token.token, TokenStatus.CONFIRMED)
    assert members.get(NotificationToken, token.token).status == TokenStatus.DECLINED


def test_send_invitations_marks_tokens_sent(members, clock, game):
    notifier = RecordingNotifier()
    service = TokenService(members, clock, notifier=notifier)
    tokens = service.send_invitations(game.id, ["alice@club.test", "bob@club.test"])

    assert [t.status for t in tokens] == [TokenStatus.SENT, TokenStatus.SENT]
    assert all(t.sent_at is not None for t in tokens)
    assert [user for user, _, _ in notifier.sent] == ["alice@club.test", "bob@club.test"]
    user_id, message, channel = notifier.sent[0]
    assert f"/poker/join/{tokens[0].token}" in message
    assert channel == "sms"


def test_send_failure_marks_token_failed(members, clock, game):
    service = TokenService(members, clock, notifier=FailingNotifier())
    [token] = service.send_invitations(game.id, ["alice@club.test"])
    assert token.status == TokenStatus.FAILED
    with pytest.raises(TokenAlreadyUsed):
        service.consume_token(token.token, TokenStatus.CONFIRMED)


def test_confirmation_request_needs_a_waiting_entry(members, clock, game):
    notifier = RecordingNotifier()
    service = TokenService(members, clock, notifier=notifier)
    with pytest.raises(NotFound):
        service.send_confirmation_request(game.id, "alice@club.test")
    service.waitlist.join(game.id, "alice@club.test")
    token = service.send_confirmation_request(game.id, "alice@club.test")
    assert token.purpose == TokenPurpose.CONFIRM_RESERVATION
    assert f"/poker/confirm/{token.token}" in notifier.sent[0][1]


def test_expire_tokens_for_game_skips_used_tokens(members, clock, game):
    service = TokenService(members, clock)
    open_token = service.issue_token(game.id, "alice@club.test", TokenPurpose.JOIN_INVITE)
    used = service.issue_token(game.id, "bob@club.test", TokenPurpose.JOIN_INVITE)
    service.consume_token(used.token, TokenStatus.DECLINED)

    assert service.expire_tokens_for_game(game.id) == 1
    assert service.expire_tokens_for_game(game.id) == 0
    assert members.get(NotificationToken, open_token.token).status == TokenStatus.EXPIRED
    assert members.get(NotificationToken, used.token).status == TokenStatus.DECLINED


def test_expire_stale_tokens_sweeps_past_expiry_and_closed_games(members, clock, game):
    service = TokenService(members, clock)
    short = service.issue_token(game.id, "alice@club.test", TokenPurpose.JOIN_INVITE, ttl=timedelta(minutes=5))
    fresh = service.issue_token(game.id, "bob@club.test", TokenPurpose.JOIN_INVITE)
    other_game = add_game(members, THU, "21:00")
    orphan = service.issue_token(other_game.id, "carol@club.test", TokenPurpose.JOIN_INVITE)
    other_game.status = GameStatus.CLOSED
    members.commit()
    clock.advance(minutes=10)

    assert service.expire_stale_tokens() == 2
    assert service.expire_stale_tokens() == 0
    assert members.get(NotificationToken, short.token).status == TokenStatus.EXPIRED
    assert members.get(NotificationToken, orphan.token).status == TokenStatus.EXPIRED
    assert members.get(NotificationToken, fresh.token).status == TokenStatus.PENDING
