from datetime import timedelta

from clubhouse.core.constants import GameStatus, TokenPurpose, TokenStatus
from clubhouse.models import NotificationToken, PokerGame
from clubhouse.scheduler import sweep_job
from clubhouse.services.token_service import TokenService
from tests.helpers import THU, WED, add_game


def test_run_sweep_closes_games_and_expires_tokens(members, clock):
    started = add_game(members, WED, "18:00")
    later = add_game(members, THU, "19:00")
    tokens = TokenService(members, clock)
    on_started = tokens.issue_token(started.id, "alice@club.test", TokenPurpose.JOIN_INVITE)
    short = tokens.issue_token(later.id, "bob@club.test", TokenPurpose.JOIN_INVITE, ttl=timedelta(hours=1))
    kept = tokens.issue_token(later.id, "carol@club.test", TokenPurpose.JOIN_INVITE, ttl=timedelta(days=2))
    clock.advance(hours=9)

    result = sweep_job.run_sweep(members, clock)

    assert result == {"games_closed": [started.id], "tokens_expired": 1}
    assert members.get(PokerGame, started.id).status == GameStatus.CLOSED
    assert members.get(NotificationToken, on_started.token).status == TokenStatus.EXPIRED
    assert members.get(NotificationToken, short.token).status == TokenStatus.EXPIRED
    assert members.get(NotificationToken, kept.token).status == TokenStatus.PENDING
    assert sweep_job.run_sweep(members, clock) == {"games_closed": [], "tokens_expired": 0}


def test_run_sweep_job_uses_its_own_session(members, clock, monkeypatch):
    add_game(members, WED, "09:00")
    monkeypatch.setattr(sweep_job, "SessionLocal", lambda: members)
    result = sweep_job.run_sweep_job(clock)
    assert len(result["games_closed"]) == 1


def test_run_sweep_job_logs_and_returns_none_on_failure(monkeypatch, clock, caplog):
    class BrokenSession:
        closed = False
        rolled_back = False

        def rollback(self):
            self.rolled_back = True

        def close(self):
            self.closed = True

    session = BrokenSession()
    monkeypatch.setattr(sweep_job, "SessionLocal", lambda: session)

    def explode(db, clock):
        raise RuntimeError("db gone")

    monkeypatch.setattr(sweep_job, "run_sweep", explode)
    assert sweep_job.run_sweep_job(clock) is None
    assert session.rolled_back and session.closed
    assert "Sweep job failed" in caplog.text
