from datetime import date, datetime, timedelta

import pytz

from clubhouse.core.constants import GameStatus, ReservationStatus
from clubhouse.models import PokerGame, Reservation, User

NEW_YORK = pytz.timezone("America/New_York")

# 2026-10-14 is a Wednesday
WED = date(2026, 10, 14)
THU = date(2026, 10, 15)
FRI = date(2026, 10, 16)
SAT = date(2026, 10, 17)
SUN = date(2026, 10, 18)


def local(day: date, hour: int, minute: int = 0) -> datetime:
    return NEW_YORK.localize(datetime(day.year, day.month, day.day, hour, minute))


class FixedClock:
    def __init__(self, now: datetime):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def set(self, now: datetime) -> None:
        self.current = now

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def dispatch(self, user_id, message, channel):
        self.sent.append((user_id, message, channel))


class FailingNotifier:
    def __init__(self):
        self.calls = 0

    def dispatch(self, user_id, message, channel):
        self.calls += 1
        raise ConnectionError("gateway down")


class StubIdentity:
    def __init__(self, exists=True, strikes=0, admin=False, error=None):
        self.exists = exists
        self.strikes = strikes
        self.admin = admin
        self.error = error

    def ensure_user_exists(self, user_id):
        if self.error:
            raise self.error
        return self.exists

    def user_strike_count(self, user_id):
        return self.strikes

    def is_admin(self, user_id):
        return self.admin


def add_user(db, user_id, role="member", strikes=0, is_active=True):
    user = User(id=user_id, name=user_id.split("@")[0], role=role, strikes=strikes, is_active=is_active)
    db.add(user)
    db.commit()
    return user


def add_reservation(db, user_id, resource_type, day, start, end, status=ReservationStatus.CONFIRMED, party_size=2):
    reservation = Reservation(
        user_id=user_id,
        type=resource_type,
        date=day,
        start_time=start,
        end_time=end,
        party_size=party_size,
        status=status,
    )
    db.add(reservation)
    db.commit()
    return reservation


def add_game(db, day, start_time="19:00", status=GameStatus.OPEN, max_players=None, blind_level="1/2"):
    game = PokerGame(date=day, start_time=start_time, blind_level=blind_level, status=status, max_players=max_players)
    db.add(game)
    db.commit()
    return game
