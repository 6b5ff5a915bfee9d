import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import clubhouse.models  # noqa: F401
from clubhouse.config import Settings
from clubhouse.db.base import Base
from clubhouse.db.session import _enable_sqlite_foreign_keys, make_engine
from tests.helpers import WED, FixedClock, add_user, local


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def clock():
    # Wednesday 10:00 in the club's timezone
    return FixedClock(local(WED, 10))


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(eng, "connect", _enable_sqlite_foreign_keys)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def file_sessions(tmp_path):
    """Session factory over a file database, for tests that use several connections or threads."""
    eng = make_engine(f"sqlite:///{tmp_path / 'club.db'}")
    Base.metadata.create_all(eng)
    yield sessionmaker(autocommit=False, autoflush=False, bind=eng)
    eng.dispose()


@pytest.fixture
def members(db):
    for user_id in ("alice@club.test", "bob@club.test", "carol@club.test", "dave@club.test"):
        add_user(db, user_id)
    add_user(db, "admin@club.test", role="admin")
    return db
