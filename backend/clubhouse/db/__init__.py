from clubhouse.db.base import Base
from clubhouse.db.session import get_db, engine, SessionLocal
from clubhouse.db.tables import ALL_TABLE_NAMES, PURGE_USER_TABLE_NAMES

__all__ = ["get_db", "engine", "SessionLocal", "Base", "ALL_TABLE_NAMES", "PURGE_USER_TABLE_NAMES"]
