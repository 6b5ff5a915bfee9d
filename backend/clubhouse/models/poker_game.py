from sqlalchemy import Column, Date, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from clubhouse.db.base import Base


class PokerGame(Base):
    __tablename__ = "poker_games"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(String(5), nullable=False)
    blind_level = Column(String(64), nullable=False)
    status = Column(String(16), nullable=False, default="open", index=True)  # open | closed
    max_players = Column(Integer, nullable=True)  # NULL = settings.poker_max_players
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
