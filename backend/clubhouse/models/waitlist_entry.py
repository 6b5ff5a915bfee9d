"""Poker waitlist entry. Positions are assigned on join and never renumbered; gaps are expected."""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from clubhouse.db.base import Base


class WaitlistEntry(Base):
    __tablename__ = "poker_waitlist"
    __table_args__ = (
        UniqueConstraint("game_id", "user_id", name="uq_poker_waitlist_game_user"),
        UniqueConstraint("game_id", "position", name="uq_poker_waitlist_game_position"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    game_id = Column(Integer, ForeignKey("poker_games.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False, default="waiting")  # waiting | confirmed | declined
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
