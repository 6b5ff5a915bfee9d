"""Admin-imposed unavailable window for bar or mahjong. Every grid point in [start, end) is blocked."""
from sqlalchemy import Column, Date, DateTime, Integer, String
from sqlalchemy.sql import func

from clubhouse.db.base import Base


class BlockedSlot(Base):
    __tablename__ = "blocked_slots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String(16), nullable=False)  # bar | mahjong
    date = Column(Date, nullable=False, index=True)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    reason = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
