"""Queued outbound message. A separate sender (SMS gateway) drains pending rows."""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func

from clubhouse.db.base import Base


class NotificationOutbox(Base):
    __tablename__ = "notification_outbox"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    channel = Column(String(16), nullable=False, default="sms")
    message = Column(Text, nullable=False)
    status = Column(String(16), nullable=False, default="pending")  # pending | sent
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
