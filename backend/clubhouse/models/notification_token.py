"""Single-use, time-limited link token (join invite or reservation confirmation).

game_id is SET NULL on game delete so a deleted game's tokens stay readable as expired.
At most one outstanding (pending or sent) token exists per (game, user, purpose); the partial
unique index enforces it against concurrent issuers.
"""
from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.sql import func

from clubhouse.db.base import Base

OUTSTANDING_TOKEN_CLAUSE = "status IN ('pending', 'sent')"


class NotificationToken(Base):
    __tablename__ = "notification_tokens"
    __table_args__ = (
        Index(
            "uq_notification_tokens_outstanding",
            "game_id",
            "user_id",
            "purpose",
            unique=True,
            postgresql_where=text(OUTSTANDING_TOKEN_CLAUSE),
            sqlite_where=text(OUTSTANDING_TOKEN_CLAUSE),
        ),
    )

    token = Column(String(64), primary_key=True)
    game_id = Column(Integer, ForeignKey("poker_games.id", ondelete="SET NULL"), nullable=True, index=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    purpose = Column(String(32), nullable=False)  # join_invite | confirm_reservation
    status = Column(String(16), nullable=False, default="pending")  # pending | sent | confirmed | declined | expired | failed
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    used_at = Column(DateTime(timezone=True), nullable=True)
