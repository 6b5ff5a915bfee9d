"""One row per taken seat at a poker game.

Seat numbers run 1..capacity. UNIQUE(game_id, seat_no) keeps concurrent confirms from seating more
players than the table holds, and UNIQUE(game_id, user_id) keeps a player from holding two seats
(and so two confirmed poker reservations) at the same game.
"""
from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint

from clubhouse.db.base import Base


class PokerSeatClaim(Base):
    __tablename__ = "poker_seat_claims"
    __table_args__ = (
        UniqueConstraint("game_id", "seat_no", name="uq_poker_seat_claims_game_seat"),
        UniqueConstraint("game_id", "user_id", name="uq_poker_seat_claims_game_user"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    game_id = Column(Integer, ForeignKey("poker_games.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    seat_no = Column(Integer, nullable=False)
    reservation_id = Column(Integer, ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False, index=True)
