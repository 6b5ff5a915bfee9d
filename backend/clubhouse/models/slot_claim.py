"""One row per grid point held by a confirmed shared-room reservation.

The unique (room, date, slot_minute) constraint is the store-level guard against two confirmed
reservations overlapping: the second concurrent insert fails and that writer falls back to waitlisted.
slot_minute counts from midnight of `date` and exceeds 1440 after midnight.
"""
from sqlalchemy import Column, Date, ForeignKey, Integer, String, UniqueConstraint

from clubhouse.db.base import Base


class ReservationSlotClaim(Base):
    __tablename__ = "reservation_slot_claims"
    __table_args__ = (
        UniqueConstraint("room", "date", "slot_minute", name="uq_slot_claims_room_date_minute"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False, index=True)
    room = Column(String(16), nullable=False)
    date = Column(Date, nullable=False)
    slot_minute = Column(Integer, nullable=False)
