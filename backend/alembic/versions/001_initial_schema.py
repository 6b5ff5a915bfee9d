"""Booking engine schema: users, reservations with slot claims, blocked slots, poker games, waitlist, seat claims, tokens, outbox."""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

OUTSTANDING_TOKEN_CLAUSE = "status IN ('pending', 'sent')"


def _timestamps(updated: bool = True) -> list[sa.Column]:
    cols = [sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)]
    if updated:
        cols.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now(), nullable=False)
        )
    return cols


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("role", sa.String(16), nullable=False, server_default="member"),
        sa.Column("strikes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "reservations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.String(5), nullable=False),
        sa.Column("end_time", sa.String(5), nullable=False),
        sa.Column("party_size", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("status", sa.String(16), nullable=False, server_default="confirmed"),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("party_size >= 1", name="ck_reservations_party_size"),
    )
    op.create_index("ix_reservations_user_id", "reservations", ["user_id"])
    op.create_index("ix_reservations_date_type", "reservations", ["date", "type"])

    op.create_table(
        "reservation_slot_claims",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("reservation_id", sa.Integer(), sa.ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("room", sa.String(16), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("slot_minute", sa.Integer(), nullable=False),
        sa.UniqueConstraint("room", "date", "slot_minute", name="uq_slot_claims_room_date_minute"),
    )
    op.create_index("ix_reservation_slot_claims_reservation_id", "reservation_slot_claims", ["reservation_id"])

    op.create_table(
        "blocked_slots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.String(5), nullable=False),
        sa.Column("end_time", sa.String(5), nullable=False),
        sa.Column("reason", sa.String(255), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index("ix_blocked_slots_date", "blocked_slots", ["date"])

    op.create_table(
        "poker_games",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.String(5), nullable=False),
        sa.Column("blind_level", sa.String(64), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="open"),
        sa.Column("max_players", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_poker_games_date", "poker_games", ["date"])
    op.create_index("ix_poker_games_status", "poker_games", ["status"])

    op.create_table(
        "poker_waitlist",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("game_id", sa.Integer(), sa.ForeignKey("poker_games.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(64), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="waiting"),
        *_timestamps(),
        sa.UniqueConstraint("game_id", "user_id", name="uq_poker_waitlist_game_user"),
        sa.UniqueConstraint("game_id", "position", name="uq_poker_waitlist_game_position"),
    )
    op.create_index("ix_poker_waitlist_game_id", "poker_waitlist", ["game_id"])
    op.create_index("ix_poker_waitlist_user_id", "poker_waitlist", ["user_id"])

    op.create_table(
        "poker_seat_claims",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("game_id", sa.Integer(), sa.ForeignKey("poker_games.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(64), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("seat_no", sa.Integer(), nullable=False),
        sa.Column("reservation_id", sa.Integer(), sa.ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False),
        sa.UniqueConstraint("game_id", "seat_no", name="uq_poker_seat_claims_game_seat"),
        sa.UniqueConstraint("game_id", "user_id", name="uq_poker_seat_claims_game_user"),
    )
    op.create_index("ix_poker_seat_claims_game_id", "poker_seat_claims", ["game_id"])
    op.create_index("ix_poker_seat_claims_reservation_id", "poker_seat_claims", ["reservation_id"])

    op.create_table(
        "notification_tokens",
        sa.Column("token", sa.String(64), primary_key=True),
        sa.Column("game_id", sa.Integer(), sa.ForeignKey("poker_games.id", ondelete="SET NULL"), nullable=True),
        sa.Column("user_id", sa.String(64), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("purpose", sa.String(32), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_notification_tokens_game_id", "notification_tokens", ["game_id"])
    op.create_index("ix_notification_tokens_user_id", "notification_tokens", ["user_id"])
    op.create_index("ix_notification_tokens_expires_at", "notification_tokens", ["expires_at"])
    op.create_index(
        "uq_notification_tokens_outstanding",
        "notification_tokens",
        ["game_id", "user_id", "purpose"],
        unique=True,
        postgresql_where=sa.text(OUTSTANDING_TOKEN_CLAUSE),
        sqlite_where=sa.text(OUTSTANDING_TOKEN_CLAUSE),
    )

    op.create_table(
        "notification_outbox",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("channel", sa.String(16), nullable=False, server_default="sms"),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_notification_outbox_user_id", "notification_outbox", ["user_id"])


def downgrade() -> None:
    op.drop_table("notification_outbox")
    op.drop_table("notification_tokens")
    op.drop_table("poker_seat_claims")
    op.drop_table("poker_waitlist")
    op.drop_table("poker_games")
    op.drop_table("blocked_slots")
    op.drop_table("reservation_slot_claims")
    op.drop_table("reservations")
    op.drop_table("users")
