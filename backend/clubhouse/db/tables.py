"""
Single source of truth for database tables that exist after migrations.

Use these names when writing raw SQL or fan-out deletes.
"""
# All tables that exist in the DB. Must match models and migration 001.
ALL_TABLE_NAMES = (
    "users",
    "reservations",
    "reservation_slot_claims",
    "blocked_slots",
    "poker_games",
    "poker_waitlist",
    "poker_seat_claims",
    "notification_tokens",
    "notification_outbox",
)

# Tables holding per-user rows, in the order ClubRepository.purge_user deletes them (children before users).
PURGE_USER_TABLE_NAMES = (
    "notification_tokens",
    "poker_waitlist",
    "poker_seat_claims",
    "reservation_slot_claims",
    "reservations",
    "notification_outbox",
    "users",
)
