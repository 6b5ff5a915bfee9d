"""Run once per trigger (cron or any external scheduler): auto-close started games, expire stale tokens."""
import logging

from sqlalchemy.orm import Session

from clubhouse.core.clock import Clock, SystemClock
from clubhouse.db.session import SessionLocal
from clubhouse.services.token_service import TokenService
from clubhouse.services.waitlist_service import WaitlistService

logger = logging.getLogger(__name__)


def run_sweep(db: Session, clock: Clock) -> dict:
    """Idempotent: a second run over the same state changes nothing."""
    waitlist = WaitlistService(db, clock)
    closed = waitlist.auto_close_expired_games()
    expired = TokenService(db, clock, waitlist=waitlist).expire_stale_tokens()
    return {"games_closed": closed, "tokens_expired": expired}


def run_sweep_job(clock: Clock | None = None) -> dict | None:
    db = SessionLocal()
    try:
        return run_sweep(db, clock or SystemClock())
    except Exception:
        logger.exception("Sweep job failed")
        db.rollback()
        return None
    finally:
        db.close()
