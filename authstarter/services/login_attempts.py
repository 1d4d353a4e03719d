"""Login brute-force protection keyed by (normalized email, source address)."""
from datetime import timedelta
from typing import Optional
from uuid import UUID
import logging

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from authstarter.core.errors import AppError, ErrorCode
from authstarter.core.security import ensure_aware, normalize_email, now_utc
from authstarter.models.login_attempt import LoginAttempt

logger = logging.getLogger(__name__)

UNKNOWN_SOURCE = "unknown"


def attempt_key(email: str, ip_address: Optional[str]) -> tuple[str, str]:
    ip = (ip_address or "").strip()[:64] or UNKNOWN_SOURCE
    return normalize_email(email), ip


class LoginAttemptTracker:
    """
    Counts consecutive failures and locks the key once `max_attempts` is hit.

    Records are never swept in the background: a stale or expired-lock record
    is cleared lazily the next time the same key is checked.
    """

    def __init__(self, max_attempts: int, window: timedelta, lockout: timedelta) -> None:
        self.max_attempts = max(1, max_attempts)
        self.window = window
        self.lockout = lockout

    async def ensure_not_locked(self, db: AsyncSession, email: str, ip_address: Optional[str]) -> None:
        """Raise LOGIN_LOCKED while a lock is active; drop stale/previously-locked records."""
        rec = await db.get(LoginAttempt, attempt_key(email, ip_address))
        if rec is None:
            return

        now = now_utc()
        locked_until = ensure_aware(rec.locked_until)
        if locked_until is not None and locked_until > now:
            retry_after = int((locked_until - now).total_seconds()) + 1
            raise AppError(
                f"Too many login attempts. Retry after {retry_after} seconds.",
                429,
                ErrorCode.LOGIN_LOCKED,
            )

        if locked_until is not None or ensure_aware(rec.last_failed_at) + self.window < now:
            await db.delete(rec)
            await db.flush()

    async def record_failure(
        self,
        db: AsyncSession,
        email: str,
        ip_address: Optional[str],
        user_id: Optional[UUID] = None,
    ) -> LoginAttempt:
        key_email, key_ip = attempt_key(email, ip_address)
        now = now_utc()
        rec = await db.get(LoginAttempt, (key_email, key_ip))

        if rec is None:
            rec = LoginAttempt(
                email=key_email, ip_address=key_ip, fail_count=1,
                first_failed_at=now, last_failed_at=now, user_id=user_id,
            )
            db.add(rec)
        elif rec.locked_until is not None or ensure_aware(rec.last_failed_at) + self.window < now:
            rec.fail_count = 1
            rec.first_failed_at = now
            rec.last_failed_at = now
            rec.locked_until = None
        else:
            rec.fail_count += 1
            rec.last_failed_at = now

        if user_id is not None:
            rec.user_id = user_id
        if rec.fail_count >= self.max_attempts:
            rec.locked_until = now + self.lockout
            logger.warning("Login locked after repeated failures", extra={"user_id": user_id})

        try:
            await db.flush()
        except IntegrityError:
            # a concurrent request inserted the same key first; losing one count is acceptable
            await db.rollback()
            logger.info("Concurrent login failure for the same key; count not incremented")
        return rec

    async def clear(self, db: AsyncSession, email: str, ip_address: Optional[str]) -> None:
        key_email, key_ip = attempt_key(email, ip_address)
        await db.execute(
            delete(LoginAttempt).where(LoginAttempt.email == key_email, LoginAttempt.ip_address == key_ip)
        )
