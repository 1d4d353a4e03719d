from datetime import timedelta

import pytest
from sqlalchemy import update

from authstarter.core.errors import AppError, ErrorCode
from authstarter.core.security import now_utc
from authstarter.models.login_attempt import LoginAttempt
from authstarter.services.login_attempts import LoginAttemptTracker, attempt_key

TRACKER = LoginAttemptTracker(max_attempts=3, window=timedelta(minutes=15), lockout=timedelta(minutes=10))


def test_attempt_key_normalizes_email_and_source():
    assert attempt_key(" User@Example.com ", "10.0.0.1") == ("user@example.com", "10.0.0.1")
    assert attempt_key("a@example.com", None) == ("a@example.com", "unknown")
    assert attempt_key("a@example.com", "") == ("a@example.com", "unknown")


async def test_lock_after_max_failures(database):
    async with database.sessions() as db:
        for _ in range(3):
            await TRACKER.ensure_not_locked(db, "a@example.com", "1.1.1.1")
            await TRACKER.record_failure(db, "a@example.com", "1.1.1.1")
            await db.commit()

        with pytest.raises(AppError) as exc:
            await TRACKER.ensure_not_locked(db, "A@example.com", "1.1.1.1")
        assert exc.value.status_code == 429
        assert exc.value.code == ErrorCode.LOGIN_LOCKED

        # a different source address is tracked separately
        await TRACKER.ensure_not_locked(db, "a@example.com", "2.2.2.2")


async def test_failures_accumulate_within_window(database):
    async with database.sessions() as db:
        await TRACKER.record_failure(db, "a@example.com", "1.1.1.1")
        rec = await TRACKER.record_failure(db, "a@example.com", "1.1.1.1")
        await db.commit()

        assert rec.fail_count == 2
        assert rec.locked_until is None


async def test_stale_record_is_cleared_on_check(database, sync_engine):
    async with database.sessions() as db:
        await TRACKER.record_failure(db, "a@example.com", "1.1.1.1")
        await TRACKER.record_failure(db, "a@example.com", "1.1.1.1")
        await db.commit()

    old = now_utc() - timedelta(hours=1)
    with sync_engine.begin() as conn:
        conn.execute(update(LoginAttempt).values(last_failed_at=old))

    async with database.sessions() as db:
        await TRACKER.ensure_not_locked(db, "a@example.com", "1.1.1.1")
        await db.commit()
        assert await db.get(LoginAttempt, ("a@example.com", "1.1.1.1")) is None

        rec = await TRACKER.record_failure(db, "a@example.com", "1.1.1.1")
        await db.commit()
        assert rec.fail_count == 1


async def test_expired_lock_restarts_count(database, sync_engine):
    async with database.sessions() as db:
        for _ in range(3):
            await TRACKER.record_failure(db, "a@example.com", "1.1.1.1")
        await db.commit()

    past = now_utc() - timedelta(minutes=1)
    with sync_engine.begin() as conn:
        conn.execute(update(LoginAttempt).values(locked_until=past))

    async with database.sessions() as db:
        # lock has lapsed: no error, and the next failure starts over at one
        await TRACKER.ensure_not_locked(db, "a@example.com", "1.1.1.1")
        rec = await TRACKER.record_failure(db, "a@example.com", "1.1.1.1")
        await db.commit()

        assert rec.fail_count == 1
        assert rec.locked_until is None


async def test_clear_removes_record(database):
    async with database.sessions() as db:
        await TRACKER.record_failure(db, "a@example.com", "1.1.1.1")
        await db.commit()

        await TRACKER.clear(db, "a@example.com", "1.1.1.1")
        await db.commit()

        db.expunge_all()
        assert await db.get(LoginAttempt, ("a@example.com", "1.1.1.1")) is None
