"""Per-account lockout after repeated failed logins."""

from datetime import timedelta

import pytest

from homekrypto.db.models import utcnow
from homekrypto.events.store import EventStore
from homekrypto.events.types import ACCOUNT_LOCKED
from homekrypto.services.login_limiter import LoginLimiter


@pytest.mark.asyncio
async def test_locks_on_fifth_failure(db, make_user):
    user = await make_user()
    limiter = LoginLimiter(db)

    for _ in range(4):
        assert await limiter.record_failed_login(user.email) is False
        assert await limiter.check_login_attempts(user.email) is True
    assert user.login_attempts == 4

    assert await limiter.record_failed_login(user.email) is True
    assert await limiter.check_login_attempts(user.email) is False
    assert user.login_attempts == 0
    assert user.lockout_until > utcnow() + timedelta(minutes=14)

    events = await EventStore(db).read_stream(f"user:{user.id}")
    assert [e.type for e in events] == [ACCOUNT_LOCKED]


@pytest.mark.asyncio
async def test_email_lookup_is_case_insensitive(db, make_user):
    user = await make_user("mixed@homekrypto.io")
    limiter = LoginLimiter(db)
    await limiter.record_failed_login("  MIXED@HomeKrypto.io ")
    assert user.login_attempts == 1


@pytest.mark.asyncio
async def test_success_resets_counter(db, make_user):
    user = await make_user()
    limiter = LoginLimiter(db)
    for _ in range(3):
        await limiter.record_failed_login(user.email)

    await limiter.record_successful_login(user)
    assert user.login_attempts == 0
    assert user.lockout_until is None
    assert user.last_login_at is not None


@pytest.mark.asyncio
async def test_elapsed_lockout_starts_fresh(db, make_user):
    user = await make_user()
    user.lockout_until = utcnow() - timedelta(seconds=1)
    await db.flush()
    limiter = LoginLimiter(db)

    assert await limiter.check_login_attempts(user.email) is True
    assert await limiter.record_failed_login(user.email) is False
    assert user.lockout_until is None
    assert user.login_attempts == 1


@pytest.mark.asyncio
async def test_unknown_email_is_never_locked(db):
    limiter = LoginLimiter(db)
    for _ in range(10):
        assert await limiter.record_failed_login("ghost@homekrypto.io") is False
    assert await limiter.check_login_attempts("ghost@homekrypto.io") is True
