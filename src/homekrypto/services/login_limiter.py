"""Per-account login lockout.

Counts consecutive failed logins on the user row. Reaching
max_login_attempts sets lockout_until = now + lockout_minutes and resets
the counter; while lockout_until is in the future every attempt for the
account is refused, even with the right password. A successful login
clears the counter.

The limiter fails open: if its own reads or writes hit a database error
the attempt is allowed and the error logged. An outage of the limiter
must not lock every user out, at the cost of brute-force resistance
while it lasts. Each limiter write runs in a SAVEPOINT so a failure
there cannot poison the caller's transaction.
"""

from datetime import timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from homekrypto.config import Settings, settings as default_settings
from homekrypto.db.models import User, utcnow
from homekrypto.events.store import EventStore
from homekrypto.events.types import ACCOUNT_LOCKED

logger = structlog.get_logger()


class LoginLimiter:
    def __init__(self, db: AsyncSession, config: Settings = default_settings):
        self.db = db
        self.config = config
        self.events = EventStore(db)

    async def _load(self, email: str) -> User | None:
        result = await self.db.execute(
            select(User)
            .where(User.email == email.strip().lower())
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def check_login_attempts(self, email: str) -> bool:
        """True if the account may attempt a login right now."""
        try:
            user = await self._load(email)
        except SQLAlchemyError:
            logger.warning("login_limiter.unavailable", op="check", exc_info=True)
            return True
        if user is None or user.lockout_until is None:
            return True
        return user.lockout_until <= utcnow()

    async def record_failed_login(self, email: str) -> bool:
        """Count a failure. Returns True if this failure locked the account."""
        try:
            async with self.db.begin_nested():
                user = await self._load(email)
                if user is None:
                    return False
                now = utcnow()
                if user.lockout_until is not None and user.lockout_until <= now:
                    # previous lockout elapsed, start counting afresh
                    user.lockout_until = None
                    user.login_attempts = 0
                user.login_attempts += 1
                locked = user.login_attempts >= self.config.max_login_attempts
                if locked:
                    user.lockout_until = now + timedelta(
                        minutes=self.config.lockout_minutes
                    )
                    user.login_attempts = 0
                    await self.events.append(
                        stream_id=f"user:{user.id}",
                        event_type=ACCOUNT_LOCKED,
                        data={"lockout_minutes": self.config.lockout_minutes},
                    )
            return locked
        except SQLAlchemyError:
            logger.warning("login_limiter.unavailable", op="record_failure", exc_info=True)
            return False

    async def record_successful_login(self, user: User) -> None:
        """Reset the counter and stamp last_login_at."""
        try:
            async with self.db.begin_nested():
                user.login_attempts = 0
                user.lockout_until = None
                user.last_login_at = utcnow()
        except SQLAlchemyError:
            logger.warning("login_limiter.unavailable", op="record_success", exc_info=True)
