"""Session service — issuing, resolving and revoking login sessions.

Every login creates a row in the sessions table holding the exact
signed token given to the client. A token is accepted only while:
- its signature verifies (checked in auth.jwt),
- its session row still exists (not revoked), and
- the row has not expired.

Users may hold many sessions at once (one per device). Logout deletes
one row; logout-all and password reset delete every row for the user.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from homekrypto.auth.jwt import create_session_token
from homekrypto.config import Settings, settings as default_settings
from homekrypto.db.models import User, UserSession, utcnow


@dataclass
class IssuedSession:
    token: str
    session: UserSession
    max_age: int  # seconds, for the cookie


class SessionService:
    """Server-side store for session tokens."""

    def __init__(self, db: AsyncSession, config: Settings = default_settings):
        self.db = db
        self.config = config

    def lifetime(self, remember_me: Optional[bool] = None) -> timedelta:
        """Session lifetime: 30 days remembered, 1 day not, 7 days unspecified."""
        if remember_me is None:
            return timedelta(days=self.config.session_expire_days)
        if remember_me:
            return timedelta(days=self.config.session_remember_days)
        return timedelta(days=self.config.session_short_days)

    async def issue_session_token(
        self,
        user: User,
        user_agent: str = "",
        ip_address: str = "",
        remember_me: Optional[bool] = None,
    ) -> IssuedSession:
        """Sign a token for the user and record it so it can be revoked."""
        lifetime = self.lifetime(remember_me)
        token = create_session_token(user.id, user.email, lifetime, self.config)
        now = utcnow()
        session = UserSession(
            user_id=user.id,
            token=token,
            expires_at=now + lifetime,
            user_agent=(user_agent or "")[:500],
            ip_address=(ip_address or "")[:64],
            created_at=now,
            last_used_at=now,
        )
        self.db.add(session)
        await self.db.flush()
        return IssuedSession(
            token=token,
            session=session,
            max_age=int(lifetime.total_seconds()),
        )

    async def resolve(self, token: str, user_id: int) -> Optional[UserSession]:
        """Find the live session for a token, or None if revoked/expired."""
        result = await self.db.execute(
            select(UserSession).where(
                UserSession.token == token,
                UserSession.user_id == user_id,
                UserSession.expires_at > utcnow(),
            )
        )
        return result.scalars().first()

    async def touch(self, session: UserSession) -> None:
        session.last_used_at = utcnow()
        await self.db.flush()

    async def revoke(self, token: str) -> int:
        """Delete a single session. Returns the number of rows removed."""
        result = await self.db.execute(
            delete(UserSession)
            .where(UserSession.token == token)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def revoke_all(self, user_id: int) -> int:
        """Delete every session of a user ("log out everywhere")."""
        result = await self.db.execute(
            delete(UserSession)
            .where(UserSession.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def purge_expired(self) -> int:
        result = await self.db.execute(
            delete(UserSession)
            .where(UserSession.expires_at <= utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
