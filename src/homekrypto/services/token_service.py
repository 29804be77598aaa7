"""One-time tokens for password reset and email verification.

State machine per token:
    issued (valid) → consumed
                   → expired       (expires_at passed)
                   → superseded    (a newer token of the same kind was issued)

Consumed and superseded tokens both carry used=True. Only the most
recently issued unconsumed token of a kind is ever valid for a user,
so there is never more than one working reset link in someone's inbox.

Token values come from secrets.token_urlsafe (CSPRNG) and are never
logged or written to the audit log.
"""

import enum
import secrets
from datetime import timedelta
from typing import Optional, Type, Union

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from homekrypto.config import Settings, settings as default_settings
from homekrypto.db.models import EmailVerificationToken, PasswordResetToken, utcnow

OneTimeToken = Union[PasswordResetToken, EmailVerificationToken]


class TokenKind(str, enum.Enum):
    PASSWORD_RESET = "password_reset"
    EMAIL_VERIFICATION = "email_verification"


_MODELS: dict[TokenKind, Type[OneTimeToken]] = {
    TokenKind.PASSWORD_RESET: PasswordResetToken,
    TokenKind.EMAIL_VERIFICATION: EmailVerificationToken,
}


def generate_token() -> str:
    """256 bits from the OS CSPRNG, URL-safe."""
    return secrets.token_urlsafe(32)


class TokenService:
    def __init__(self, db: AsyncSession, config: Settings = default_settings):
        self.db = db
        self.config = config

    def default_ttl(self, kind: TokenKind) -> timedelta:
        if kind is TokenKind.PASSWORD_RESET:
            return timedelta(minutes=self.config.password_reset_expire_minutes)
        return timedelta(hours=self.config.email_verification_expire_hours)

    async def issue_one_time_token(
        self,
        user_id: int,
        kind: TokenKind,
        ttl: Optional[timedelta] = None,
    ) -> str:
        """Issue a fresh token, superseding any unconsumed ones of the same kind."""
        model = _MODELS[kind]
        await self.supersede(user_id, kind)

        token = generate_token()
        self.db.add(
            model(
                user_id=user_id,
                token=token,
                expires_at=utcnow() + (ttl or self.default_ttl(kind)),
                used=False,
            )
        )
        await self.db.flush()
        return token

    async def supersede(self, user_id: int, kind: TokenKind) -> int:
        """Mark all outstanding tokens of a kind as used."""
        model = _MODELS[kind]
        result = await self.db.execute(
            update(model)
            .where(model.user_id == user_id, model.used.is_(False))
            .values(used=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def _find_valid(self, token: str, kind: TokenKind) -> Optional[OneTimeToken]:
        model = _MODELS[kind]
        result = await self.db.execute(
            select(model).where(
                model.token == token,
                model.used.is_(False),
                model.expires_at > utcnow(),
            )
        )
        return result.scalars().first()

    async def validate_token(self, token: str, kind: TokenKind) -> Optional[int]:
        """Return the owning user id iff the token is unused and unexpired."""
        if not token:
            return None
        record = await self._find_valid(token, kind)
        return record.user_id if record else None

    async def consume_token(
        self, token: str, kind: TokenKind, user_id: int
    ) -> bool:
        """Atomically flip used=False → True for a valid token of this user.

        Returns False if another request consumed it first, it expired,
        or it belongs to someone else.
        """
        model = _MODELS[kind]
        result = await self.db.execute(
            update(model)
            .where(
                model.token == token,
                model.user_id == user_id,
                model.used.is_(False),
                model.expires_at > utcnow(),
            )
            .values(used=True)
            .execution_options(synchronize_session=False)
        )
        return (result.rowcount or 0) == 1

    async def purge_stale(self) -> int:
        """Delete consumed, superseded and expired tokens of every kind."""
        removed = 0
        now = utcnow()
        for model in _MODELS.values():
            result = await self.db.execute(
                delete(model)
                .where(or_(model.used.is_(True), model.expires_at <= now))
                .execution_options(synchronize_session=False)
            )
            removed += result.rowcount or 0
        return removed
