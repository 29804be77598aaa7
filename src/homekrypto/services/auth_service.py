"""Auth service — registration, login, password and email flows.

Learn: this is the orchestration layer. It owns the transaction for
every account flow and composes the smaller services:

    SessionService  → session rows behind the cookie
    TokenService    → one-time reset / verification tokens
    LoginLimiter    → per-account lockout
    EmailNotifier   → queued email (send() never waits on delivery)

Each public method commits exactly once, after every state change of
the flow has been flushed, and only then queues its email. A crash
before the commit leaves nothing half-applied; an email failure after
it cannot undo anything.

Enumeration policy: registration reveals a duplicate email (the form
needs to say so), forgot-password never does, and login reports the
same "Invalid email or password" for unknown users and wrong passwords.
"""

import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from homekrypto.auth.password import hash_password, verify_password
from homekrypto.config import Settings, settings as default_settings
from homekrypto.db.models import User
from homekrypto.errors import (
    AuthenticationError,
    ConflictError,
    InvalidCredentialsError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from homekrypto.events.store import EventStore
from homekrypto.events.types import (
    EMAIL_VERIFIED,
    LOGIN_FAILED,
    LOGIN_SUCCEEDED,
    PASSWORD_CHANGED,
    PASSWORD_RESET_COMPLETED,
    PASSWORD_RESET_REQUESTED,
    SESSIONS_REVOKED,
    USER_PROFILE_UPDATED,
    USER_REGISTERED,
    VERIFICATION_RESENT,
)
from homekrypto.notifications.notifier import EmailNotifier
from homekrypto.notifications.templates import (
    password_changed_email,
    password_reset_email,
    verification_email,
)
from homekrypto.services.login_limiter import LoginLimiter
from homekrypto.services.session_service import IssuedSession, SessionService
from homekrypto.services.token_service import TokenKind, TokenService

logger = structlog.get_logger()

_REFERRAL_ALPHABET = string.ascii_uppercase + string.digits
FORGOT_PASSWORD_MESSAGE = "If the email exists, a password reset link has been sent"


@dataclass
class ClientInfo:
    """Where a request came from. Used for session rows and security emails."""

    user_agent: str = ""
    ip_address: str = ""


def browser_family(user_agent: Optional[str]) -> str:
    """Coarse browser name for security emails. Edge must be checked before Chrome."""
    if not user_agent:
        return "Unknown Device/Browser"
    if "Edg" in user_agent:
        return "Edge"
    if "Firefox" in user_agent:
        return "Firefox"
    if "Chrome" in user_agent:
        return "Chrome"
    if "Safari" in user_agent:
        return "Safari"
    return "Unknown Browser"


def coarse_location(ip_address: Optional[str]) -> str:
    # No geo-IP lookup; loopback is the only address we can name.
    if ip_address in ("127.0.0.1", "::1", "localhost"):
        return "Local/Development Environment"
    return "Location unavailable"


class AuthService:
    """Business logic for accounts and sessions."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: EmailNotifier,
        config: Settings = default_settings,
    ):
        self.db = db
        self.notifier = notifier
        self.config = config
        self.events = EventStore(db)
        self.sessions = SessionService(db, config)
        self.tokens = TokenService(db, config)
        self.limiter = LoginLimiter(db, config)

    # ─── Lookups ────────────────────────────────────────

    async def get_user(self, user_id: int) -> User | None:
        result = await self.db.execute(
            select(User)
            .where(User.id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def get_user_by_email(self, email: str) -> User | None:
        result = await self.db.execute(
            select(User).where(User.email == email.strip().lower())
        )
        return result.scalars().first()

    async def _new_referral_code(self) -> str:
        while True:
            code = "".join(secrets.choice(_REFERRAL_ALPHABET) for _ in range(8))
            taken = await self.db.execute(
                select(User.id).where(User.referral_code == code)
            )
            if taken.first() is None:
                return code

    # ─── Registration ───────────────────────────────────

    async def register(
        self,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        referral_code: Optional[str] = None,
    ) -> User:
        """Create an unverified account and email a verification link."""
        email = email.strip().lower()
        if await self.get_user_by_email(email):
            raise ConflictError("User already exists with this email")

        referred_by = None
        if referral_code:
            result = await self.db.execute(
                select(User.id).where(
                    User.referral_code == referral_code.strip().upper()
                )
            )
            referred_by = result.scalar()
            if referred_by is None:
                raise ValidationError("Invalid referral code")

        user = User(
            email=email,
            password_hash=hash_password(password, self.config.bcrypt_rounds),
            first_name=first_name,
            last_name=last_name,
            referral_code=await self._new_referral_code(),
            referred_by=referred_by,
        )
        self.db.add(user)
        try:
            await self.db.flush()
        except IntegrityError:
            # Lost a race with a concurrent registration of the same email
            await self.db.rollback()
            raise ConflictError("User already exists with this email")

        token = await self.tokens.issue_one_time_token(
            user.id, TokenKind.EMAIL_VERIFICATION
        )
        await self.events.append(
            stream_id=f"user:{user.id}",
            event_type=USER_REGISTERED,
            data={"referred_by": referred_by},
        )
        await self.db.commit()

        self.notifier.send(
            verification_email(user.email, token, user.first_name, self.config)
        )
        logger.info("auth.registered", user_id=user.id)
        return user

    # ─── Login / logout ─────────────────────────────────

    async def login(
        self,
        email: str,
        password: str,
        remember_me: Optional[bool] = None,
        client: Optional[ClientInfo] = None,
    ) -> tuple[User, IssuedSession]:
        """Check lockout, verify the password, open a session.

        A locked account is refused before the password is looked at,
        so the right password does not help during the lockout window.
        """
        client = client or ClientInfo()
        email = email.strip().lower()

        if not await self.limiter.check_login_attempts(email):
            logger.warning("auth.login_locked")
            raise RateLimitError(
                "Account temporarily locked due to too many failed attempts"
            )

        user = await self.get_user_by_email(email)
        # verify_password burns a hash comparison even for unknown users
        if not verify_password(password, user.password_hash if user else None):
            if user is not None:
                locked = await self.limiter.record_failed_login(email)
                await self.events.append(
                    stream_id=f"user:{user.id}",
                    event_type=LOGIN_FAILED,
                    data={"ip_address": client.ip_address, "locked": locked},
                )
                await self.db.commit()
                logger.info("auth.login_failed", user_id=user.id, locked=locked)
            else:
                logger.info("auth.login_failed", user_id=None)
            raise InvalidCredentialsError()

        await self.limiter.record_successful_login(user)
        issued = await self.sessions.issue_session_token(
            user,
            user_agent=client.user_agent,
            ip_address=client.ip_address,
            remember_me=remember_me,
        )
        await self.events.append(
            stream_id=f"user:{user.id}",
            event_type=LOGIN_SUCCEEDED,
            data={"ip_address": client.ip_address, "remember_me": remember_me},
        )
        await self.db.commit()
        logger.info("auth.login_succeeded", user_id=user.id)
        return user, issued

    async def logout(self, token: Optional[str]) -> None:
        """Revoke the presented session. Unknown or missing tokens are fine."""
        if not token:
            return
        await self.sessions.revoke(token)
        await self.db.commit()

    async def logout_all(self, user_id: int) -> int:
        revoked = await self.sessions.revoke_all(user_id)
        await self.events.append(
            stream_id=f"user:{user_id}",
            event_type=SESSIONS_REVOKED,
            data={"reason": "logout_all", "count": revoked},
        )
        await self.db.commit()
        logger.info("auth.logout_all", user_id=user_id, revoked=revoked)
        return revoked

    # ─── Password reset ─────────────────────────────────

    async def forgot_password(self, email: str) -> str:
        """Email a reset link if the account exists. Same answer either way."""
        user = await self.get_user_by_email(email)
        if user is None:
            logger.info("auth.reset_requested", known=False)
            return FORGOT_PASSWORD_MESSAGE

        token = await self.tokens.issue_one_time_token(
            user.id, TokenKind.PASSWORD_RESET
        )
        await self.events.append(
            stream_id=f"user:{user.id}",
            event_type=PASSWORD_RESET_REQUESTED,
            data={},
        )
        await self.db.commit()
        self.notifier.send(
            password_reset_email(user.email, token, user.first_name, self.config)
        )
        logger.info("auth.reset_requested", known=True)
        return FORGOT_PASSWORD_MESSAGE

    async def validate_reset_token(self, token: str) -> bool:
        return await self.tokens.validate_token(token, TokenKind.PASSWORD_RESET) is not None

    async def reset_password(
        self,
        token: str,
        new_password: str,
        client: Optional[ClientInfo] = None,
    ) -> User:
        """Set a new password from a reset token.

        One transaction: new hash, lockout cleared, token consumed, every
        session deleted. If the conditional consume loses a race the whole
        transaction is rolled back and the caller gets the same neutral
        400 as for an expired token.
        """
        client = client or ClientInfo()
        user_id = await self.tokens.validate_token(token, TokenKind.PASSWORD_RESET)
        user = await self.get_user(user_id) if user_id is not None else None
        if user is None:
            raise ValidationError("Invalid or expired reset token")

        user.password_hash = hash_password(new_password, self.config.bcrypt_rounds)
        user.login_attempts = 0
        user.lockout_until = None
        await self.db.flush()

        if not await self.tokens.consume_token(token, TokenKind.PASSWORD_RESET, user.id):
            await self.db.rollback()
            raise ValidationError("Invalid or expired reset token")

        revoked = await self.sessions.revoke_all(user.id)
        await self.events.append(
            stream_id=f"user:{user.id}",
            event_type=PASSWORD_RESET_COMPLETED,
            data={"sessions_revoked": revoked, "ip_address": client.ip_address},
        )
        await self.db.commit()

        self._send_password_changed(user, client)
        logger.info("auth.password_reset", user_id=user.id, sessions_revoked=revoked)
        return user

    async def change_password(
        self,
        user_id: int,
        current_password: str,
        new_password: str,
        client: Optional[ClientInfo] = None,
    ) -> None:
        """Change password for a logged-in user. Other sessions stay valid."""
        client = client or ClientInfo()
        user = await self.get_user(user_id)
        if user is None:
            raise AuthenticationError("Invalid or expired session")
        if not user.password_hash:
            raise ValidationError("Password change not available for this account")
        if not verify_password(current_password, user.password_hash):
            raise InvalidCredentialsError("Current password is incorrect")

        user.password_hash = hash_password(new_password, self.config.bcrypt_rounds)
        await self.events.append(
            stream_id=f"user:{user.id}",
            event_type=PASSWORD_CHANGED,
            data={"ip_address": client.ip_address},
        )
        await self.db.commit()

        self._send_password_changed(user, client)
        logger.info("auth.password_changed", user_id=user.id)

    def _send_password_changed(self, user: User, client: ClientInfo) -> None:
        name = " ".join(p for p in (user.first_name, user.last_name) if p) or None
        self.notifier.send(
            password_changed_email(
                user.email,
                name,
                timestamp=datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC"),
                ip_address=client.ip_address or "Unknown",
                browser=browser_family(client.user_agent),
                location=coarse_location(client.ip_address),
                config=self.config,
            )
        )

    # ─── Email verification ─────────────────────────────

    async def verify_email(
        self, token: str, client: Optional[ClientInfo] = None
    ) -> tuple[User, IssuedSession]:
        """Mark the email verified and log the user straight in."""
        client = client or ClientInfo()
        user_id = await self.tokens.validate_token(token, TokenKind.EMAIL_VERIFICATION)
        user = await self.get_user(user_id) if user_id is not None else None
        if user is None:
            raise ValidationError("Invalid or expired verification token")

        if not await self.tokens.consume_token(
            token, TokenKind.EMAIL_VERIFICATION, user.id
        ):
            await self.db.rollback()
            raise ValidationError("Invalid or expired verification token")
        user.is_email_verified = True
        await self.events.append(
            stream_id=f"user:{user.id}",
            event_type=EMAIL_VERIFIED,
            data={},
        )

        issued = await self.sessions.issue_session_token(
            user, user_agent=client.user_agent, ip_address=client.ip_address
        )
        await self.db.commit()
        logger.info("auth.email_verified", user_id=user.id)
        return user, issued

    async def resend_verification(self, email: str) -> User:
        user = await self.get_user_by_email(email)
        if user is None:
            raise NotFoundError("User not found")
        if user.is_email_verified:
            raise ValidationError("Email is already verified")

        token = await self.tokens.issue_one_time_token(
            user.id, TokenKind.EMAIL_VERIFICATION
        )
        await self.events.append(
            stream_id=f"user:{user.id}",
            event_type=VERIFICATION_RESENT,
            data={},
        )
        await self.db.commit()
        self.notifier.send(
            verification_email(user.email, token, user.first_name, self.config)
        )
        return user

    # ─── Profile ────────────────────────────────────────

    async def update_profile(
        self,
        user_id: int,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        username: Optional[str] = None,
    ) -> User:
        user = await self.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")

        changed: list[str] = []
        if username is not None and username != user.username:
            taken = await self.db.execute(
                select(User.id).where(User.username == username, User.id != user.id)
            )
            if taken.first() is not None:
                raise ConflictError("Username is already taken")
            user.username = username
            changed.append("username")
        if first_name is not None:
            user.first_name = first_name
            changed.append("first_name")
        if last_name is not None:
            user.last_name = last_name
            changed.append("last_name")

        if changed:
            try:
                await self.db.flush()
            except IntegrityError:
                await self.db.rollback()
                raise ConflictError("Username is already taken")
            await self.events.append(
                stream_id=f"user:{user.id}",
                event_type=USER_PROFILE_UPDATED,
                data={"fields": changed},
            )
        await self.db.commit()
        return user
