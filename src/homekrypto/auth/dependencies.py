"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to extract
and validate the current user from the session cookie.

A request is authenticated only if all three hold:
1. the cookie's token has a valid signature and is unexpired,
2. a live row for exactly that token exists in the sessions table,
3. the user still exists.

The role comes from the users row read on this request, never from the
token, so demoting an admin takes effect on their next request.
"""

from dataclasses import dataclass

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from homekrypto.auth.jwt import TokenError, verify_token
from homekrypto.config import settings
from homekrypto.db.engine import get_db
from homekrypto.db.models import Role, User
from homekrypto.errors import AuthenticationError, AuthorizationError
from homekrypto.services.session_service import SessionService


@dataclass
class CurrentUser:
    """The authenticated identity making the request."""

    id: int
    email: str
    role: str
    session_id: int
    token: str

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    """Resolve the session cookie to a user (401 if anything is off)."""
    token = request.cookies.get(settings.cookie_name)
    if not token:
        raise AuthenticationError("Authentication required")

    try:
        payload = verify_token(token)
    except TokenError:
        raise AuthenticationError("Invalid session")

    sessions = SessionService(db)
    session = await sessions.resolve(token, payload["sub"])
    if session is None:
        raise AuthenticationError("Invalid or expired session")

    result = await db.execute(
        select(User)
        .where(User.id == session.user_id)
        .execution_options(populate_existing=True)
    )
    user = result.scalars().first()
    if user is None:
        raise AuthenticationError("Invalid or expired session")

    await sessions.touch(session)
    await db.commit()

    return CurrentUser(
        id=user.id,
        email=user.email,
        role=user.role,
        session_id=session.id,
        token=token,
    )


def authorize(user: CurrentUser, required_role: Role) -> None:
    """Raise 403 unless the user holds the role. Admin satisfies any role."""
    if user.is_admin or user.role == required_role.value:
        return
    if required_role is Role.ADMIN:
        raise AuthorizationError("Admin access required")
    raise AuthorizationError("Insufficient permissions")


async def require_admin(
    user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    authorize(user, Role.ADMIN)
    return user
