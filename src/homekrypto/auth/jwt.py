"""Session token signing and verification.

The session cookie carries a JWT signed with the server secret. The
signature lets the auth dependency reject forged tokens before touching
the database; the sessions table still decides whether the token is
live, so revocation is immediate. Role is deliberately not a claim.
"""

import secrets
from datetime import datetime, timedelta, timezone

import jwt

from homekrypto.config import Settings, settings as default_settings


class TokenError(Exception):
    """Raised when token creation/verification fails."""


def create_session_token(
    user_id: int,
    email: str,
    expires_in: timedelta,
    config: Settings = default_settings,
) -> str:
    """Create a signed session token for a user."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": email,
        "type": "session",
        "iat": now,
        "exp": now + expires_in,
        # Unique per issue, so two logins in the same second differ
        "jti": secrets.token_hex(16),
    }
    return jwt.encode(payload, config.jwt_secret, algorithm=config.jwt_algorithm)


def verify_token(token: str, config: Settings = default_settings) -> dict:
    """Verify and decode a session token.

    Returns the payload dict with "sub" converted to an int user id.
    Raises TokenError on failure.
    """
    try:
        payload = jwt.decode(
            token,
            config.jwt_secret,
            algorithms=[config.jwt_algorithm],
            options={"require": ["sub", "exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")

    if payload.get("type") != "session":
        raise TokenError("Not a session token")
    try:
        payload["sub"] = int(payload["sub"])
    except (TypeError, ValueError):
        raise TokenError("Invalid token subject")
    return payload
