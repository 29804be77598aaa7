"""Password hashing utilities.

Uses bcrypt for password hashing. bcrypt handles salting itself and the
work factor (rounds=12 by default) takes ~100ms per hash on modern
hardware. Passwords are truncated to 72 bytes, bcrypt's input limit.
"""

from typing import Optional

import bcrypt

from homekrypto.config import settings

# Hash of a throwaway password, checked when the account has no hash so
# unknown and known emails cost the same. Built on first use with the
# configured rounds; the cost prefix must match real hashes.
_dummy_hash: Optional[bytes] = None


def hash_password(password: str, rounds: int | None = None) -> str:
    """Hash a password with bcrypt. Produces "$2b$..." strings."""
    pw_bytes = password.encode("utf-8")[:72]
    salt = bcrypt.gensalt(rounds=rounds or settings.bcrypt_rounds)
    return bcrypt.hashpw(pw_bytes, salt).decode("utf-8")


def dummy_hash() -> bytes:
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = hash_password("homekrypto-dummy-password").encode("utf-8")
    return _dummy_hash


def verify_password(password: str, password_hash: str | None) -> bool:
    """Verify a password against its hash. A missing hash never matches."""
    pw_bytes = password.encode("utf-8")[:72]
    if not password_hash:
        bcrypt.checkpw(pw_bytes, dummy_hash())
        return False
    try:
        return bcrypt.checkpw(pw_bytes, password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False
