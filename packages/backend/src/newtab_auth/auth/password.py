"""Password hashing utilities.

Learn: Uses bcrypt for secure password hashing. bcrypt automatically
handles salting and is resistant to rainbow table attacks.
The work factor (rounds=12 by default) takes ~100ms per hash on modern
hardware; tests lower it through NEWTAB_AUTH_BCRYPT_ROUNDS.
"""

from functools import lru_cache

import bcrypt

from newtab_auth.config import settings


def _pw_bytes(password: str) -> bytes:
    # bcrypt only looks at the first 72 bytes.
    return password.encode("utf-8")[:72]


def hash_password(password: str, rounds: int | None = None) -> str:
    """Hash a password with bcrypt. The salt is generated per hash."""
    salt = bcrypt.gensalt(rounds=rounds or settings.bcrypt_rounds)
    return bcrypt.hashpw(_pw_bytes(password), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its bcrypt hash."""
    try:
        return bcrypt.checkpw(_pw_bytes(password), password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False


@lru_cache
def dummy_hash() -> str:
    """A throwaway hash for equal-time comparisons against unknown emails."""
    return hash_password("not-a-real-password")
