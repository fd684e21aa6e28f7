"""Password hashing utilities.

Uses bcrypt for password hashing. bcrypt handles salting itself and the
work factor (rounds=12) takes ~100ms per hash on modern hardware.
Verification is a pure function of (candidate, stored hash) so it can be
used without touching the account record.
"""

import bcrypt

BCRYPT_ROUNDS = 12


def hash_password(password: str, rounds: int | None = None) -> str:
    """Hash a password with bcrypt.

    Passwords are truncated to 72 bytes (bcrypt's limit).
    """
    pw_bytes = password.encode("utf-8")[:72]
    salt = bcrypt.gensalt(rounds=rounds or BCRYPT_ROUNDS)
    return bcrypt.hashpw(pw_bytes, salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a candidate password against a stored bcrypt hash."""
    try:
        pw_bytes = password.encode("utf-8")[:72]
        return bcrypt.checkpw(pw_bytes, password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False
