"""
auth/passwords.py -- Password hashing and verification.

Passwords: bcrypt used directly (no passlib wrapper). Bcrypt is the right
choice for low-entropy secrets because its cost factor makes brute-force
expensive, and checkpw compares in constant time.

bcrypt only ever reads the first 72 bytes of a secret, and recent releases
raise on longer input instead of truncating. _encode() truncates explicitly
so long passwords hash and verify the same way on every bcrypt version; no
maximum length is enforced.

The _DUMMY_HASH constant enables timing equalization: verify_dummy() runs a
full bcrypt check when the account does not exist, so response time does not
reveal whether an email is registered [C1].

Layer rule: no imports from api/.
"""

from __future__ import annotations

import bcrypt

MIN_PASSWORD_LENGTH = 6

_BCRYPT_MAX_BYTES = 72


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(_encode(plain), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash counts as a mismatch rather than an error.
    """
    try:
        return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("sessiongate_timing_dummy")


def verify_dummy(plain: str) -> bool:
    """Burn one bcrypt verification for a login against an unknown email [C1].

    Always returns False.
    """
    verify_password(plain, _DUMMY_HASH)
    return False
