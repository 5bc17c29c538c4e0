"""Password hashing and verification.

bcrypt with a fixed adaptive cost factor. The salt is generated per call
and embedded in the digest; comparison is delegated to bcrypt.checkpw,
which runs in constant time.
"""

import bcrypt

from credential_service.core.config import settings

# bcrypt only consumes the first 72 bytes of its input
MAX_PASSWORD_BYTES = 72

# Pre-computed bcrypt hash for timing-safe comparison on user-not-found.
# Security: prevents user enumeration via response time differences.
# Pre-generated to avoid ~300ms bcrypt computation on every app startup.
DUMMY_HASH = "$2b$12$ZP2PVB8yI35X.mkRqcUPUuSzJA1CNRt4dZ7X3cyrfJu.2S3w.Qen2"


def hash_password(plaintext: str) -> str:
    """Hash a password with bcrypt at the configured cost factor.

    Args:
        plaintext: Plain-text password (at most 72 UTF-8 bytes).

    Returns:
        bcrypt digest as a string (salt and cost embedded).
    """
    return bcrypt.hashpw(
        plaintext.encode(), bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    ).decode()


def verify_password(plaintext: str, digest: str | None) -> bool:
    """Check a password against a stored bcrypt digest.

    Never raises: a missing or malformed digest is a mismatch.

    Args:
        plaintext: Candidate password.
        digest: Stored bcrypt digest.

    Returns:
        True if the password matches the digest.
    """
    if not digest:
        return False
    try:
        return bcrypt.checkpw(plaintext.encode(), digest.encode())
    except ValueError:
        return False


def burn_dummy_check(plaintext: str) -> None:
    """Spend one bcrypt comparison against DUMMY_HASH.

    Called when the email is unknown so the response time matches a
    wrong-password attempt.
    """
    verify_password(plaintext, DUMMY_HASH)
