"""Opaque token generation."""

import secrets

# 32 random bytes -> 64 hex characters
TOKEN_BYTES = 32


def generate_token() -> str:
    """Generate an unguessable, fixed-width opaque token.

    Sourced from the OS CSPRNG via the secrets module. Used for email
    verification tokens and for the jti claim of session tokens.

    Returns:
        64-character lowercase hex string.
    """
    return secrets.token_hex(TOKEN_BYTES)
