from __future__ import annotations

import hashlib
import secrets

SESSION_CREDENTIAL_BYTES = 32


def hash_verification_token(token: str, secret: str) -> str:
    """Digest a verification token for storage, using the server secret as salt.

    The digest is deterministic so the request can later be found by it. This
    is a plain salted SHA-256, not a password hash: there is no per-token salt
    and no work factor.
    """

    return hashlib.sha256(f"{token}{secret}".encode()).hexdigest()


def generate_session_credential() -> str:
    """Random bearer credential: 32 bytes from the OS CSPRNG as 64 hex chars."""

    return secrets.token_hex(SESSION_CREDENTIAL_BYTES)


__all__ = ["hash_verification_token", "generate_session_credential"]
