"""PKCE (Proof Key for Code Exchange) utilities.

Implements RFC 7636 for OAuth 2.1. Only the S256 method exists here: the
authorization server refuses ``plain``.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets

__all__ = [
    "compute_s256_challenge",
    "constant_time_equal",
    "generate_authorization_code",
    "generate_code_verifier",
    "verify_code_challenge",
]


def _base64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def compute_s256_challenge(code_verifier: str) -> str:
    """Return BASE64URL(SHA256(code_verifier)) without padding."""
    return _base64url(hashlib.sha256(code_verifier.encode("ascii")).digest())


def constant_time_equal(a: str, b: str) -> bool:
    """Compare two strings without leaking timing; False on length mismatch."""
    a_bytes = a.encode()
    b_bytes = b.encode()
    if len(a_bytes) != len(b_bytes):
        return False
    return hmac.compare_digest(a_bytes, b_bytes)


def verify_code_challenge(code_verifier: str, code_challenge: str) -> bool:
    """Recompute the S256 challenge for *code_verifier* and compare it."""
    try:
        computed = compute_s256_challenge(code_verifier)
    except UnicodeEncodeError:
        # Verifiers are ASCII by definition (RFC 7636 section 4.1).
        return False
    return constant_time_equal(computed, code_challenge)


def generate_code_verifier() -> str:
    """Random 64-character verifier (within the 43-128 range)."""
    return _base64url(secrets.token_bytes(48))


def generate_authorization_code() -> str:
    return f"ac_{secrets.token_hex(16)}"
