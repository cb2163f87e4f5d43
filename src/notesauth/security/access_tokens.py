"""HS256 JWT access tokens shared between the AS and the RS.

Claims: ``iss``, ``sub``, ``aud``, ``scope``, ``iat``, ``exp`` and an optional
``name``. The RS keeps no session state; verification depends only on the
token, the shared secret, the issuer and the audience.

The shared symmetric secret is a demo-grade choice that only holds while the
same operator runs both servers. An independently operated RS would need
asymmetric signing and a JWKS endpoint.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from typing import Any

import jwt

__all__ = [
    "AccessTokenClaims",
    "AccessTokenError",
    "sign_access_token",
    "verify_access_token",
]

ALGORITHM = "HS256"


class AccessTokenError(Exception):
    """Token rejected. The message is the internal reason, for server logs only."""


@dataclass
class AccessTokenClaims:
    iss: str
    sub: str
    aud: str | list[str]
    scope: str
    iat: int
    exp: int
    name: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        if self.name is None:
            payload.pop("name")
        return payload


def sign_access_token(
    *,
    issuer: str,
    subject: str,
    audience: str,
    scope: str,
    secret: str,
    ttl_seconds: int,
    name: str | None = None,
    now: int | None = None,
) -> tuple[str, AccessTokenClaims]:
    """Issue a token valid for *ttl_seconds*. Returns (token, claims)."""
    issued_at = int(time.time()) if now is None else now
    claims = AccessTokenClaims(
        iss=issuer,
        sub=subject,
        aud=audience,
        scope=scope,
        iat=issued_at,
        exp=issued_at + ttl_seconds,
        name=name,
    )
    token = jwt.encode(claims.to_payload(), secret, algorithm=ALGORITHM)
    return token, claims


def verify_access_token(token: str, *, secret: str, issuer: str, audience: str) -> AccessTokenClaims:
    """Verify signature, expiry, issuer and audience, then the required claims.

    ``aud`` may be a string or a list of strings; either way *audience* must
    be present exactly.

    Raises:
        AccessTokenError: on any failure. Callers must not echo the message.
    """
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            issuer=issuer,
            audience=audience,
            options={"require": ["exp", "iss", "aud", "sub"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise AccessTokenError("token expired") from exc
    except jwt.InvalidIssuerError as exc:
        raise AccessTokenError("issuer mismatch") from exc
    except jwt.InvalidAudienceError as exc:
        raise AccessTokenError("audience mismatch") from exc
    except jwt.InvalidSignatureError as exc:
        raise AccessTokenError("signature mismatch") from exc
    except jwt.InvalidTokenError as exc:
        raise AccessTokenError(f"malformed token: {exc}") from exc

    sub = payload.get("sub")
    if not isinstance(sub, str) or not sub:
        raise AccessTokenError("token missing sub")
    scope = payload.get("scope")
    if not isinstance(scope, str):
        raise AccessTokenError("token missing scope")
    name = payload.get("name")

    return AccessTokenClaims(
        iss=payload["iss"],
        sub=sub,
        aud=payload["aud"],
        scope=scope,
        iat=int(payload.get("iat", 0)),
        exp=int(payload["exp"]),
        name=name if isinstance(name, str) else None,
    )
