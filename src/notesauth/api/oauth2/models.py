# OAuth2 data models.
# Created: 2026-10-19

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime


@dataclass
class OAuthClient:
    """Registered public OAuth2 client.

    ``client_id`` is either a generated opaque id (DCR) or the canonical HTTPS
    URL of the client's metadata document.
    """

    client_id: str
    client_name: str
    redirect_uris: list[str] = field(default_factory=list)
    token_endpoint_auth_method: str = "none"
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class AuthorizationCode:
    """Single-use authorization code bound to client, redirect, resource and PKCE challenge."""

    code: str
    client_id: str
    redirect_uri: str
    resource: str
    scope: str
    code_challenge: str
    code_challenge_method: str  # "S256"
    user_id: str
    expires_at: datetime
    user_name: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    used: bool = False

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.now(UTC)) >= self.expires_at


@dataclass
class DemoUser:
    id: str
    username: str
    password: str
    display_name: str


@dataclass
class OAuthError:
    """OAuth error code plus a short human description.

    ``error`` is one of invalid_request, unauthorized_client, invalid_grant,
    invalid_client_metadata.
    """

    error: str
    description: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"error": self.error}


@dataclass
class AuthorizeRequest:
    """Validated /authorize parameters; ``scope`` is already normalized."""

    client_id: str
    redirect_uri: str
    scope: str
    state: str
    code_challenge: str
    resource: str
    client_name: str
    response_type: str = "code"
    code_challenge_method: str = "S256"

    @property
    def scopes(self) -> list[str]:
        return self.scope.split()
