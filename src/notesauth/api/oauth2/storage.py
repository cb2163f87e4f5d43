# OAuth2 client, code and user storage.
# Created: 2026-10-19
#
# Everything is in-memory and lives as long as the process. Single-use of
# authorization codes is enforced by AuthorizationServer.redeem(), not here:
# this is a plain keyed map.

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime

from notesauth.api.oauth2.models import AuthorizationCode, DemoUser, OAuthClient

logger = logging.getLogger(__name__)

# Demo login for the consent page
DEFAULT_DEMO_USER = DemoUser(
    id="u_123",
    username="alex",
    password="password",
    display_name="Alex",
)


class OAuthStorage:
    """In-memory OAuth2 storage.

    Clients can be pre-registered through *clients*; everything else is
    populated at runtime by DCR, metadata-document resolution and /authorize.
    """

    def __init__(
        self,
        clients: Iterable[OAuthClient] = (),
        users: Iterable[DemoUser] = (DEFAULT_DEMO_USER,),
    ):
        self._clients: dict[str, OAuthClient] = {c.client_id: c for c in clients}
        self._codes: dict[str, AuthorizationCode] = {}
        self._users: dict[str, DemoUser] = {u.username: u for u in users}

    # -- clients ---------------------------------------------------------

    def get_client(self, client_id: str) -> OAuthClient | None:
        return self._clients.get(client_id)

    def save_client(self, client: OAuthClient) -> OAuthClient:
        """Insert or replace a client, keeping the original ``created_at``."""
        existing = self._clients.get(client.client_id)
        if existing is not None:
            client.created_at = existing.created_at
        self._clients[client.client_id] = client
        return client

    # -- authorization codes --------------------------------------------

    def store_code(self, code: AuthorizationCode) -> None:
        self._codes[code.code] = code

    def get_code(self, code: str) -> AuthorizationCode | None:
        return self._codes.get(code)

    def mark_code_used(self, code: str) -> None:
        if code in self._codes:
            self._codes[code].used = True

    def cleanup_expired(self) -> int:
        """Drop used or expired codes. Returns how many were removed."""
        now = datetime.now(UTC)
        stale = [k for k, v in self._codes.items() if v.used or v.is_expired(now)]
        for k in stale:
            del self._codes[k]
        if stale:
            logger.debug("Removed %d stale authorization codes", len(stale))
        return len(stale)

    # -- users -----------------------------------------------------------

    def get_user(self, username: str) -> DemoUser | None:
        return self._users.get(username)
