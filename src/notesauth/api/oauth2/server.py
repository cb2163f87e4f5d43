# OAuth 2.1 Authorization Server with PKCE and resource indicators.
# Created: 2026-10-19
#
# Authorization code flow (RFC 6749 + RFC 7636 S256 only), Dynamic Client
# Registration (RFC 7591, public clients only), resource indicators (RFC 8707)
# and client-id metadata documents. Access tokens are HS256 JWTs whose
# audience is the configured MCP resource.

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from notesauth.api.oauth2.client_metadata import ClientMetadataResolver, is_valid_redirect_uri
from notesauth.api.oauth2.models import (
    AuthorizationCode,
    AuthorizeRequest,
    DemoUser,
    OAuthClient,
    OAuthError,
)
from notesauth.api.oauth2.storage import OAuthStorage
from notesauth.config import Settings
from notesauth.security.access_tokens import sign_access_token
from notesauth.security.pkce import (
    constant_time_equal,
    generate_authorization_code,
    verify_code_challenge,
)
from notesauth.security.scopes import (
    SCOPES_SUPPORTED,
    format_scope_param,
    is_subset_of_supported,
    normalize_scopes,
    parse_scope_param,
)

logger = logging.getLogger(__name__)


class AuthorizationServer:
    """OAuth2 authorization server for one MCP resource."""

    def __init__(
        self,
        settings: Settings,
        storage: OAuthStorage | None = None,
        metadata_resolver: ClientMetadataResolver | None = None,
    ):
        self.settings = settings
        self.storage = storage or OAuthStorage()
        self.metadata_resolver = metadata_resolver or ClientMetadataResolver(
            self.storage,
            settings.oauth_allowed_client_metadata_hosts,
            timeout=settings.client_metadata_timeout_sec,
            allow_loopback_redirects=not settings.is_production,
        )
        self._redeem_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def metadata(self) -> dict[str, Any]:
        """RFC 8414 metadata, served verbatim at both well-known paths."""
        issuer = self.settings.auth_issuer
        return {
            "issuer": issuer,
            "authorization_endpoint": f"{issuer}/authorize",
            "token_endpoint": f"{issuer}/token",
            "registration_endpoint": f"{issuer}/register",
            "client_id_metadata_document_supported": self.metadata_resolver.enabled,
            "response_types_supported": ["code"],
            "grant_types_supported": ["authorization_code"],
            "token_endpoint_auth_methods_supported": ["none"],
            "code_challenge_methods_supported": ["S256"],
            "scopes_supported": list(SCOPES_SUPPORTED),
            "resource_indicators_supported": True,
        }

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------

    def register_client(
        self,
        redirect_uris: list[str] | None,
        client_name: str | None = None,
        token_endpoint_auth_method: str | None = None,
    ) -> tuple[OAuthClient | None, OAuthError | None]:
        """Dynamic Client Registration for public clients.

        Every redirect URI must be a valid http(s) URI and be on the server's
        allow-list; there is no review workflow, so registration is closed.
        """
        invalid = OAuthError("invalid_client_metadata")

        if (token_endpoint_auth_method or "none") != "none":
            invalid.description = "token_endpoint_auth_method must be none"
            return None, invalid

        normalized = [u.strip() for u in (redirect_uris or []) if u.strip()]
        if not normalized:
            invalid.description = "redirect_uris is required"
            return None, invalid

        allowed = set(self.settings.oauth_allowed_redirect_uris)
        for uri in normalized:
            if not is_valid_redirect_uri(uri) or uri not in allowed:
                invalid.description = f"redirect_uri not allowed: {uri}"
                return None, invalid

        client = self.storage.save_client(
            OAuthClient(
                client_id=f"c_{uuid.uuid4().hex}",
                client_name=client_name or "ChatGPT Connector",
                redirect_uris=list(dict.fromkeys(normalized)),
            )
        )
        logger.info("[DCR] client_id=%s redirect_uris=%d", client.client_id, len(client.redirect_uris))
        return client, None

    async def resolve_client(
        self, client_id: str, requested_redirect_uri: str | None = None
    ) -> OAuthClient | None:
        """Metadata-document URL ids go through the resolver only; others hit the local registry.

        A URL id whose document cannot be fetched or validated right now is not
        resolvable, even if an earlier resolution left a record in storage.
        """
        if not client_id:
            return None
        if self.metadata_resolver.is_metadata_url(client_id):
            return await self.metadata_resolver.resolve(client_id, requested_redirect_uri)
        return self.storage.get_client(client_id)

    # ------------------------------------------------------------------
    # Authorization endpoint
    # ------------------------------------------------------------------

    def validate_authorize_request(
        self, params: Mapping[str, str], client: OAuthClient | None
    ) -> tuple[AuthorizeRequest | None, OAuthError | None]:
        """Validate /authorize parameters (shared by the GET page and the POST form).

        Returns (request, error). If error is not None, request is None.
        """
        response_type = params.get("response_type", "")
        client_id = params.get("client_id", "")
        redirect_uri = params.get("redirect_uri", "")
        code_challenge = params.get("code_challenge", "")
        code_challenge_method = params.get("code_challenge_method", "")
        resource = params.get("resource", "")
        scope = params.get("scope", "")
        state = params.get("state", "")

        if response_type != "code":
            return None, OAuthError("invalid_request", "response_type must be code")

        if not (client_id and redirect_uri and code_challenge and code_challenge_method and resource):
            return None, OAuthError("invalid_request", "Missing required parameters")

        if client is None:
            return None, OAuthError("unauthorized_client", "Unknown client_id")

        # Never redirect errors to a redirect_uri the client did not register.
        if redirect_uri not in client.redirect_uris:
            return None, OAuthError("invalid_request", "redirect_uri not allowed for this client")

        if code_challenge_method != "S256":
            return None, OAuthError("invalid_request", "code_challenge_method must be S256")

        if resource != self.settings.mcp_resource:
            return None, OAuthError("invalid_request", "resource must match MCP_RESOURCE")

        requested = normalize_scopes(parse_scope_param(scope))
        if not requested:
            return None, OAuthError("invalid_request", "scope is required")
        if not is_subset_of_supported(requested):
            return None, OAuthError("invalid_request", "Requested scope is not supported")

        return (
            AuthorizeRequest(
                client_id=client_id,
                redirect_uri=redirect_uri,
                scope=" ".join(requested),
                state=state,
                code_challenge=code_challenge,
                resource=resource,
                client_name=client.client_name,
            ),
            None,
        )

    def authenticate_user(self, username: str, password: str) -> DemoUser | None:
        user = self.storage.get_user(username)
        if user is None or not constant_time_equal(user.password, password):
            return None
        return user

    def issue_code(self, request: AuthorizeRequest, user: DemoUser) -> str:
        """Create and store a single-use code for a consented request.

        Used and expired codes are pruned first, under the redemption lock.
        """
        now = datetime.now(UTC)
        code = generate_authorization_code()
        record = AuthorizationCode(
            code=code,
            client_id=request.client_id,
            redirect_uri=request.redirect_uri,
            resource=request.resource,
            scope=format_scope_param(request.scopes),
            code_challenge=request.code_challenge,
            code_challenge_method="S256",
            user_id=user.id,
            user_name=user.display_name,
            created_at=now,
            expires_at=now + timedelta(seconds=self.settings.auth_code_ttl_sec),
        )
        with self._redeem_lock:
            self.storage.cleanup_expired()
            self.storage.store_code(record)
        return code

    # ------------------------------------------------------------------
    # Token endpoint
    # ------------------------------------------------------------------

    def redeem(
        self,
        *,
        code: str,
        client: OAuthClient | None,
        client_id: str,
        redirect_uri: str,
        resource: str,
        code_verifier: str,
    ) -> tuple[dict[str, Any] | None, OAuthError | None]:
        """Exchange an authorization code + PKCE verifier for an access token.

        Checks run in a fixed order and stop at the first failure. The code is
        marked used under a lock before the token is signed, so concurrent
        redemptions of one code produce exactly one success.

        Returns (token_dict, error).
        """
        if client is None:
            return None, OAuthError("unauthorized_client", "Unknown client_id")

        with self._redeem_lock:
            record = self.storage.get_code(code)
            if record is None:
                return None, OAuthError("invalid_grant", "Unknown code")

            if record.used or record.is_expired():
                return None, OAuthError("invalid_grant", "Code expired or already used")

            if record.client_id != client_id:
                return None, OAuthError("invalid_grant", "client_id mismatch")

            if record.redirect_uri != redirect_uri:
                return None, OAuthError("invalid_grant", "redirect_uri mismatch")

            if record.resource != resource or resource != self.settings.mcp_resource:
                return None, OAuthError("invalid_request", "resource mismatch")

            if not verify_code_challenge(code_verifier, record.code_challenge):
                return None, OAuthError("invalid_request", "PKCE verification failed")

            self.storage.mark_code_used(code)

        token, claims = sign_access_token(
            issuer=self.settings.auth_issuer,
            subject=record.user_id,
            audience=record.resource,
            scope=record.scope,
            name=record.user_name,
            secret=self.settings.jwt_secret,
            ttl_seconds=self.settings.access_token_ttl_sec,
            now=int(time.time()),
        )
        logger.info("[TOKEN] client_id=%s scope=%s aud=%s", client_id, record.scope, claims.aud)

        return {
            "access_token": token,
            "token_type": "Bearer",
            "expires_in": self.settings.access_token_ttl_sec,
            "scope": record.scope,
        }, None
