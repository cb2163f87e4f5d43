# Bearer-token guard for MCP tool calls.
# Created: 2026-10-19
#
# verify() turns the Authorization header into one of three outcomes
# (none / invalid / valid). authorize() combines that outcome with the tool's
# policy into an allow or a 401/403 decision carrying a WWW-Authenticate
# challenge. The specific verification failure is logged, never returned.

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal, assert_never

from notesauth.config import Settings
from notesauth.mcp.context import VerifiedAuthContext
from notesauth.mcp.policy import (
    TOOL_POLICIES,
    OptionalScopesPolicy,
    PublicPolicy,
    RequiredScopesPolicy,
    ToolPolicy,
    get_tool_policy,
    policy_scope_string,
)
from notesauth.security.access_tokens import AccessTokenError, verify_access_token
from notesauth.security.scopes import missing_scopes, scope_claim_to_set

logger = logging.getLogger(__name__)

WWW_AUTHENTICATE_META_KEY = "mcp/www_authenticate"

_BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)

JsonRpcId = str | int | None


def parse_bearer_token(header: str | None) -> str | None:
    """Extract the token from ``Authorization: Bearer <token>``."""
    if not header:
        return None
    match = _BEARER_RE.match(header.strip())
    if not match:
        return None
    return match.group(1).strip() or None


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def build_www_authenticate(
    resource_metadata_url: str,
    scope: str | None = None,
    error: Literal["invalid_token", "insufficient_scope"] | None = None,
    error_description: str | None = None,
) -> str:
    """Build a ``Bearer`` challenge pointing at the protected-resource metadata."""
    parts = [f'Bearer resource_metadata="{_quote(resource_metadata_url)}"']
    if scope:
        parts.append(f'scope="{_quote(scope)}"')
    if error:
        parts.append(f'error="{error}"')
    if error_description:
        parts.append(f'error_description="{_quote(error_description)}"')
    return ", ".join(parts)


def build_tool_auth_error(request_id: JsonRpcId, challenge: str, message: str) -> dict[str, Any]:
    """JSON-RPC tool result carrying the same challenge as the HTTP header."""
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "result": {
            "isError": True,
            "content": [{"type": "text", "text": message}],
            "_meta": {WWW_AUTHENTICATE_META_KEY: [challenge]},
        },
    }


@dataclass
class BearerVerification:
    status: Literal["none", "invalid", "valid"]
    context: VerifiedAuthContext | None = None
    reason: str = ""


@dataclass
class AuthDecision:
    """Outcome of the per-tool check.

    When allowed, *context* is what the tool gets to see (None means
    anonymous). When denied, *status_code*, *challenge* and *message* describe
    the rejection.
    """

    allowed: bool
    context: VerifiedAuthContext | None = None
    status_code: int = 200
    challenge: str = ""
    message: str = ""


class ResourceGuard:
    """Verifies bearer tokens for one MCP resource and applies tool policies."""

    def __init__(self, settings: Settings, policies: Mapping[str, ToolPolicy] = TOOL_POLICIES):
        self.settings = settings
        self.policies = policies

    def verify(self, authorization: str | None) -> BearerVerification:
        token = parse_bearer_token(authorization)
        if token is None:
            return BearerVerification(status="none")

        try:
            claims = verify_access_token(
                token,
                secret=self.settings.jwt_secret,
                issuer=self.settings.auth_issuer,
                audience=self.settings.mcp_resource,
            )
        except AccessTokenError as exc:
            logger.info("[RS] bearer token rejected: %s", exc)
            return BearerVerification(status="invalid", reason=str(exc))

        ctx = VerifiedAuthContext(
            token=token,
            claims=claims,
            sub=claims.sub,
            name=claims.name,
            scopes=scope_claim_to_set(claims.scope),
        )
        return BearerVerification(status="valid", context=ctx)

    def authorize(self, tool_name: str | None, verification: BearerVerification) -> AuthDecision:
        """Decide whether *tool_name* may run for *verification*."""
        ctx = verification.context if verification.status == "valid" else None
        policy = get_tool_policy(tool_name, self.policies)

        if policy is None:
            return AuthDecision(allowed=True, context=ctx)

        if isinstance(policy, PublicPolicy):
            # A stale token must not lock callers out of public tools.
            return AuthDecision(allowed=True, context=ctx)

        if isinstance(policy, RequiredScopesPolicy):
            if verification.status == "none":
                return self._deny(
                    401,
                    policy,
                    error="insufficient_scope",
                    description="You need to login to continue",
                    message="Authentication required: no access token provided.",
                )
            if verification.status == "invalid" or ctx is None:
                return self._deny(
                    401,
                    policy,
                    error="invalid_token",
                    description="Token invalid or expired",
                    message="Authentication required.",
                )
            missing = missing_scopes(ctx.scopes, policy.scopes)
            if missing:
                logger.info("[RS] sub=%s tool=%s missing scopes: %s", ctx.sub, tool_name, " ".join(missing))
                return self._deny(
                    403,
                    policy,
                    error="insufficient_scope",
                    description="Re-authorize to grant required access",
                    message="Insufficient scope.",
                )
            return AuthDecision(allowed=True, context=ctx)

        if isinstance(policy, OptionalScopesPolicy):
            # Sending a bad token is an error even where no token is needed.
            if verification.status == "invalid":
                return self._deny(
                    401,
                    policy,
                    error="invalid_token",
                    description="Token invalid or expired",
                    message="Authentication required.",
                )
            return AuthDecision(allowed=True, context=ctx)

        assert_never(policy)

    def _deny(
        self,
        status_code: int,
        policy: ToolPolicy,
        *,
        error: Literal["invalid_token", "insufficient_scope"],
        description: str,
        message: str,
    ) -> AuthDecision:
        challenge = build_www_authenticate(
            self.settings.resource_metadata_url,
            scope=policy_scope_string(policy),
            error=error,
            error_description=description,
        )
        return AuthDecision(allowed=False, status_code=status_code, challenge=challenge, message=message)
