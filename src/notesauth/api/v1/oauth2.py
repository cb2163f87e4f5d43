# OAuth2 router: discovery, register, authorize, token.
# Created: 2026-10-19

from __future__ import annotations

import html
import json
import logging
from typing import Annotated
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, RedirectResponse
from pydantic import ValidationError

from notesauth.api.deps import get_oauth_server
from notesauth.api.oauth2.models import AuthorizeRequest, OAuthError
from notesauth.api.oauth2.server import AuthorizationServer
from notesauth.api.v1.schemas.oauth2 import (
    AuthorizationServerMetadata,
    ClientRegistrationRequest,
    ClientRegistrationResponse,
    TokenRequest,
    TokenResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["OAuth2"])

OAuthServerDep = Annotated[AuthorizationServer, Depends(get_oauth_server)]

_NO_STORE = {"Cache-Control": "no-store"}

_AUTHORIZE_FIELDS = (
    "response_type",
    "client_id",
    "redirect_uri",
    "scope",
    "state",
    "code_challenge",
    "code_challenge_method",
    "resource",
)

_CONSENT_HTML = """<!DOCTYPE html>
<html lang="en"><head><meta charset="utf-8">
<meta name="viewport" content="width=device-width,initial-scale=1">
<title>Authorize access</title>
<style>
body {{ font-family: system-ui; max-width: 560px; margin: 40px auto; padding: 20px; }}
.btn {{ padding: 10px 24px; border: none; border-radius: 6px; cursor: pointer; font-size: 16px; }}
.allow {{ background: #2563eb; color: white; }} .allow:hover {{ background: #1d4ed8; }}
.deny {{ background: #e5e7eb; color: #374151; margin-left: 12px; }}
h2 {{ margin-bottom: 8px; }}
.muted {{ color: #6b7280; font-size: 14px; }}
.scopes {{ background: #f3f4f6; padding: 12px; border-radius: 8px; margin: 16px 0; }}
.scope {{ display: inline-block; background: #dbeafe; padding: 4px 8px;
  border-radius: 4px; margin: 2px; font-size: 14px; }}
.err {{ background: #fee2e2; color: #7f1d1d; padding: 10px 12px; border-radius: 8px; }}
label {{ display: block; margin: 10px 0 4px; font-size: 14px; }}
input[type=text], input[type=password] {{ width: 100%; padding: 8px; box-sizing: border-box; }}
</style></head><body>
<h2>Authorize {client_name}</h2>
<p class="muted">Resource: <code>{resource}</code></p>
{error_block}
<div class="scopes"><strong>Requested permissions:</strong><br>{scope_badges}</div>
<form method="POST" action="/authorize">
{hidden_fields}
<label for="username">Username</label>
<input type="text" id="username" name="username" autocomplete="username" placeholder="alex">
<label for="password">Password</label>
<input type="password" id="password" name="password" autocomplete="current-password">
<p>
<button type="submit" name="decision" value="allow" class="btn allow">Allow</button>
<button type="submit" name="decision" value="deny" class="btn deny">Deny</button>
</p>
<p class="muted">Demo user: <code>alex</code> / <code>password</code></p>
</form></body></html>"""


def render_consent_page(request: AuthorizeRequest, error: str | None = None) -> str:
    """Login + consent page; every OAuth parameter round-trips as a hidden field."""
    esc = html.escape
    hidden = "\n".join(
        f'<input type="hidden" name="{name}" value="{esc(getattr(request, name))}">'
        for name in _AUTHORIZE_FIELDS
    )
    return _CONSENT_HTML.format(
        client_name=esc(request.client_name),
        resource=esc(request.resource),
        error_block=f'<div class="err">{esc(error)}</div>' if error else "",
        scope_badges=" ".join(f'<span class="scope">{esc(s)}</span>' for s in request.scopes),
        hidden_fields=hidden,
    )


def _redirect_with_params(redirect_uri: str, params: dict[str, str]) -> RedirectResponse:
    parts = urlsplit(redirect_uri)
    added = [(k, v) for k, v in params.items() if v]
    replaced = {k for k, _ in added}
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in replaced]
    query.extend(added)
    location = urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), ""))
    return RedirectResponse(location, status_code=302)


def _authorize_error(error: OAuthError) -> PlainTextResponse:
    logger.info("[AUTHORIZE] rejected: %s (%s)", error.error, error.description)
    return PlainTextResponse(f"invalid_request: {error.description}", status_code=400)


def _json_error(error: OAuthError, status_code: int = 400) -> JSONResponse:
    return JSONResponse(error.to_dict(), status_code=status_code, headers=_NO_STORE)


async def _read_params(request: Request) -> dict[str, str]:
    """Form or JSON body as a flat str->str mapping."""
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            data = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}
    form = await request.form()
    return {k: v for k, v in form.items() if isinstance(v, str)}


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


@router.get("/")
async def health():
    return PlainTextResponse("Auth Server OK")


@router.get("/.well-known/oauth-authorization-server", response_model=AuthorizationServerMetadata)
async def authorization_server_metadata(server: OAuthServerDep):
    """OAuth Authorization Server Metadata (RFC 8414)."""
    return JSONResponse(server.metadata(), headers=_NO_STORE)


@router.get("/.well-known/openid-configuration", response_model=AuthorizationServerMetadata)
async def openid_configuration(server: OAuthServerDep):
    """OIDC-compatible alias; same document as the RFC 8414 path."""
    return JSONResponse(server.metadata(), headers=_NO_STORE)


# ---------------------------------------------------------------------------
# Dynamic Client Registration
# ---------------------------------------------------------------------------


@router.post("/register", status_code=201, response_model=ClientRegistrationResponse)
async def register_client(request: Request, server: OAuthServerDep):
    """Dynamic Client Registration (RFC 7591), public clients only."""
    invalid = OAuthError("invalid_client_metadata")
    try:
        body = ClientRegistrationRequest.model_validate(await request.json())
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError):
        return _json_error(invalid)

    client, error = server.register_client(
        redirect_uris=body.redirect_uris,
        client_name=body.client_name,
        token_endpoint_auth_method=body.token_endpoint_auth_method,
    )
    if error:
        logger.info("[DCR] rejected: %s", error.description)
        return _json_error(error)

    payload = ClientRegistrationResponse(
        client_id=client.client_id,
        client_name=client.client_name,
        redirect_uris=client.redirect_uris,
        token_endpoint_auth_method=client.token_endpoint_auth_method,
    )
    return JSONResponse(payload.model_dump(), status_code=201, headers=_NO_STORE)


# ---------------------------------------------------------------------------
# Authorization endpoint
# ---------------------------------------------------------------------------


@router.get("/authorize")
async def authorize(request: Request, server: OAuthServerDep):
    """Show the login + consent page for a valid request."""
    params = {k: request.query_params.get(k, "") for k in _AUTHORIZE_FIELDS}
    client = await server.resolve_client(params["client_id"], params["redirect_uri"])

    validated, error = server.validate_authorize_request(params, client)
    if error:
        return _authorize_error(error)

    return HTMLResponse(render_consent_page(validated))


@router.post("/authorize")
async def authorize_submit(request: Request, server: OAuthServerDep):
    """Process login + consent. The posted hidden fields are validated again."""
    form = await _read_params(request)
    params = {k: form.get(k, "") for k in _AUTHORIZE_FIELDS}
    params["response_type"] = params["response_type"] or "code"
    decision = form.get("decision", "")

    client = await server.resolve_client(params["client_id"], params["redirect_uri"])
    validated, error = server.validate_authorize_request(params, client)
    if error:
        return _authorize_error(error)

    if decision == "deny":
        logger.info("[AUTHORIZE] client_id=%s decision=deny", validated.client_id)
        return _redirect_with_params(
            validated.redirect_uri, {"error": "access_denied", "state": validated.state}
        )

    if decision != "allow":
        return _authorize_error(OAuthError("invalid_request", "decision must be allow or deny"))

    user = server.authenticate_user(form.get("username", ""), form.get("password", ""))
    if user is None:
        # Credentials failed, not authorization: stay on the page.
        return HTMLResponse(
            render_consent_page(validated, error="Invalid username or password"), status_code=401
        )

    code = server.issue_code(validated, user)
    logger.info("[AUTHORIZE] client_id=%s decision=allow scope=%s", validated.client_id, validated.scope)
    return _redirect_with_params(validated.redirect_uri, {"code": code, "state": validated.state})


# ---------------------------------------------------------------------------
# Token endpoint
# ---------------------------------------------------------------------------


@router.post("/token", response_model=TokenResponse)
async def token_exchange(request: Request, server: OAuthServerDep):
    """Exchange an authorization code + PKCE verifier for an access token."""
    body = TokenRequest.model_validate(await _read_params(request))

    if body.grant_type != "authorization_code":
        return _json_error(OAuthError("invalid_request", "Unsupported grant_type"))

    if body.missing_fields():
        return _json_error(OAuthError("invalid_request", "Missing required parameters"))

    client = await server.resolve_client(body.client_id, body.redirect_uri)
    result, error = server.redeem(
        code=body.code,
        client=client,
        client_id=body.client_id,
        redirect_uri=body.redirect_uri,
        resource=body.resource,
        code_verifier=body.code_verifier,
    )
    if error:
        logger.info("[TOKEN] rejected client_id=%s: %s (%s)", body.client_id, error.error, error.description)
        return _json_error(error)

    return JSONResponse(TokenResponse(**result).model_dump(), headers=_NO_STORE)
