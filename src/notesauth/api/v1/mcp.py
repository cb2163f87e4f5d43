# MCP resource server router: protected-resource metadata and /mcp.
# Created: 2026-10-19

from __future__ import annotations

import json
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from notesauth.api.deps import get_app_settings, get_guard, get_tool_registry
from notesauth.api.v1.schemas.oauth2 import ProtectedResourceMetadata
from notesauth.config import Settings
from notesauth.mcp.context import auth_context_scope
from notesauth.mcp.guard import ResourceGuard, build_tool_auth_error
from notesauth.mcp.registry import ToolRegistry
from notesauth.security.scopes import SCOPES_SUPPORTED

logger = logging.getLogger(__name__)

router = APIRouter(tags=["MCP"])

SettingsDep = Annotated[Settings, Depends(get_app_settings)]
GuardDep = Annotated[ResourceGuard, Depends(get_guard)]
RegistryDep = Annotated[ToolRegistry, Depends(get_tool_registry)]

_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
    "Access-Control-Allow-Headers": "Authorization, Content-Type",
    "Cache-Control": "no-store",
}


def _preflight() -> Response:
    return Response(status_code=204, headers=_CORS_HEADERS)


def _tool_call_target(message: Any) -> tuple[Any, str | None]:
    """Return (id, tool name) of a ``tools/call`` request; name is None otherwise."""
    if not isinstance(message, dict):
        return None, None
    request_id = message.get("id")
    if message.get("method") != "tools/call":
        return request_id, None
    params = message.get("params")
    name = params.get("name") if isinstance(params, dict) else None
    return request_id, name if isinstance(name, str) else None


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


@router.get("/.well-known/oauth-protected-resource", response_model=ProtectedResourceMetadata)
async def protected_resource_metadata(settings: SettingsDep):
    """OAuth Protected Resource Metadata (RFC 9728)."""
    metadata = ProtectedResourceMetadata(
        resource=settings.mcp_resource,
        authorization_servers=[settings.auth_issuer],
        scopes_supported=list(SCOPES_SUPPORTED),
        resource_documentation=settings.resource_documentation_url,
    )
    return JSONResponse(metadata.model_dump(), headers=_CORS_HEADERS)


@router.options("/.well-known/oauth-protected-resource")
async def protected_resource_metadata_preflight():
    return _preflight()


# ---------------------------------------------------------------------------
# MCP endpoint
# ---------------------------------------------------------------------------


@router.options("/mcp")
async def mcp_preflight():
    return _preflight()


@router.post("/mcp")
async def mcp_post(request: Request, guard: GuardDep, registry: RegistryDep):
    """JSON-RPC endpoint. ``tools/call`` is gated per tool before dispatch."""
    try:
        message = json.loads(await request.body())
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JSONResponse(
            {"error": "invalid_request", "message": "Invalid JSON"},
            status_code=400,
            headers={"Cache-Control": "no-store"},
        )

    request_id, tool_name = _tool_call_target(message)
    verification = guard.verify(request.headers.get("authorization"))

    if tool_name is not None:
        decision = guard.authorize(tool_name, verification)
        if not decision.allowed:
            logger.info("[RS] tool=%s denied with HTTP %d", tool_name, decision.status_code)
            return JSONResponse(
                build_tool_auth_error(request_id, decision.challenge, decision.message),
                status_code=decision.status_code,
                headers={"WWW-Authenticate": decision.challenge, "Cache-Control": "no-store"},
            )
        ctx = decision.context
    else:
        ctx = verification.context

    with auth_context_scope(ctx):
        reply = await registry.handle_jsonrpc(message)

    if reply is None:
        return Response(status_code=202)
    return JSONResponse(reply, headers={"Cache-Control": "no-store"})


@router.get("/mcp")
async def mcp_get():
    """No server-initiated stream is offered; clients talk to POST /mcp."""
    return JSONResponse(
        {"error": "method_not_allowed", "message": "Use POST for JSON-RPC requests"},
        status_code=405,
        headers={"Allow": "POST, OPTIONS", "Cache-Control": "no-store"},
    )
