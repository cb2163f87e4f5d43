# Shared FastAPI dependencies for the API layer.
# Created: 2026-10-19
#
# Service objects are built once per app in serve.py and attached to
# app.state, so tests can assemble apps around their own stores.

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Request

if TYPE_CHECKING:
    from notesauth.api.oauth2.server import AuthorizationServer
    from notesauth.config import Settings
    from notesauth.mcp.guard import ResourceGuard
    from notesauth.mcp.registry import ToolRegistry


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_oauth_server(request: Request) -> AuthorizationServer:
    return request.app.state.oauth_server


def get_guard(request: Request) -> ResourceGuard:
    return request.app.state.guard


def get_tool_registry(request: Request) -> ToolRegistry:
    return request.app.state.tool_registry
