# Router aggregation for the two applications.
# Created: 2026-10-19
#
# mount_auth_routers(app) registers the authorization server endpoints and
# mount_resource_routers(app) the MCP resource server endpoints, both at the
# application root because the paths are fixed by the OAuth discovery
# documents.

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)

_AUTH_ROUTERS: list[tuple[str, str, str]] = [
    # (module_path, attr_name, tag)
    ("notesauth.api.v1.oauth2", "router", "OAuth2"),
]

_RESOURCE_ROUTERS: list[tuple[str, str, str]] = [
    ("notesauth.api.v1.mcp", "router", "MCP"),
]


def _mount(app: FastAPI, routers: list[tuple[str, str, str]]) -> None:
    for module_path, attr_name, tag in routers:
        mod = importlib.import_module(module_path)
        app.include_router(getattr(mod, attr_name))
        logger.debug("Mounted router: %s (%s)", module_path, tag)


def mount_auth_routers(app: FastAPI) -> None:
    _mount(app, _AUTH_ROUTERS)


def mount_resource_routers(app: FastAPI) -> None:
    _mount(app, _RESOURCE_ROUTERS)
