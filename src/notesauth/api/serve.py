"""Application factories and runners for the two servers.

``create_auth_app`` builds the OAuth authorization server and
``create_resource_app`` the MCP resource server. Both only share the values
in :class:`~notesauth.config.Settings`; service objects hang off ``app.state``
so tests can inject their own stores, resolvers and registries.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from notesauth import __version__
from notesauth.api.oauth2.client_metadata import ClientMetadataResolver
from notesauth.api.oauth2.server import AuthorizationServer
from notesauth.api.oauth2.storage import OAuthStorage
from notesauth.api.v1 import mount_auth_routers, mount_resource_routers
from notesauth.config import Settings, get_settings
from notesauth.mcp.guard import ResourceGuard
from notesauth.mcp.notes import build_notes_registry
from notesauth.mcp.registry import ToolRegistry

logger = logging.getLogger(__name__)


def _add_cors(app: FastAPI) -> None:
    # Discovery and MCP calls come from arbitrary client origins.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
        expose_headers=["WWW-Authenticate"],
    )


def create_auth_app(
    settings: Settings | None = None,
    storage: OAuthStorage | None = None,
    metadata_resolver: ClientMetadataResolver | None = None,
) -> FastAPI:
    """Build the authorization server application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="notesauth Authorization Server",
        description="OAuth 2.1 authorization code + PKCE for the notes MCP server.",
        version=__version__,
    )
    _add_cors(app)

    app.state.settings = settings
    app.state.oauth_server = AuthorizationServer(
        settings, storage=storage, metadata_resolver=metadata_resolver
    )

    mount_auth_routers(app)
    logger.info("Authorization server ready (issuer=%s)", settings.auth_issuer)
    return app


def create_resource_app(
    settings: Settings | None = None,
    registry: ToolRegistry | None = None,
) -> FastAPI:
    """Build the MCP resource server application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="notesauth MCP Server",
        description="Notes MCP server protected by OAuth bearer tokens.",
        version=__version__,
    )
    _add_cors(app)

    app.state.settings = settings
    app.state.guard = ResourceGuard(settings)
    app.state.tool_registry = registry or build_notes_registry()

    mount_resource_routers(app)
    logger.info("Resource server ready (resource=%s)", settings.mcp_resource)
    return app


def _run(
    factory: str, app_builder, label: str, host: str, port: int, dev: bool, log_level: str
) -> None:
    import uvicorn

    print("\n" + "=" * 50)
    print(f"NOTESAUTH {label}")
    print("=" * 50)
    print(f"\n   listening on http://{host}:{port}\n")

    if dev:
        import pathlib

        src_dir = str(pathlib.Path(__file__).resolve().parent.parent)
        uvicorn.run(
            factory,
            factory=True,
            host=host,
            port=port,
            reload=True,
            reload_dirs=[src_dir],
            reload_includes=["*.py"],
            log_level="debug",
        )
    else:
        uvicorn.run(app_builder(), host=host, port=port, log_level=log_level.lower())


def run_auth_server(
    host: str = "127.0.0.1",
    port: int | None = None,
    dev: bool = False,
    log_level: str = "info",
) -> None:
    """Start the authorization server (default port AUTH_PORT)."""
    port = port or get_settings().auth_port
    _run(
        "notesauth.api.serve:create_auth_app",
        create_auth_app,
        "AUTHORIZATION SERVER",
        host,
        port,
        dev,
        log_level,
    )


def run_resource_server(
    host: str = "127.0.0.1",
    port: int | None = None,
    dev: bool = False,
    log_level: str = "info",
) -> None:
    """Start the MCP resource server (default port RESOURCE_PORT)."""
    port = port or get_settings().resource_port
    _run(
        "notesauth.api.serve:create_resource_app",
        create_resource_app,
        "MCP RESOURCE SERVER",
        host,
        port,
        dev,
        log_level,
    )
