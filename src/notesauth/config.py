# Runtime configuration for the authorization and resource servers.
# Created: 2026-10-19
#
# Field names are the lower-cased environment names (AUTH_ISSUER, MCP_RESOURCE,
# JWT_SECRET, ...). Values come from the process environment first, then from
# .env / .env.local in the working directory.

from __future__ import annotations

import logging
from typing import Annotated, Literal

from pydantic import ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger(__name__)

CHATGPT_CONNECTOR_REDIRECT_URI = "https://chatgpt.com/connector_platform_oauth_redirect"

_TTL_DEFAULTS = {
    "access_token_ttl_sec": 600,
    "auth_code_ttl_sec": 600,
}


class Settings(BaseSettings):
    """Shared settings for the AS and the RS.

    The RS only reads ``auth_issuer``, ``mcp_resource``, ``jwt_secret`` and
    ``resource_base_url``: the two servers are coupled through those values
    and nothing else.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    auth_port: int = 4000
    resource_port: int = 3000

    auth_issuer: str = "http://localhost:4000"
    resource_base_url: str = "http://localhost:3000"
    mcp_resource: str = "http://localhost:3000/mcp"

    jwt_secret: str

    access_token_ttl_sec: int = _TTL_DEFAULTS["access_token_ttl_sec"]
    auth_code_ttl_sec: int = _TTL_DEFAULTS["auth_code_ttl_sec"]

    # Comma-separated in the environment, exact-match lists.
    oauth_allowed_redirect_uris: Annotated[list[str], NoDecode] = [CHATGPT_CONNECTOR_REDIRECT_URI]
    oauth_required_redirect_uris: Annotated[list[str], NoDecode] = [CHATGPT_CONNECTOR_REDIRECT_URI]
    oauth_allowed_client_metadata_hosts: Annotated[list[str], NoDecode] = []

    client_metadata_timeout_sec: float = 4.0

    app_env: Literal["development", "production"] = "development"

    @field_validator(
        "oauth_allowed_redirect_uris",
        "oauth_required_redirect_uris",
        "oauth_allowed_client_metadata_hosts",
        mode="before",
    )
    @classmethod
    def _split_csv(cls, value: object) -> object:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("oauth_allowed_client_metadata_hosts")
    @classmethod
    def _lower_hosts(cls, value: list[str]) -> list[str]:
        return [host.lower() for host in value]

    @field_validator("auth_issuer", "resource_base_url", "mcp_resource", "jwt_secret")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @field_validator("auth_issuer", "resource_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("jwt_secret")
    @classmethod
    def _require_secret(cls, value: str) -> str:
        if not value:
            raise ValueError("JWT_SECRET must not be empty")
        return value

    @field_validator("access_token_ttl_sec", "auth_code_ttl_sec", mode="before")
    @classmethod
    def _positive_ttl(cls, value: object, info: ValidationInfo) -> object:
        fallback = _TTL_DEFAULTS[info.field_name]
        try:
            number = int(value)  # type: ignore[call-overload]
        except (TypeError, ValueError):
            return fallback
        return number if number > 0 else fallback

    @model_validator(mode="after")
    def _check_required_redirects(self) -> Settings:
        missing = [
            uri for uri in self.oauth_required_redirect_uris if uri not in self.oauth_allowed_redirect_uris
        ]
        if missing:
            raise ValueError(f"OAUTH_ALLOWED_REDIRECT_URIS must include {', '.join(missing)}")
        return self

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def resource_metadata_url(self) -> str:
        return f"{self.resource_base_url}/.well-known/oauth-protected-resource"

    @property
    def resource_documentation_url(self) -> str:
        return f"{self.resource_base_url}/docs"

    @classmethod
    def load(cls) -> Settings:
        """Build settings from the environment (and .env files)."""
        return cls()


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
        logger.debug(
            "Loaded settings: issuer=%s resource=%s", _settings.auth_issuer, _settings.mcp_resource
        )
    return _settings


def reset_settings() -> None:
    global _settings
    _settings = None
