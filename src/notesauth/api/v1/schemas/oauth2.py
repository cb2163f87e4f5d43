# OAuth2 schemas.
# Created: 2026-10-19

from __future__ import annotations

from pydantic import BaseModel, Field


class ClientRegistrationRequest(BaseModel):
    """Dynamic Client Registration request (RFC 7591 subset)."""

    client_name: str | None = None
    redirect_uris: list[str] = Field(default_factory=list)
    token_endpoint_auth_method: str | None = None


class ClientRegistrationResponse(BaseModel):
    client_id: str
    client_name: str
    redirect_uris: list[str]
    token_endpoint_auth_method: str = "none"


class TokenRequest(BaseModel):
    """Authorization code redemption; every field is required by the handler."""

    grant_type: str = ""
    code: str = ""
    redirect_uri: str = ""
    client_id: str = ""
    code_verifier: str = ""
    resource: str = ""

    def missing_fields(self) -> list[str]:
        return [name for name, value in self.model_dump().items() if name != "grant_type" and not value]


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    scope: str


class AuthorizationServerMetadata(BaseModel):
    """RFC 8414 Authorization Server Metadata."""

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    registration_endpoint: str
    client_id_metadata_document_supported: bool
    response_types_supported: list[str]
    grant_types_supported: list[str]
    token_endpoint_auth_methods_supported: list[str]
    code_challenge_methods_supported: list[str]
    scopes_supported: list[str]
    resource_indicators_supported: bool


class ProtectedResourceMetadata(BaseModel):
    """RFC 9728 Protected Resource Metadata."""

    resource: str
    authorization_servers: list[str]
    scopes_supported: list[str]
    bearer_methods_supported: list[str] = Field(default_factory=lambda: ["header"])
    resource_documentation: str
