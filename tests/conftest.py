# Shared fixtures for the notesauth test suite.
# Created: 2026-10-19

import base64
import hashlib
import secrets

import pytest

from notesauth.config import CHATGPT_CONNECTOR_REDIRECT_URI, Settings

TEST_SECRET = "test-secret-0123456789abcdef0123456789abcdef"
TEST_ISSUER = "http://auth.test"
TEST_RESOURCE_BASE = "http://rs.test"
TEST_RESOURCE = "http://rs.test/mcp"
EXAMPLE_REDIRECT_URI = "https://example-client.test/cb"


def _settings(**overrides) -> Settings:
    values = {
        "jwt_secret": TEST_SECRET,
        "auth_issuer": TEST_ISSUER,
        "resource_base_url": TEST_RESOURCE_BASE,
        "mcp_resource": TEST_RESOURCE,
        "oauth_allowed_redirect_uris": [CHATGPT_CONNECTOR_REDIRECT_URI, EXAMPLE_REDIRECT_URI],
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def make_settings():
    """Factory for Settings that never reads .env files."""
    return _settings


@pytest.fixture
def settings():
    return _settings()


@pytest.fixture
def pkce_pair():
    """A PKCE (code_verifier, code_challenge) pair, computed independently of the package."""
    verifier = secrets.token_urlsafe(32)
    challenge = (
        base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest())
        .rstrip(b"=")
        .decode()
    )
    return verifier, challenge
