# Tests for environment-driven settings.
# Created: 2026-10-19

import pytest
from pydantic import ValidationError

from notesauth.config import (
    CHATGPT_CONNECTOR_REDIRECT_URI,
    Settings,
    get_settings,
    reset_settings,
)

SECRET = "config-test-secret-0123456789abcdef"


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "AUTH_PORT",
        "RESOURCE_PORT",
        "AUTH_ISSUER",
        "RESOURCE_BASE_URL",
        "MCP_RESOURCE",
        "JWT_SECRET",
        "ACCESS_TOKEN_TTL_SEC",
        "AUTH_CODE_TTL_SEC",
        "OAUTH_ALLOWED_REDIRECT_URIS",
        "OAUTH_REQUIRED_REDIRECT_URIS",
        "OAUTH_ALLOWED_CLIENT_METADATA_HOSTS",
        "CLIENT_METADATA_TIMEOUT_SEC",
        "APP_ENV",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield monkeypatch
    reset_settings()


class TestDefaults:
    def test_defaults(self, clean_env):
        s = Settings(_env_file=None, jwt_secret=SECRET)
        assert s.auth_port == 4000
        assert s.resource_port == 3000
        assert s.auth_issuer == "http://localhost:4000"
        assert s.mcp_resource == "http://localhost:3000/mcp"
        assert s.access_token_ttl_sec == 600
        assert s.auth_code_ttl_sec == 600
        assert s.oauth_allowed_redirect_uris == [CHATGPT_CONNECTOR_REDIRECT_URI]
        assert s.oauth_allowed_client_metadata_hosts == []
        assert not s.is_production

    def test_derived_urls(self, clean_env):
        s = Settings(_env_file=None, jwt_secret=SECRET, resource_base_url="https://rs.example.com/")
        assert s.resource_base_url == "https://rs.example.com"
        assert s.resource_metadata_url == "https://rs.example.com/.well-known/oauth-protected-resource"
        assert s.resource_documentation_url == "https://rs.example.com/docs"


class TestEnvironment:
    def test_reads_env(self, clean_env):
        clean_env.setenv("JWT_SECRET", SECRET)
        clean_env.setenv("AUTH_ISSUER", "https://auth.example.com/")
        clean_env.setenv("MCP_RESOURCE", "https://rs.example.com/mcp")
        clean_env.setenv("APP_ENV", "production")
        s = Settings(_env_file=None)
        assert s.auth_issuer == "https://auth.example.com"
        assert s.mcp_resource == "https://rs.example.com/mcp"
        assert s.is_production

    def test_csv_lists(self, clean_env):
        clean_env.setenv("JWT_SECRET", SECRET)
        clean_env.setenv(
            "OAUTH_ALLOWED_REDIRECT_URIS",
            f"{CHATGPT_CONNECTOR_REDIRECT_URI}, https://example-client.test/cb ,",
        )
        clean_env.setenv("OAUTH_ALLOWED_CLIENT_METADATA_HOSTS", "Clients.Example.com,apps.test")
        s = Settings(_env_file=None)
        assert s.oauth_allowed_redirect_uris == [
            CHATGPT_CONNECTOR_REDIRECT_URI,
            "https://example-client.test/cb",
        ]
        assert s.oauth_allowed_client_metadata_hosts == ["clients.example.com", "apps.test"]

    def test_non_positive_ttl_falls_back(self, clean_env):
        clean_env.setenv("JWT_SECRET", SECRET)
        clean_env.setenv("ACCESS_TOKEN_TTL_SEC", "0")
        clean_env.setenv("AUTH_CODE_TTL_SEC", "-5")
        s = Settings(_env_file=None)
        assert s.access_token_ttl_sec == 600
        assert s.auth_code_ttl_sec == 600

    def test_positive_ttl(self, clean_env):
        clean_env.setenv("JWT_SECRET", SECRET)
        clean_env.setenv("ACCESS_TOKEN_TTL_SEC", "120")
        assert Settings(_env_file=None).access_token_ttl_sec == 120


class TestValidation:
    def test_missing_secret(self, clean_env):
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_blank_secret(self, clean_env):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, jwt_secret="   ")

    def test_required_redirect_must_be_allowed(self, clean_env):
        with pytest.raises(ValidationError, match="OAUTH_ALLOWED_REDIRECT_URIS"):
            Settings(
                _env_file=None,
                jwt_secret=SECRET,
                oauth_allowed_redirect_uris=["https://example-client.test/cb"],
            )

    def test_required_list_can_be_emptied(self, clean_env):
        s = Settings(
            _env_file=None,
            jwt_secret=SECRET,
            oauth_required_redirect_uris=[],
            oauth_allowed_redirect_uris=["https://example-client.test/cb"],
        )
        assert s.oauth_allowed_redirect_uris == ["https://example-client.test/cb"]


class TestSingleton:
    def test_get_settings_caches(self, clean_env, tmp_path):
        clean_env.chdir(tmp_path)
        clean_env.setenv("JWT_SECRET", SECRET)
        assert get_settings() is get_settings()

    def test_reset(self, clean_env, tmp_path):
        clean_env.chdir(tmp_path)
        clean_env.setenv("JWT_SECRET", SECRET)
        first = get_settings()
        reset_settings()
        assert get_settings() is not first

    def test_env_file(self, clean_env, tmp_path):
        clean_env.chdir(tmp_path)
        (tmp_path / ".env").write_text(f"JWT_SECRET={SECRET}\nAUTH_PORT=4100\n")
        s = Settings.load()
        assert s.jwt_secret == SECRET
        assert s.auth_port == 4100
