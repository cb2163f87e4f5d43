# Tests for client-id metadata document resolution and caching.
# Created: 2026-10-19

import asyncio
import json

import httpx
import pytest

from notesauth.api.oauth2.client_metadata import (
    DEFAULT_CACHE_TTL,
    ClientMetadataDocument,
    ClientMetadataResolver,
    canonicalize_url,
    compute_cache_expiry,
    is_valid_redirect_uri,
    parse_metadata_url,
)
from notesauth.api.oauth2.server import AuthorizationServer
from notesauth.api.oauth2.storage import OAuthStorage

HOST = "clients.example.com"
CLIENT_URL = f"https://{HOST}/oauth/client.json"
REDIRECT = "https://app.example.com/callback"


def _document(**overrides):
    doc = {
        "client_id": CLIENT_URL,
        "client_name": "Example App",
        "redirect_uris": [REDIRECT],
        "token_endpoint_auth_method": "none",
    }
    doc.update(overrides)
    return doc


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


class Recorder:
    """MockTransport handler that replays queued responses and records requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]


def _json_response(body, status=200, headers=None):
    return httpx.Response(status, content=json.dumps(body).encode(), headers=headers or {})


def _resolver(handler, clock=None, **kwargs):
    return ClientMetadataResolver(
        OAuthStorage(),
        [HOST],
        transport=httpx.MockTransport(handler),
        clock=clock or FakeClock(),
        **kwargs,
    )


# ===================== URL helpers =====================


class TestUrlHelpers:
    def test_parse_metadata_url_accepts_allowed_https(self):
        assert parse_metadata_url(CLIENT_URL, [HOST]) == CLIENT_URL

    def test_parse_metadata_url_host_case(self):
        assert parse_metadata_url("https://CLIENTS.example.com/oauth/client.json", [HOST]) == CLIENT_URL

    @pytest.mark.parametrize(
        "client_id",
        [
            "http://clients.example.com/oauth/client.json",
            "https://clients.example.com/",
            "https://clients.example.com",
            "https://other.example.com/oauth/client.json",
            "https://clients.example.com/oauth/client.json#frag",
            "c_0123456789abcdef",
        ],
    )
    def test_parse_metadata_url_rejects(self, client_id):
        assert parse_metadata_url(client_id, [HOST]) is None

    def test_canonicalize_default_port(self):
        assert canonicalize_url("HTTPS://Clients.Example.com:443/oauth/client.json") == CLIENT_URL

    def test_canonicalize_keeps_custom_port(self):
        assert canonicalize_url("https://clients.example.com:8443/x") == "https://clients.example.com:8443/x"

    def test_canonicalize_garbage(self):
        assert canonicalize_url("not a url") is None

    def test_redirect_uri_validity(self):
        assert is_valid_redirect_uri("https://app.example.com/cb")
        assert is_valid_redirect_uri("http://localhost:3000/cb")
        assert not is_valid_redirect_uri("https://app.example.com/cb#x")
        assert not is_valid_redirect_uri("javascript:alert(1)")
        assert not is_valid_redirect_uri("/relative")


class TestDocumentParse:
    def test_valid(self):
        doc = ClientMetadataDocument.parse(_document())
        assert doc is not None
        assert doc.client_name == "Example App"
        assert doc.redirect_uris == [REDIRECT]

    @pytest.mark.parametrize("field", ["client_id", "client_name", "redirect_uris"])
    def test_missing_required_field(self, field):
        raw = _document()
        del raw[field]
        assert ClientMetadataDocument.parse(raw) is None

    def test_invalid_redirects_dropped(self):
        doc = ClientMetadataDocument.parse(_document(redirect_uris=["nope", REDIRECT]))
        assert doc.redirect_uris == [REDIRECT]

    def test_not_an_object(self):
        assert ClientMetadataDocument.parse(["x"]) is None


class TestCacheExpiry:
    def test_max_age(self):
        assert compute_cache_expiry(httpx.Headers({"cache-control": "max-age=60"}), 100.0) == (True, 160.0)

    def test_no_store(self):
        cacheable, _ = compute_cache_expiry(httpx.Headers({"cache-control": "no-store"}), 100.0)
        assert not cacheable

    def test_no_cache_forces_revalidation(self):
        assert compute_cache_expiry(httpx.Headers({"cache-control": "no-cache"}), 100.0) == (True, 100.0)

    def test_expires_header(self):
        cacheable, expires_at = compute_cache_expiry(
            httpx.Headers({"expires": "Wed, 21 Oct 2037 07:28:00 GMT"}), 100.0
        )
        assert cacheable
        assert expires_at > 100.0

    def test_default_ttl(self):
        assert compute_cache_expiry(httpx.Headers(), 100.0) == (True, 100.0 + DEFAULT_CACHE_TTL)


# ===================== Resolver =====================


class TestResolve:
    @pytest.mark.asyncio
    async def test_registers_client(self):
        resolver = _resolver(Recorder(_json_response(_document())))
        client = await resolver.resolve(CLIENT_URL, REDIRECT)
        assert client is not None
        assert client.client_id == CLIENT_URL
        assert client.client_name == "Example App"
        assert resolver.storage.get_client(CLIENT_URL) is client

    @pytest.mark.asyncio
    async def test_identity_pinning(self):
        doc = _document(client_id="https://clients.example.com/oauth/other.json")
        resolver = _resolver(Recorder(_json_response(doc)))
        assert await resolver.resolve(CLIENT_URL, REDIRECT) is None
        assert resolver.storage.get_client(CLIENT_URL) is None

    @pytest.mark.asyncio
    async def test_confidential_client_rejected(self):
        doc = _document(token_endpoint_auth_method="client_secret_basic")
        resolver = _resolver(Recorder(_json_response(doc)))
        assert await resolver.resolve(CLIENT_URL, REDIRECT) is None

    @pytest.mark.asyncio
    async def test_undeclared_redirect_rejected(self):
        resolver = _resolver(Recorder(_json_response(_document())))
        assert await resolver.resolve(CLIENT_URL, "https://evil.example.com/cb") is None

    @pytest.mark.asyncio
    async def test_loopback_carve_out(self):
        resolver = _resolver(Recorder(_json_response(_document())), allow_loopback_redirects=True)
        client = await resolver.resolve(CLIENT_URL, "http://127.0.0.1:53682/callback")
        assert client is not None
        assert "http://127.0.0.1:53682/callback" in client.redirect_uris

    @pytest.mark.asyncio
    async def test_loopback_refused_when_disabled(self):
        resolver = _resolver(Recorder(_json_response(_document())), allow_loopback_redirects=False)
        assert await resolver.resolve(CLIENT_URL, "http://127.0.0.1:53682/callback") is None

    @pytest.mark.asyncio
    async def test_host_not_allowed(self):
        recorder = Recorder(_json_response(_document()))
        resolver = _resolver(recorder)
        assert await resolver.resolve("https://elsewhere.test/client.json") is None
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_updated_document_replaces_client(self):
        clock = FakeClock()
        recorder = Recorder(
            _json_response(_document(), headers={"cache-control": "max-age=10"}),
            _json_response(_document(client_name="Renamed"), headers={"cache-control": "max-age=10"}),
        )
        resolver = _resolver(recorder, clock=clock)
        first = await resolver.resolve(CLIENT_URL)
        clock.now += 60
        second = await resolver.resolve(CLIENT_URL)
        assert second.client_name == "Renamed"
        assert second.created_at == first.created_at


class TestFetchFailures:
    @pytest.mark.asyncio
    async def test_non_200(self):
        resolver = _resolver(Recorder(httpx.Response(404)))
        assert await resolver.fetch_document(CLIENT_URL) is None

    @pytest.mark.asyncio
    async def test_redirect_not_followed(self):
        resolver = _resolver(Recorder(httpx.Response(302, headers={"location": "https://evil.test/x.json"})))
        assert await resolver.fetch_document(CLIENT_URL) is None

    @pytest.mark.asyncio
    async def test_bad_json(self):
        resolver = _resolver(Recorder(httpx.Response(200, content=b"{not json")))
        assert await resolver.fetch_document(CLIENT_URL) is None

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("boom", request=request)

        resolver = _resolver(handler)
        assert await resolver.fetch_document(CLIENT_URL) is None

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def handler(request):
            await asyncio.sleep(5)
            return _json_response(_document())

        resolver = _resolver(handler, timeout=0.05)
        assert await resolver.fetch_document(CLIENT_URL) is None


class TestCaching:
    @pytest.mark.asyncio
    async def test_fresh_cache_hit(self):
        recorder = Recorder(_json_response(_document(), headers={"cache-control": "max-age=300"}))
        resolver = _resolver(recorder)
        await resolver.fetch_document(CLIENT_URL)
        await resolver.fetch_document(CLIENT_URL)
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_revalidation_with_304(self):
        clock = FakeClock()
        recorder = Recorder(
            _json_response(
                _document(),
                headers={
                    "cache-control": "max-age=10",
                    "etag": '"v1"',
                    "last-modified": "Wed, 01 Jan 2025 00:00:00 GMT",
                },
            ),
            httpx.Response(304, headers={"cache-control": "max-age=10"}),
        )
        resolver = _resolver(recorder, clock=clock)
        first = await resolver.fetch_document(CLIENT_URL)

        clock.now += 60
        second = await resolver.fetch_document(CLIENT_URL)

        assert second == first
        assert len(recorder.requests) == 2
        revalidation = recorder.requests[1]
        assert revalidation.headers["if-none-match"] == '"v1"'
        assert revalidation.headers["if-modified-since"] == "Wed, 01 Jan 2025 00:00:00 GMT"

    @pytest.mark.asyncio
    async def test_no_store_refetches(self):
        recorder = Recorder(_json_response(_document(), headers={"cache-control": "no-store"}))
        resolver = _resolver(recorder)
        await resolver.fetch_document(CLIENT_URL)
        await resolver.fetch_document(CLIENT_URL)
        assert len(recorder.requests) == 2
        assert "if-none-match" not in recorder.requests[1].headers

    @pytest.mark.asyncio
    async def test_expired_entry_refetched(self):
        clock = FakeClock()
        recorder = Recorder(_json_response(_document(), headers={"cache-control": "max-age=10"}))
        resolver = _resolver(recorder, clock=clock)
        await resolver.fetch_document(CLIENT_URL)
        clock.now += 11
        await resolver.fetch_document(CLIENT_URL)
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_expired_entries_without_validators_evicted(self):
        clock = FakeClock()
        recorder = Recorder(_json_response(_document(), headers={"cache-control": "max-age=10"}))
        resolver = _resolver(recorder, clock=clock)
        for i in range(3):
            await resolver.fetch_document(f"https://{HOST}/c{i}.json")
        assert len(resolver._cache) == 3

        clock.now += 60
        await resolver.fetch_document(CLIENT_URL)

        assert list(resolver._cache) == [CLIENT_URL]

    @pytest.mark.asyncio
    async def test_entries_with_validators_kept_for_revalidation(self):
        clock = FakeClock()
        recorder = Recorder(
            _json_response(_document(), headers={"cache-control": "max-age=10", "etag": '"v1"'})
        )
        resolver = _resolver(recorder, clock=clock)
        await resolver.fetch_document(f"https://{HOST}/old.json")
        clock.now += 60
        await resolver.fetch_document(CLIENT_URL)
        assert f"https://{HOST}/old.json" in resolver._cache

    @pytest.mark.asyncio
    async def test_size_cap(self):
        recorder = Recorder(_json_response(_document(), headers={"cache-control": "max-age=300"}))
        resolver = _resolver(recorder, max_cache_entries=2)
        for i in range(5):
            await resolver.fetch_document(f"https://{HOST}/c{i}.json")
        assert list(resolver._cache) == [f"https://{HOST}/c3.json", f"https://{HOST}/c4.json"]


# ===================== AuthorizationServer.resolve_client =====================


class SequencedHandler:
    """Serves a valid document once, then whatever *second* produces."""

    def __init__(self, second):
        self.second = second
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        if self.calls == 1:
            return _json_response(_document(), headers={"cache-control": "max-age=10"})
        return self.second(request)


def _connect_error(request):
    raise httpx.ConnectError("down", request=request)


def _repinned(request):
    return _json_response(_document(client_id=f"https://{HOST}/oauth/other.json"))


class TestServerResolveClient:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("second", [_connect_error, _repinned, lambda request: httpx.Response(500)])
    async def test_stale_record_not_reused(self, settings, second):
        clock = FakeClock()
        storage = OAuthStorage()
        resolver = ClientMetadataResolver(
            storage, [HOST], transport=httpx.MockTransport(SequencedHandler(second)), clock=clock
        )
        server = AuthorizationServer(settings, storage, metadata_resolver=resolver)

        first = await server.resolve_client(CLIENT_URL, REDIRECT)
        assert first is not None
        assert storage.get_client(CLIENT_URL) is not None

        clock.now += 60
        assert await server.resolve_client(CLIENT_URL, REDIRECT) is None

    @pytest.mark.asyncio
    async def test_opaque_id_uses_registry(self, settings):
        storage = OAuthStorage()
        resolver = ClientMetadataResolver(storage, [HOST], transport=httpx.MockTransport(_connect_error))
        server = AuthorizationServer(settings, storage, metadata_resolver=resolver)
        client, _ = server.register_client(["https://example-client.test/cb"])
        assert await server.resolve_client(client.client_id) is client
