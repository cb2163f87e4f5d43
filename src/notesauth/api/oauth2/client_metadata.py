# Client ID Metadata Documents: HTTPS URLs used as client_id.
# Created: 2026-10-19
#
# A client may present an https URL as its client_id. The document at that
# URL declares the client's name and redirect URIs. We fetch it (bounded by a
# timeout), cache it per its HTTP caching headers, pin the identity to the
# fetch URL, and upsert it into OAuthStorage. Any failure means "client not
# resolvable"; nothing here raises to the caller.

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from urllib.parse import urlsplit, urlunsplit

import httpx

from notesauth.api.oauth2.models import OAuthClient
from notesauth.api.oauth2.storage import OAuthStorage

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = 300.0
MAX_CACHE_ENTRIES = 256
_DEFAULT_PORTS = {"http": 80, "https": 443}
_LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------


def canonicalize_url(value: str) -> str | None:
    """Normalize scheme/host case, default ports and empty paths. None if unparseable."""
    try:
        parts = urlsplit(value.strip())
        port = parts.port
    except ValueError:
        return None
    if not parts.scheme or not parts.hostname:
        return None

    scheme = parts.scheme.lower()
    host = parts.hostname.lower()
    if ":" in host:
        host = f"[{host}]"
    netloc = host if port is None or _DEFAULT_PORTS.get(scheme) == port else f"{host}:{port}"
    if parts.username is not None:
        userinfo = parts.username if parts.password is None else f"{parts.username}:{parts.password}"
        netloc = f"{userinfo}@{netloc}"
    return urlunsplit((scheme, netloc, parts.path or "/", parts.query, parts.fragment))


def is_valid_redirect_uri(uri: str) -> bool:
    """Absolute http(s) URI with a host and no fragment."""
    try:
        parts = urlsplit(uri)
    except ValueError:
        return False
    if "#" in uri:
        return False
    return parts.scheme.lower() in ("http", "https") and bool(parts.netloc) and bool(parts.hostname)


def is_loopback_redirect_uri(uri: str) -> bool:
    try:
        parts = urlsplit(uri)
        host = (parts.hostname or "").lower()
    except ValueError:
        return False
    return parts.scheme.lower() in ("http", "https") and host in _LOOPBACK_HOSTS


def normalize_redirect_uris(uris: Iterable[str]) -> list[str]:
    return sorted({u.strip() for u in uris if u.strip() and is_valid_redirect_uri(u.strip())})


def parse_metadata_url(client_id: str, allowed_hosts: Iterable[str]) -> str | None:
    """Return the canonical URL if *client_id* is an allowed metadata-document URL."""
    if "#" in client_id:
        return None
    try:
        parts = urlsplit(client_id.strip())
    except ValueError:
        return None
    if parts.scheme.lower() != "https":
        return None
    if parts.path in ("", "/"):
        return None
    host = (parts.hostname or "").lower()
    if not host or host not in {h.lower() for h in allowed_hosts}:
        return None
    return canonicalize_url(client_id)


# ---------------------------------------------------------------------------
# Documents and caching
# ---------------------------------------------------------------------------


@dataclass
class ClientMetadataDocument:
    client_id: str
    client_name: str
    redirect_uris: list[str]
    token_endpoint_auth_method: str | None = None

    @classmethod
    def parse(cls, raw: object) -> ClientMetadataDocument | None:
        """Validate the JSON body; client_id, client_name and redirect_uris are mandatory."""
        if not isinstance(raw, dict):
            return None

        client_id = raw.get("client_id")
        client_name = raw.get("client_name")
        uris = raw.get("redirect_uris")
        auth_method = raw.get("token_endpoint_auth_method")

        client_id = client_id.strip() if isinstance(client_id, str) else ""
        client_name = client_name.strip() if isinstance(client_name, str) else ""
        redirect_uris = normalize_redirect_uris(
            u for u in (uris if isinstance(uris, list) else []) if isinstance(u, str)
        )
        if not client_id or not client_name or not redirect_uris:
            return None

        return cls(
            client_id=client_id,
            client_name=client_name,
            redirect_uris=redirect_uris,
            token_endpoint_auth_method=auth_method.strip() if isinstance(auth_method, str) else None,
        )


@dataclass
class _CacheEntry:
    document: ClientMetadataDocument
    expires_at: float
    etag: str | None = None
    last_modified: str | None = None


def compute_cache_expiry(headers: httpx.Headers, now: float) -> tuple[bool, float]:
    """Return (cacheable, expires_at) from Cache-Control / Expires.

    ``no-store`` disables caching; ``max-age`` wins over ``Expires``;
    ``no-cache`` caches but forces revalidation; otherwise a default TTL.
    """
    no_store = no_cache = False
    max_age: int | None = None
    for directive in (headers.get("cache-control") or "").split(","):
        directive = directive.strip().lower()
        if directive == "no-store":
            no_store = True
        elif directive == "no-cache":
            no_cache = True
        elif directive.startswith("max-age="):
            try:
                max_age = max(int(directive.split("=", 1)[1]), 0)
            except ValueError:
                pass

    if no_store:
        return False, now
    if max_age is not None:
        return True, now + max_age

    expires = headers.get("expires")
    if expires:
        try:
            return True, parsedate_to_datetime(expires).timestamp()
        except (TypeError, ValueError):
            pass

    if no_cache:
        return True, now
    return True, now + DEFAULT_CACHE_TTL


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class ClientMetadataResolver:
    """Resolve metadata-URL client ids into OAuthClient records."""

    def __init__(
        self,
        storage: OAuthStorage,
        allowed_hosts: Iterable[str],
        *,
        timeout: float = 4.0,
        allow_loopback_redirects: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
        max_cache_entries: int = MAX_CACHE_ENTRIES,
    ):
        self.storage = storage
        self.allowed_hosts = {h.lower() for h in allowed_hosts}
        self.timeout = timeout
        self.allow_loopback_redirects = allow_loopback_redirects
        self._transport = transport
        self._clock = clock
        self.max_cache_entries = max_cache_entries
        self._cache: dict[str, _CacheEntry] = {}

    @property
    def enabled(self) -> bool:
        return bool(self.allowed_hosts)

    def is_metadata_url(self, client_id: str) -> bool:
        return parse_metadata_url(client_id, self.allowed_hosts) is not None

    async def resolve(
        self, client_id: str, requested_redirect_uri: str | None = None
    ) -> OAuthClient | None:
        url = parse_metadata_url(client_id, self.allowed_hosts)
        if url is None:
            return None

        doc = await self.fetch_document(url)
        if doc is None:
            return None

        # The document must claim exactly the identity it was fetched from.
        if canonicalize_url(doc.client_id) != url:
            logger.warning("Client metadata at %s declares client_id %s; rejected", url, doc.client_id)
            return None

        if (doc.token_endpoint_auth_method or "none") != "none":
            logger.warning("Client metadata at %s is not a public client; rejected", url)
            return None

        redirect_uris = set(doc.redirect_uris)
        if requested_redirect_uri:
            requested = requested_redirect_uri.strip()
            if requested not in redirect_uris:
                # Local tools bind ephemeral loopback ports that no document can list.
                if self.allow_loopback_redirects and is_loopback_redirect_uri(requested):
                    redirect_uris.add(requested)
                else:
                    logger.info("redirect_uri %s not declared by %s", requested, url)
                    return None

        sorted_uris = sorted(redirect_uris)
        existing = self.storage.get_client(url)
        if (
            existing is not None
            and existing.client_name == doc.client_name
            and sorted(existing.redirect_uris) == sorted_uris
        ):
            return existing

        client = self.storage.save_client(
            OAuthClient(client_id=url, client_name=doc.client_name, redirect_uris=sorted_uris)
        )
        logger.info(
            "%s metadata-url client %s (host=%s, redirect_uris=%d)",
            "Updated" if existing else "Registered",
            url,
            urlsplit(url).hostname,
            len(sorted_uris),
        )
        return client

    async def fetch_document(self, url: str) -> ClientMetadataDocument | None:
        """Fetch *url* through the cache. Never raises; None means unusable."""
        now = self._clock()
        cached = self._cache.get(url)
        if cached is not None and cached.expires_at > now:
            return cached.document

        headers = {"Accept": "application/json"}
        if cached is not None:
            if cached.etag:
                headers["If-None-Match"] = cached.etag
            if cached.last_modified:
                headers["If-Modified-Since"] = cached.last_modified

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport, follow_redirects=False
            ) as client:
                resp = await asyncio.wait_for(client.get(url, headers=headers), self.timeout)
        except (httpx.HTTPError, TimeoutError) as exc:
            logger.warning("Client metadata fetch failed for %s: %s", url, exc)
            return None

        if resp.status_code == 304 and cached is not None:
            self._store(url, cached.document, resp.headers, now, cached)
            return cached.document

        if resp.status_code != 200:
            logger.warning("Client metadata fetch for %s returned HTTP %d", url, resp.status_code)
            return None

        try:
            body = resp.json()
        except ValueError:
            logger.warning("Client metadata at %s is not valid JSON", url)
            return None

        doc = ClientMetadataDocument.parse(body)
        if doc is None:
            logger.warning("Client metadata at %s is missing required fields", url)
            return None

        self._store(url, doc, resp.headers, now)
        return doc

    def _store(
        self,
        url: str,
        doc: ClientMetadataDocument,
        headers: httpx.Headers,
        now: float,
        previous: _CacheEntry | None = None,
    ) -> None:
        self._cache.pop(url, None)
        cacheable, expires_at = compute_cache_expiry(headers, now)
        if not cacheable:
            return
        self._prune(now)
        self._cache[url] = _CacheEntry(
            document=doc,
            expires_at=expires_at,
            etag=headers.get("etag") or (previous.etag if previous else None),
            last_modified=headers.get("last-modified") or (previous.last_modified if previous else None),
        )

    def _prune(self, now: float) -> None:
        """Make room for one entry. Expired entries without validators go first, then the oldest."""
        for key in [
            k
            for k, v in self._cache.items()
            if v.expires_at <= now and not (v.etag or v.last_modified)
        ]:
            del self._cache[key]
        while len(self._cache) >= self.max_cache_entries:
            del self._cache[next(iter(self._cache))]
