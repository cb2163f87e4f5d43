# Request-scoped auth context for tool handlers.
# Created: 2026-10-19
#
# The guard verifies the bearer token and the MCP route runs the dispatcher
# inside auth_context_scope(). Every request is its own asyncio task with its
# own copy of the context, so a tool can only ever see the identity of the
# request it is serving.

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field

from notesauth.security.access_tokens import AccessTokenClaims


@dataclass
class VerifiedAuthContext:
    token: str
    claims: AccessTokenClaims
    sub: str
    name: str | None = None
    scopes: set[str] = field(default_factory=set)

    @property
    def display_name(self) -> str:
        return self.name or self.sub

    def has_scopes(self, *required: str) -> bool:
        return all(s in self.scopes for s in required)


_auth_context: ContextVar[VerifiedAuthContext | None] = ContextVar(
    "notesauth_auth_context", default=None
)


@contextmanager
def auth_context_scope(ctx: VerifiedAuthContext | None) -> Iterator[VerifiedAuthContext | None]:
    """Expose *ctx* to tool code for the duration of the block."""
    token = _auth_context.set(ctx)
    try:
        yield ctx
    finally:
        _auth_context.reset(token)


def get_auth_context() -> VerifiedAuthContext | None:
    """The verified identity of the current request, or None when anonymous."""
    return _auth_context.get()
