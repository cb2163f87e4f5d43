# Per-tool authorization policies.
# Created: 2026-10-19
#
# A tool is public, requires every scope in a set, or optionally upgrades its
# behaviour when a scope is present. Tools missing from the table get no
# auth opinion; the dispatcher decides what to do with them.

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, assert_never


@dataclass(frozen=True)
class PublicPolicy:
    """Always callable. A bad token is ignored, not rejected."""


@dataclass(frozen=True)
class RequiredScopesPolicy:
    """Callable only with a valid token granting all of *scopes*."""

    scopes: tuple[str, ...]


@dataclass(frozen=True)
class OptionalScopesPolicy:
    """Anonymous without a token; authenticated mode when *scopes* are granted."""

    scopes: tuple[str, ...]


ToolPolicy = PublicPolicy | RequiredScopesPolicy | OptionalScopesPolicy


TOOL_POLICIES: dict[str, ToolPolicy] = {
    "auth_show": PublicPolicy(),
    "auth_whoami": RequiredScopesPolicy(("profile:read",)),
    "notes_list": RequiredScopesPolicy(("notes:read",)),
    "notes_add": RequiredScopesPolicy(("notes:write",)),
    "notes_teaser": OptionalScopesPolicy(("notes:read",)),
}


def get_tool_policy(
    tool_name: str | None, policies: Mapping[str, ToolPolicy] = TOOL_POLICIES
) -> ToolPolicy | None:
    if not tool_name:
        return None
    return policies.get(tool_name)


def policy_scope_string(policy: ToolPolicy) -> str:
    """Space-joined scopes for a challenge; empty for public tools."""
    if isinstance(policy, PublicPolicy):
        return ""
    return " ".join(policy.scopes)


def security_schemes(policy: ToolPolicy) -> list[dict[str, Any]]:
    """``securitySchemes`` advertised in tools/list for *policy*."""
    if isinstance(policy, PublicPolicy):
        return [{"type": "noauth"}]
    if isinstance(policy, RequiredScopesPolicy):
        return [{"type": "oauth2", "scopes": list(policy.scopes)}]
    if isinstance(policy, OptionalScopesPolicy):
        return [{"type": "noauth"}, {"type": "oauth2", "scopes": list(policy.scopes)}]
    assert_never(policy)
