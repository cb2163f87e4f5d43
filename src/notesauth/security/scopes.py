"""Supported scope vocabulary and set helpers.

Scopes are flat strings; there is no hierarchy and no wildcard.
"""

from __future__ import annotations

from collections.abc import Iterable

SCOPES_SUPPORTED: tuple[str, ...] = ("profile:read", "notes:read", "notes:write")


def parse_scope_param(scope: str | None) -> list[str]:
    """Split a space-delimited scope parameter, dropping empties."""
    return [s.strip() for s in (scope or "").split() if s.strip()]


def normalize_scopes(scopes: Iterable[str]) -> list[str]:
    return sorted({s for s in scopes if s})


def format_scope_param(scopes: Iterable[str]) -> str:
    return " ".join(normalize_scopes(scopes))


def is_subset_of_supported(
    scopes: Iterable[str], supported: Iterable[str] = SCOPES_SUPPORTED
) -> bool:
    return set(scopes) <= set(supported)


def scope_claim_to_set(scope_claim: object) -> set[str]:
    """Turn a token ``scope`` claim into a set; non-strings grant nothing."""
    if not isinstance(scope_claim, str):
        return set()
    return set(parse_scope_param(scope_claim))


def has_all_scopes(granted: set[str], required: Iterable[str]) -> bool:
    """All-of check: every required scope must be granted."""
    return all(s in granted for s in required)


def missing_scopes(granted: set[str], required: Iterable[str]) -> list[str]:
    return [s for s in required if s not in granted]
