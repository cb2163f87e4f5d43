# Tests for scope parsing and set helpers.
# Created: 2026-10-19

from notesauth.security.scopes import (
    SCOPES_SUPPORTED,
    format_scope_param,
    has_all_scopes,
    is_subset_of_supported,
    missing_scopes,
    normalize_scopes,
    parse_scope_param,
    scope_claim_to_set,
)


class TestParsing:
    def test_split_on_whitespace(self):
        assert parse_scope_param("notes:read  profile:read") == ["notes:read", "profile:read"]

    def test_empty_and_none(self):
        assert parse_scope_param("") == []
        assert parse_scope_param(None) == []

    def test_normalize_dedupes_and_sorts(self):
        assert normalize_scopes(["notes:write", "notes:read", "notes:write"]) == ["notes:read", "notes:write"]

    def test_format(self):
        assert format_scope_param(["profile:read", "notes:read"]) == "notes:read profile:read"


class TestSupported:
    def test_vocabulary(self):
        assert set(SCOPES_SUPPORTED) == {"profile:read", "notes:read", "notes:write"}

    def test_subset(self):
        assert is_subset_of_supported(["notes:read", "profile:read"])

    def test_unknown_scope(self):
        assert not is_subset_of_supported(["notes:read", "admin"])

    def test_no_wildcards(self):
        assert not is_subset_of_supported(["notes:*"])


class TestClaimSets:
    def test_claim_to_set(self):
        assert scope_claim_to_set("notes:read notes:write") == {"notes:read", "notes:write"}

    def test_non_string_claim_grants_nothing(self):
        assert scope_claim_to_set(["notes:read"]) == set()
        assert scope_claim_to_set(None) == set()

    def test_all_of_rejects_partial(self):
        assert not has_all_scopes({"a"}, ["a", "b"])

    def test_all_of_accepts_superset(self):
        assert has_all_scopes({"a", "b", "c"}, ["a", "b"])

    def test_missing(self):
        assert missing_scopes({"a"}, ["a", "b", "c"]) == ["b", "c"]
