# Demo notes store and the MCP tools that use it.
# Created: 2026-10-19
#
# Tools read the caller's identity from get_auth_context(); the guard has
# already enforced the tool's policy before execute() runs.

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from notesauth.mcp.context import get_auth_context
from notesauth.mcp.policy import TOOL_POLICIES, ToolPolicy
from notesauth.mcp.registry import BaseTool, ToolRegistry, ToolResult

logger = logging.getLogger(__name__)

_MISSING_CONTEXT = "Internal error: missing auth context."


@dataclass
class Note:
    id: str
    title: str
    body: str
    updated_at: str  # ISO 8601

    def summary(self) -> dict[str, str]:
        return {"id": self.id, "title": self.title, "updatedAt": self.updated_at}


PUBLIC_TEASER_NOTES = (
    Note(id="demo1", title="Public example note", body="", updated_at="2025-01-01T00:00:00Z"),
)


class NotesStore:
    """In-memory private notes keyed by user id. Each user starts with one note."""

    def __init__(self):
        self._notes: dict[str, list[Note]] = {}

    def _ensure_seeded(self, user_id: str) -> list[Note]:
        if user_id not in self._notes:
            self._notes[user_id] = [
                Note(
                    id="n1",
                    title="First note",
                    body="This is your first private note.",
                    updated_at=_now_iso(),
                )
            ]
        return self._notes[user_id]

    def list_notes(self, user_id: str) -> list[dict[str, str]]:
        return [note.summary() for note in self._ensure_seeded(user_id)]

    def add_note(self, user_id: str, title: str, body: str) -> Note:
        """Add a note; newest first."""
        note = Note(id=f"n_{uuid.uuid4().hex[:10]}", title=title, body=body, updated_at=_now_iso())
        self._ensure_seeded(user_id).insert(0, note)
        return note

    def public_teaser(self) -> list[dict[str, str]]:
        return [note.summary() for note in PUBLIC_TEASER_NOTES]


def _now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


_NO_INPUTS = {"type": "object", "properties": {}, "required": []}


class AuthShowTool(BaseTool):
    @property
    def name(self) -> str:
        return "auth_show"

    @property
    def title(self) -> str:
        return "Auth Demo Widget"

    @property
    def description(self) -> str:
        return "Open the Auth Demo widget UI"

    @property
    def parameters(self) -> dict[str, Any]:
        return _NO_INPUTS

    async def execute(self, **params: Any) -> ToolResult:
        ctx = get_auth_context()
        return self._success("Auth Demo Widget", {"opened": True, "connected": ctx is not None})


class WhoAmITool(BaseTool):
    @property
    def name(self) -> str:
        return "auth_whoami"

    @property
    def title(self) -> str:
        return "Who am I?"

    @property
    def description(self) -> str:
        return "Returns the current authenticated user identity"

    @property
    def parameters(self) -> dict[str, Any]:
        return _NO_INPUTS

    async def execute(self, **params: Any) -> ToolResult:
        ctx = get_auth_context()
        if ctx is None:
            return self._error(_MISSING_CONTEXT)
        return self._success(
            f"Connected as {ctx.display_name}",
            {"userId": ctx.sub, "displayName": ctx.display_name},
        )


class NotesListTool(BaseTool):
    def __init__(self, store: NotesStore):
        self.store = store

    @property
    def name(self) -> str:
        return "notes_list"

    @property
    def title(self) -> str:
        return "List notes"

    @property
    def description(self) -> str:
        return "List private notes for the current user"

    @property
    def parameters(self) -> dict[str, Any]:
        return _NO_INPUTS

    async def execute(self, **params: Any) -> ToolResult:
        ctx = get_auth_context()
        if ctx is None:
            return self._error(_MISSING_CONTEXT)
        items = self.store.list_notes(ctx.sub)
        return self._success(f"Found {len(items)} notes.", {"items": items})


class NotesAddTool(BaseTool):
    def __init__(self, store: NotesStore):
        self.store = store

    @property
    def name(self) -> str:
        return "notes_add"

    @property
    def title(self) -> str:
        return "Add note"

    @property
    def description(self) -> str:
        return "Add a private note for the current user"

    @property
    def read_only(self) -> bool:
        return False

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "title": {"type": "string", "minLength": 1},
                "body": {"type": "string", "minLength": 1},
            },
            "required": ["title", "body"],
        }

    async def execute(self, title: Any = None, body: Any = None, **params: Any) -> ToolResult:
        ctx = get_auth_context()
        if ctx is None:
            return self._error(_MISSING_CONTEXT)
        if not isinstance(title, str) or not title.strip():
            return self._error("title is required")
        if not isinstance(body, str) or not body.strip():
            return self._error("body is required")

        note = self.store.add_note(ctx.sub, title, body)
        logger.info("[NOTES] sub=%s added %s", ctx.sub, note.id)
        return self._success(f"Added note {note.id}", {"ok": True, "noteId": note.id})


class NotesTeaserTool(BaseTool):
    """Anonymous callers get the public teaser; notes:read unlocks private notes."""

    def __init__(self, store: NotesStore):
        self.store = store

    @property
    def name(self) -> str:
        return "notes_teaser"

    @property
    def title(self) -> str:
        return "Notes teaser"

    @property
    def description(self) -> str:
        return (
            "Optional auth demo: without token returns public teaser; "
            "with token+notes:read returns private notes"
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return _NO_INPUTS

    async def execute(self, **params: Any) -> ToolResult:
        ctx = get_auth_context()
        if ctx is not None and ctx.has_scopes("notes:read"):
            items = self.store.list_notes(ctx.sub)
            return self._success(
                f"Private notes for {ctx.sub}",
                {"mode": "private", "userId": ctx.sub, "items": items},
            )
        return self._success("Public notes teaser", {"mode": "public", "items": self.store.public_teaser()})


def build_notes_registry(
    store: NotesStore | None = None, policies: dict[str, ToolPolicy] | None = None
) -> ToolRegistry:
    """Registry with the five demo tools."""
    store = store or NotesStore()
    registry = ToolRegistry(policies if policies is not None else TOOL_POLICIES)
    for tool in (
        AuthShowTool(),
        WhoAmITool(),
        NotesListTool(store),
        NotesAddTool(store),
        NotesTeaserTool(store),
    ):
        registry.register(tool)
    return registry
