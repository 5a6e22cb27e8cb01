"""MCP server exposing notes and anchored comments as tools.

All tools take JSON arguments validated by pydantic request models and return
a single JSON text block. Failures are returned as
``{"error": {"code": ..., "message": ...}}`` rather than raised.
"""

import json
import os
from pathlib import Path
from typing import Any, Literal

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from agentnotes.anchoring import InvalidRange, build_anchor_from_range, get_unique_match_range
from agentnotes.locking import LockTimeout
from agentnotes.models import Affinity, CommentAnchor, CommentStatus, Note
from agentnotes.search import search
from agentnotes.store import (
    AnchorNotFound,
    CommentNotFound,
    InvalidDirectory,
    NoteNotFound,
    NotesDirectoryNotFound,
    NoteStore,
    NoteStoreError,
    RevisionMismatch,
)

# ============================================================================
# Configuration
# ============================================================================

_notes_dir: Path | None = None


def configure(notes_dir: Path | None) -> None:
    """Set the notes directory served by this process."""
    global _notes_dir
    _notes_dir = Path(notes_dir) if notes_dir is not None else None


def get_store() -> NoteStore:
    """Store for the configured directory, else $AGENTNOTES_DIR, else the cwd."""
    if _notes_dir is not None:
        return NoteStore(_notes_dir)
    return NoteStore(Path(os.environ.get("AGENTNOTES_DIR") or Path.cwd()))


# ============================================================================
# Error Models
# ============================================================================


class ErrorResponse(BaseModel):
    """Structured error response for MCP tools."""

    code: str = Field(..., description="Error code (NOTE_NOT_FOUND, REVISION_MISMATCH, etc.)")
    message: str = Field(..., description="Human-readable error message")


_ERROR_CODES: list[tuple[type[Exception], str]] = [
    (NoteNotFound, "NOTE_NOT_FOUND"),
    (CommentNotFound, "COMMENT_NOT_FOUND"),
    (RevisionMismatch, "REVISION_MISMATCH"),
    (AnchorNotFound, "ANCHOR_NOT_FOUND"),
    (InvalidDirectory, "INVALID_DIRECTORY"),
    (NotesDirectoryNotFound, "NOTES_DIR_NOT_FOUND"),
    (NoteStoreError, "STORE_ERROR"),
    (InvalidRange, "INVALID_RANGE"),
    (LockTimeout, "LOCK_TIMEOUT"),
    (ValueError, "VALIDATION_ERROR"),
]


def _text(payload: dict[str, Any]) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(payload, indent=2))]


def error_content(code: str, message: str) -> list[TextContent]:
    error = ErrorResponse(code=code, message=message)
    return _text({"error": error.model_dump()})


# ============================================================================
# Request/Response Models
# ============================================================================


class NoteListRequest(BaseModel):
    """Request model for note_list tool."""

    tags: list[str] | None = Field(default=None, description="Only notes with all of these tags")
    limit: int | None = Field(default=None, ge=1, description="Maximum number of notes")
    sort_by: Literal["created", "updated", "title"] = Field(default="created")


class NoteSearchRequest(BaseModel):
    """Request model for note_search tool."""

    query: str = Field(..., min_length=1, description="Text matched against title, content, tags")
    tags: list[str] | None = Field(default=None, description="Only notes with all of these tags")
    limit: int = Field(default=10, ge=1, description="Maximum number of results")


class NoteShowRequest(BaseModel):
    """Request model for note_show and note_highlights tools."""

    note_id: str = Field(..., description="Note id (path relative to the notes directory)")


class NoteCreateRequest(BaseModel):
    """Request model for note_create tool."""

    title: str = Field(..., min_length=1, description="Note title")
    directory: str = Field(default="", description="Directory relative to the notes root")
    content: str | None = Field(default=None, description="Initial content (replaces the heading)")
    tags: list[str] | None = Field(default=None, description="Tags")


class NoteUpdateRequest(BaseModel):
    """Request model for note_update tool."""

    note_id: str = Field(..., description="Note id")
    content: str | None = Field(default=None, description="New full content")
    tags: list[str] | None = Field(default=None, description="Replacement tag list")


class CommentAddRequest(BaseModel):
    """Request model for comment_add tool.

    Anchor with either ``exact`` text or a ``from``/``to`` range computed
    against revision ``rev`` of the note.
    """

    model_config = ConfigDict(populate_by_name=True)

    note_id: str = Field(..., description="Note id")
    body: str = Field(..., min_length=1, max_length=10000, description="Comment body")
    author: str = Field(default="agent", max_length=200, description="Author name")
    exact: str | None = Field(default=None, description="Text occurring exactly once in the note")
    from_: int | None = Field(default=None, ge=0, alias="from", description="Start offset")
    to: int | None = Field(default=None, ge=0, description="End offset (exclusive)")
    rev: int | None = Field(
        default=None, ge=0, description="comment_rev the offsets refer to (default: current)"
    )
    start_affinity: Affinity = Field(default=Affinity.AFTER)
    end_affinity: Affinity = Field(default=Affinity.BEFORE)


class CommentListRequest(BaseModel):
    """Request model for comment_list tool."""

    note_id: str = Field(..., description="Note id")
    status: CommentStatus | None = Field(default=None, description="Filter by anchor status")


class CommentDeleteRequest(BaseModel):
    """Request model for comment_delete tool."""

    note_id: str = Field(..., description="Note id")
    comment_id: str = Field(..., min_length=1, description="Comment id (ULID)")


class CommentReanchorRequest(BaseModel):
    """Request model for comment_reanchor tool."""

    model_config = ConfigDict(populate_by_name=True)

    note_id: str = Field(..., description="Note id")
    comment_id: str = Field(..., min_length=1, description="Comment id (ULID)")
    exact: str | None = Field(default=None, description="Text occurring exactly once in the note")
    from_: int | None = Field(default=None, ge=0, alias="from", description="Start offset")
    to: int | None = Field(default=None, ge=0, description="End offset (exclusive)")


class NoteListResponse(BaseModel):
    notes: list[dict[str, Any]]
    directories: list[str]


class NoteResponse(BaseModel):
    note: dict[str, Any]


class CommentAddResponse(BaseModel):
    comment: dict[str, Any]
    comment_rev: int


class CommentListResponse(BaseModel):
    comments: list[dict[str, Any]]
    comment_rev: int


class CommentDeleteResponse(BaseModel):
    comment_id: str
    remaining: int


class HighlightsResponse(BaseModel):
    ranges: list[dict[str, int]]


def note_summary(note: Note) -> dict[str, Any]:
    return {
        "id": note.id,
        "title": note.title,
        "tags": note.tags,
        "directory": note.directory,
        "comment_count": len(note.comments),
        "comment_rev": note.comment_rev,
    }


def note_detail(note: Note) -> dict[str, Any]:
    return note.model_dump(
        mode="json", by_alias=True, exclude_none=True, exclude={"content_hash"}
    )


def _require_note(store: NoteStore, note_id: str) -> Note:
    note = store.get_note(note_id)
    if note is None:
        raise NoteNotFound(f"Note not found: {note_id}")
    return note


# ============================================================================
# Tool Handlers
# ============================================================================


async def handle_note_list(arguments: Any) -> list[TextContent]:
    req = NoteListRequest(**arguments)
    result = get_store().list_notes()
    notes = search(result.notes, tags=req.tags, limit=req.limit, sort_by=req.sort_by)
    response = NoteListResponse(
        notes=[note_summary(n) for n in notes], directories=result.directories
    )
    return _text(response.model_dump())


async def handle_note_search(arguments: Any) -> list[TextContent]:
    req = NoteSearchRequest(**arguments)
    result = get_store().list_notes()
    notes = search(result.notes, query=req.query, tags=req.tags, limit=req.limit)
    response = NoteListResponse(
        notes=[note_summary(n) for n in notes], directories=result.directories
    )
    return _text(response.model_dump())


async def handle_note_show(arguments: Any) -> list[TextContent]:
    req = NoteShowRequest(**arguments)
    note = _require_note(get_store(), req.note_id)
    return _text(NoteResponse(note=note_detail(note)).model_dump())


async def handle_note_create(arguments: Any) -> list[TextContent]:
    req = NoteCreateRequest(**arguments)
    store = get_store()
    note = store.create_note(req.title, req.directory)
    if req.content:
        note = store.update_note(note.id, req.content)
    if req.tags:
        note = store.update_note_metadata(note.id, req.tags)
    return _text(NoteResponse(note=note_detail(note)).model_dump())


async def handle_note_update(arguments: Any) -> list[TextContent]:
    """Replace content (remapping comments) and/or tags."""
    req = NoteUpdateRequest(**arguments)
    if req.content is None and req.tags is None:
        return error_content("VALIDATION_ERROR", "Provide content and/or tags to update")

    store = get_store()
    note = _require_note(store, req.note_id)
    if req.tags is not None:
        note = store.update_note_metadata(note.id, req.tags)
    if req.content is not None:
        note = store.update_note(note.id, req.content)
    return _text(NoteResponse(note=note_detail(note)).model_dump())


async def handle_comment_add(arguments: Any) -> list[TextContent]:
    """Anchor a new comment; offsets must refer to the note's current revision."""
    req = CommentAddRequest(**arguments)
    store = get_store()
    note = _require_note(store, req.note_id)

    if req.exact is not None:
        match = get_unique_match_range(note.content, req.exact)
        if match is None:
            raise AnchorNotFound("Exact text not found or is ambiguous")
        anchor = build_anchor_from_range(note.content, match.from_, match.to, note.comment_rev)
    elif req.from_ is not None and req.to is not None:
        rev = note.comment_rev if req.rev is None else req.rev
        anchor = CommentAnchor(from_=req.from_, to=req.to, rev=rev)
    else:
        return error_content("VALIDATION_ERROR", "Provide either exact or both from and to")

    anchor = anchor.model_copy(
        update={"start_affinity": req.start_affinity, "end_affinity": req.end_affinity}
    )
    updated = store.add_comment(note.id, req.body, req.author, anchor)
    response = CommentAddResponse(
        comment=updated.comments[-1].to_record(), comment_rev=updated.comment_rev
    )
    return _text(response.model_dump())


async def handle_comment_list(arguments: Any) -> list[TextContent]:
    req = CommentListRequest(**arguments)
    note = _require_note(get_store(), req.note_id)
    comments = [c for c in note.comments if req.status is None or c.status == req.status]
    response = CommentListResponse(
        comments=[c.to_record() for c in comments], comment_rev=note.comment_rev
    )
    return _text(response.model_dump())


async def handle_comment_delete(arguments: Any) -> list[TextContent]:
    req = CommentDeleteRequest(**arguments)
    note = get_store().delete_comment(req.note_id, req.comment_id)
    response = CommentDeleteResponse(comment_id=req.comment_id, remaining=len(note.comments))
    return _text(response.model_dump())


async def handle_comment_reanchor(arguments: Any) -> list[TextContent]:
    req = CommentReanchorRequest(**arguments)
    if req.exact is None and (req.from_ is None or req.to is None):
        return error_content("VALIDATION_ERROR", "Provide either exact or both from and to")

    note = get_store().reanchor_comment(
        req.note_id, req.comment_id, from_=req.from_, to=req.to, exact=req.exact
    )
    comment = next(c for c in note.comments if c.id == req.comment_id)
    response = CommentAddResponse(comment=comment.to_record(), comment_rev=note.comment_rev)
    return _text(response.model_dump())


async def handle_note_highlights(arguments: Any) -> list[TextContent]:
    req = NoteShowRequest(**arguments)
    ranges = get_store().get_highlight_ranges(req.note_id)
    response = HighlightsResponse(ranges=[{"from": r.from_, "to": r.to} for r in ranges])
    return _text(response.model_dump())


TOOLS: dict[str, tuple[str, type[BaseModel], Any]] = {
    "note_list": ("List notes, optionally filtered by tags", NoteListRequest, handle_note_list),
    "note_search": (
        "Search notes by title, content and tags",
        NoteSearchRequest,
        handle_note_search,
    ),
    "note_show": (
        "Show a note's content, tags, comments and comment_rev",
        NoteShowRequest,
        handle_note_show,
    ),
    "note_create": ("Create a new note", NoteCreateRequest, handle_note_create),
    "note_update": (
        "Replace a note's content and/or tags; comment anchors follow the edit",
        NoteUpdateRequest,
        handle_note_update,
    ),
    "comment_add": (
        "Add a comment anchored to exact text or a from/to range at revision rev",
        CommentAddRequest,
        handle_comment_add,
    ),
    "comment_list": ("List a note's comments", CommentListRequest, handle_comment_list),
    "comment_delete": ("Delete a comment", CommentDeleteRequest, handle_comment_delete),
    "comment_reanchor": (
        "Re-anchor a stale or detached comment, marking it attached",
        CommentReanchorRequest,
        handle_comment_reanchor,
    ),
    "note_highlights": (
        "Merged character ranges covered by a note's comments",
        NoteShowRequest,
        handle_note_highlights,
    ),
}


# ============================================================================
# MCP Server
# ============================================================================


mcp = Server("agentnotes")


@mcp.list_tools()
async def list_tools() -> list[Tool]:
    """List all available MCP tools."""
    return [
        Tool(
            name=name,
            description=description,
            inputSchema=model.model_json_schema(by_alias=True),
        )
        for name, (description, model, _) in TOOLS.items()
    ]


@mcp.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle MCP tool calls."""
    if name not in TOOLS:
        return error_content("UNKNOWN_TOOL", f"Unknown tool: {name}")

    _, _, handler = TOOLS[name]
    try:
        return await handler(arguments or {})
    except ValidationError as e:
        return error_content("VALIDATION_ERROR", f"Invalid input: {e}")
    except Exception as e:
        for exc_type, code in _ERROR_CODES:
            if isinstance(e, exc_type):
                return error_content(code, str(e))
        return error_content("INTERNAL_ERROR", str(e))


# ============================================================================
# Main Entry Point
# ============================================================================


async def main() -> None:
    """Run the MCP server."""
    async with stdio_server() as (read_stream, write_stream):
        await mcp.run(read_stream, write_stream, mcp.create_initialization_options())


def run_server() -> None:
    """Synchronous entry point for running the server."""
    import asyncio

    asyncio.run(main())


if __name__ == "__main__":
    run_server()
