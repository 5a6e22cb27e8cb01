"""Data models for notes, comments, and comment anchors."""

from datetime import datetime, timezone
from enum import Enum
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from ulid import new as new_ulid


def utc_now_iso() -> str:
    """Current UTC time as ISO 8601 with a ``Z`` suffix."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class Affinity(str, Enum):
    """Which side of an insertion point an anchor boundary sticks to."""

    BEFORE = "before"
    AFTER = "after"


class CommentStatus(str, Enum):
    """Derived anchor status, ordered from healthiest to least healthy."""

    ATTACHED = "attached"  # Anchor believed accurate for the current revision
    STALE = "stale"  # Edit touched the anchored text; offsets are best-effort
    DETACHED = "detached"  # Anchored text is gone; needs manual re-anchor

    @property
    def severity(self) -> int:
        return _STATUS_SEVERITY[self]


_STATUS_SEVERITY = {
    CommentStatus.ATTACHED: 0,
    CommentStatus.STALE: 1,
    CommentStatus.DETACHED: 2,
}

DEFAULT_START_AFFINITY = Affinity.AFTER
DEFAULT_END_AFFINITY = Affinity.BEFORE
_AFFINITY_VALUES = ("before", "after")


class TextEditOp(NamedTuple):
    """One contiguous replacement inferred between two text snapshots."""

    at: int
    delete_len: int
    insert_len: int


class CharRange(NamedTuple):
    """Half-open character range ``[from_, to)``."""

    from_: int
    to: int


class CommentAnchor(BaseModel):
    """Where a comment attaches within a note at a specific revision.

    ``quote`` and ``quote_hash`` are a snapshot taken when the anchor was
    built. Automatic remapping only moves ``from_``/``to`` and bumps ``rev``;
    the snapshot is replaced only by a manual re-anchor.

    Zero-width ranges are representable because remapping after a deletion
    can produce them. Validation of user-supplied ranges happens in
    :func:`agentnotes.anchoring.build_anchor_from_range`.
    """

    model_config = ConfigDict(populate_by_name=True)

    from_: int = Field(default=0, ge=0, alias="from")
    to: int = Field(default=0, ge=0)
    rev: int = Field(default=0, ge=0)
    start_affinity: Affinity = DEFAULT_START_AFFINITY
    end_affinity: Affinity = DEFAULT_END_AFFINITY
    quote: str | None = None
    quote_hash: str | None = None

    @field_validator("start_affinity", mode="before")
    @classmethod
    def default_start_affinity(cls, v):
        """Fall back to the default for unknown start affinities."""
        return v if v in _AFFINITY_VALUES else DEFAULT_START_AFFINITY

    @field_validator("end_affinity", mode="before")
    @classmethod
    def default_end_affinity(cls, v):
        """Fall back to the default for unknown end affinities."""
        return v if v in _AFFINITY_VALUES else DEFAULT_END_AFFINITY

    @property
    def has_range(self) -> bool:
        return self.to > self.from_


class Comment(BaseModel):
    """An annotation on a note, attached to exactly one anchor."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: str(new_ulid()))
    author: str = Field(default="", max_length=200)
    created: str = Field(default_factory=utc_now_iso)
    body: str = Field(default="", alias="content")
    status: CommentStatus = CommentStatus.ATTACHED
    anchor: CommentAnchor = Field(default_factory=CommentAnchor)

    @field_validator("created", mode="before")
    @classmethod
    def normalize_timestamp(cls, v) -> str:
        """Coerce the timestamp to ISO 8601 UTC, replacing unparseable values with now."""
        if not isinstance(v, str):
            return utc_now_iso()
        try:
            dt = datetime.fromisoformat(v.replace("Z", "+00:00"))
        except ValueError:
            return utc_now_iso()
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")

    def to_record(self) -> dict:
        """Wire representation stored in the note sidecar."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class SidecarData(BaseModel):
    """Root structure of a note's JSON sidecar."""

    tags: list[str] = Field(default_factory=list)
    comments: list[Comment] = Field(default_factory=list)
    comment_rev: int = Field(default=0, ge=0)
    content_hash: str | None = None


class Note(BaseModel):
    """A markdown note together with its sidecar metadata.

    The note's identity is its POSIX path relative to the notes directory.
    ``content_hash`` fingerprints the content the comment anchors were last
    mapped onto; it differs from the file only after an unsynced external edit.
    """

    id: str
    title: str
    tags: list[str] = Field(default_factory=list)
    comment_rev: int = Field(default=0, ge=0)
    comments: list[Comment] = Field(default_factory=list)
    content: str = ""
    filename: str
    relative_path: str
    directory: str = ""
    content_hash: str | None = None


class NotesListResult(NamedTuple):
    notes: list[Note]
    directories: list[str]


class RemapResult(NamedTuple):
    """Comments remapped through one edit, plus the revision they now match."""

    comments: list[Comment]
    next_rev: int


class TagCount(NamedTuple):
    tag: str
    count: int
