"""Note storage: markdown files, JSON sidecars, and notes-directory layout.

Each note is a ``*.md`` file holding only its text. Its metadata (tags, the
comment list, the comment revision counter, and a hash of the content the
anchors describe) lives in a JSON sidecar next to it with the same stem:

- ``projects/2026-01-05-kickoff.md``   → note content
- ``projects/2026-01-05-kickoff.json`` → ``{"tags": [...], "comments": [...], "comment_rev": 3}``

Reads are lenient so that hand-edited or older sidecars still load; writes are
atomic and deterministic.
"""

import json
import math
import posixpath
import re
from pathlib import Path
from typing import Any, NamedTuple

import yaml

from agentnotes.anchoring import get_unique_match_range, hash_quote
from agentnotes.models import (
    Comment,
    CommentAnchor,
    CommentStatus,
    Note,
    SidecarData,
    utc_now_iso,
)
from agentnotes.transform import clamp, normalize_comment
from agentnotes.utils.atomic_write import atomic_write_json, atomic_write_text
from agentnotes.utils.logging import get_logger
from agentnotes.utils.text import normalize_content, normalize_tags

NOTE_SUFFIX = ".md"
SIDECAR_SUFFIX = ".json"

# Older notes kept their metadata in YAML frontmatter instead of a sidecar
LEGACY_FRONTMATTER_FIELDS = frozenset(
    {"id", "title", "tags", "created", "updated", "source", "comment_rev", "comments"}
)

_FRONTMATTER_PATTERN = re.compile(r"^---[ \t]*\n([\s\S]*?)\n---[ \t]*(?:\n([\s\S]*))?$")
_HEADING_PATTERN = re.compile(r"^#\s+(.+?)\s*$")


class MarkdownFileRecord(NamedTuple):
    full_path: Path
    relative_path: str


class ParsedMarkdown(NamedTuple):
    content: str
    legacy_data: dict[str, Any]
    has_legacy_frontmatter: bool


# ============================================================================
# Sidecar I/O
# ============================================================================


def get_note_sidecar_path(note_path: Path) -> Path:
    """
    Map a note file to its sidecar path.

    - notes/idea.md → notes/idea.json
    - notes/README  → notes/README.json
    """
    if note_path.suffix.lower() == NOTE_SUFFIX:
        return note_path.with_suffix(SIDECAR_SUFFIX)
    return note_path.with_name(note_path.name + SIDECAR_SUFFIX)


def read_sidecar_data(note_path: Path) -> dict[str, Any]:
    """
    Read a note's raw sidecar data.

    Missing sidecars yield an empty dict. Unreadable or malformed sidecars are
    logged and also yield an empty dict, so a single bad file never hides the
    note itself.
    """
    sidecar_path = get_note_sidecar_path(note_path)
    if not sidecar_path.exists():
        return {}

    try:
        with open(sidecar_path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        get_logger().warning(f"Error reading note metadata sidecar {sidecar_path}: {e}")
        return {}

    return data if isinstance(data, dict) else {}


def write_sidecar_data(
    note_path: Path,
    tags: list[str],
    comments: list[Comment],
    comment_rev: int,
    content_hash: str | None = None,
) -> None:
    """
    Write a note's sidecar atomically.

    ``comment_rev`` is omitted from the file while it is still 0, and
    ``content_hash`` while it is unknown.

    Raises:
        OSError: If the write fails
    """
    sidecar = SidecarData(
        tags=normalize_tags(tags),
        comments=comments,
        comment_rev=max(0, math.floor(comment_rev)),
        content_hash=content_hash,
    )
    payload: dict[str, Any] = {
        "tags": sidecar.tags,
        "comments": [comment.to_record() for comment in sidecar.comments],
    }
    if sidecar.comment_rev > 0:
        payload["comment_rev"] = sidecar.comment_rev
    if sidecar.content_hash:
        payload["content_hash"] = sidecar.content_hash

    atomic_write_json(payload, get_note_sidecar_path(note_path))


# ============================================================================
# Lenient comment parsing
# ============================================================================


def _non_negative_int(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return math.floor(value)


def _string(value: Any, fallback: str = "") -> str:
    return value if isinstance(value, str) else fallback


def _parse_anchor(source: Any, content: str, fallback_rev: int) -> CommentAnchor:
    """Parse an anchor record, accepting legacy ``start``/``end``/``exact`` keys."""
    if not isinstance(source, dict):
        return CommentAnchor(rev=fallback_rev)

    from_value = _non_negative_int(source.get("from"))
    to_value = _non_negative_int(source.get("to"))
    legacy_start = _non_negative_int(source.get("start"))
    legacy_end = _non_negative_int(source.get("end"))
    exact = _string(source.get("exact"))

    from_, to = 0, 0
    if from_value is not None and to_value is not None and to_value >= from_value:
        from_, to = from_value, to_value
    elif legacy_start is not None and legacy_end is not None and legacy_end >= legacy_start:
        from_, to = legacy_start, legacy_end
    else:
        match = get_unique_match_range(content, exact)
        if match is not None:
            from_, to = match

    rev = _non_negative_int(source.get("rev"))
    quote = _string(source.get("quote"), exact)
    quote_hash = _string(source.get("quote_hash")) or _string(source.get("quoteHash"))

    return CommentAnchor(
        from_=clamp(from_, 0, len(content)),
        to=clamp(to, 0, len(content)),
        rev=rev if rev is not None else fallback_rev,
        start_affinity=source.get("start_affinity") or source.get("startAffinity"),
        end_affinity=source.get("end_affinity") or source.get("endAffinity"),
        quote=quote or None,
        quote_hash=quote_hash or None,
    )


def _parse_comment(source: Any, content: str, fallback_rev: int, fallback_created: str) -> Comment:
    if not isinstance(source, dict):
        return Comment(
            id="",
            created=fallback_created,
            status=CommentStatus.DETACHED,
            anchor=CommentAnchor(rev=fallback_rev),
        )

    anchor = _parse_anchor(source.get("anchor"), content, fallback_rev)
    raw_status = source.get("status")
    if raw_status in ("attached", "stale", "detached"):
        status = CommentStatus(raw_status)
    else:
        status = CommentStatus.ATTACHED if anchor.has_range else CommentStatus.DETACHED

    return Comment(
        id=_string(source.get("id")),
        author=_string(source.get("author"))[:200],
        created=source.get("created") or fallback_created,
        body=_string(source.get("content")),
        status=status,
        anchor=anchor,
    )


def parse_comments(source: Any, content: str, comment_rev: int) -> list[Comment]:
    """
    Parse a sidecar's ``comments`` value against the note content.

    Malformed entries degrade to detached comments rather than failing the
    whole note.
    """
    if not isinstance(source, list):
        return []

    fallback_created = utc_now_iso()
    return [_parse_comment(entry, content, comment_rev, fallback_created) for entry in source]


# ============================================================================
# Markdown files
# ============================================================================


def parse_frontmatter(raw: str) -> tuple[dict[str, Any] | None, str]:
    """Split YAML frontmatter from a markdown document.

    Returns:
        Tuple of (frontmatter_dict, body). frontmatter_dict is None when the
        document has no valid mapping frontmatter, in which case body is the
        whole document.

    Examples:
        >>> meta, body = parse_frontmatter("---\\ntags: [a]\\n---\\nBody text")
        >>> meta["tags"], body
        (['a'], 'Body text')
    """
    match = _FRONTMATTER_PATTERN.match(raw)
    if not match:
        return None, raw

    try:
        frontmatter = yaml.safe_load(match.group(1))
    except yaml.YAMLError:
        return None, raw

    if not isinstance(frontmatter, dict):
        return None, raw
    return frontmatter, match.group(2) or ""


def parse_markdown_content(file_path: Path) -> ParsedMarkdown:
    """Read a note file, separating legacy metadata frontmatter from content."""
    raw = file_path.read_text(encoding="utf-8").replace("\r\n", "\n")

    if raw.startswith("---\n"):
        frontmatter, body = parse_frontmatter(raw)
        if frontmatter is not None and LEGACY_FRONTMATTER_FIELDS & frontmatter.keys():
            return ParsedMarkdown(normalize_content(body), frontmatter, True)

    return ParsedMarkdown(normalize_content(raw), {}, False)


def extract_note_title(content: str, file_path: Path) -> str:
    """Use a leading ``# Heading`` as the title, else the file stem."""
    first_line = content.split("\n", 1)[0]
    match = _HEADING_PATTERN.match(first_line)
    if match:
        return match.group(1).strip()
    return file_path.stem


def parse_note_file(file_path: Path, relative_path: str = "") -> Note | None:
    """
    Load a note and its sidecar.

    Side effects: writes a sidecar when none exists, and migrates legacy
    frontmatter metadata into the sidecar (rewriting the markdown file without
    its frontmatter).

    Returns:
        The Note, or None if the markdown file cannot be read
    """
    logger = get_logger()
    try:
        content, legacy_data, has_legacy = parse_markdown_content(file_path)
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Error parsing note file {file_path}: {e}")
        return None

    sidecar_path = get_note_sidecar_path(file_path)
    sidecar_data = read_sidecar_data(file_path)

    def field(name: str) -> Any:
        value = sidecar_data.get(name)
        return value if value is not None else legacy_data.get(name)

    raw_tags = field("tags")
    tags = normalize_tags(
        [t for t in raw_tags if isinstance(t, str)] if isinstance(raw_tags, list) else []
    )
    declared_rev = _non_negative_int(field("comment_rev")) or 0
    comments = parse_comments(field("comments"), content, declared_rev)
    comment_rev = max(1, declared_rev) if comments else declared_rev
    comments = [normalize_comment(comment, content, comment_rev) for comment in comments]
    content_hash = sidecar_data.get("content_hash")
    if not isinstance(content_hash, str):
        content_hash = None

    if not sidecar_path.exists() or has_legacy:
        content_hash = hash_quote(content)
        try:
            write_sidecar_data(file_path, tags, comments, comment_rev, content_hash)
        except OSError as e:
            logger.warning(f"Error writing note metadata sidecar {sidecar_path}: {e}")

    if has_legacy:
        try:
            atomic_write_text(content, file_path)
            logger.debug("Migrated legacy frontmatter to sidecar", note=str(file_path))
        except OSError as e:
            logger.warning(f"Error rewriting legacy note {file_path}: {e}")

    relative = format_relative_path(relative_path or file_path.name)
    directory = posixpath.dirname(relative)

    return Note(
        id=relative,
        title=extract_note_title(content, file_path),
        tags=tags,
        comment_rev=comment_rev,
        comments=comments,
        content=content,
        filename=file_path.name,
        relative_path=relative,
        directory=directory,
        content_hash=content_hash,
    )


# ============================================================================
# Notes directory layout
# ============================================================================


def format_relative_path(path: str) -> str:
    """Use POSIX separators for note ids on every platform."""
    return path.replace("\\", "/")


def normalize_directory_input(value: str) -> str | None:
    """
    Normalize a user-supplied directory relative to the notes root.

    Returns:
        "" for the root, a "/"-joined path otherwise, or None if any segment
        is "." or ".."
    """
    segments = [s.strip() for s in value.strip().replace("\\", "/").split("/")]
    segments = [s for s in segments if s]

    if any(s in (".", "..") for s in segments):
        return None
    return "/".join(segments)


def resolve_notes_path(notes_dir: Path, relative_path: str = "") -> Path | None:
    """
    Resolve a path inside the notes directory.

    Returns:
        Absolute path, or None if the path is invalid or escapes the notes root
    """
    normalized = normalize_directory_input(relative_path)
    if normalized is None:
        return None

    root = notes_dir.resolve()
    resolved = (root / normalized).resolve()
    try:
        resolved.relative_to(root)
    except ValueError:
        return None
    return resolved


def get_all_markdown_files(notes_dir: Path) -> list[MarkdownFileRecord]:
    """All ``*.md`` files below ``notes_dir``, with POSIX relative paths."""
    if not notes_dir.exists():
        return []

    return [
        MarkdownFileRecord(path, path.relative_to(notes_dir).as_posix())
        for path in sorted(notes_dir.rglob(f"*{NOTE_SUFFIX}"))
        if path.is_file()
    ]


def get_all_directories(notes_dir: Path) -> list[str]:
    """All directories below ``notes_dir`` as sorted POSIX relative paths."""
    if not notes_dir.exists():
        return []

    return sorted(
        path.relative_to(notes_dir).as_posix() for path in notes_dir.rglob("*") if path.is_dir()
    )


def generate_unique_file_path(target_dir: Path, base_name: str) -> Path:
    """
    Pick a note path that collides with neither a note nor a sidecar.

    Tries ``base.md``, then ``base-2.md``, ``base-3.md``, ...
    """
    base = base_name.strip() or "note"
    candidate = target_dir / f"{base}{NOTE_SUFFIX}"
    suffix = 2

    while candidate.exists() or get_note_sidecar_path(candidate).exists():
        candidate = target_dir / f"{base}-{suffix}{NOTE_SUFFIX}"
        suffix += 1

    return candidate


def cleanup_empty_parent_directories(start_dir: Path, stop_dir: Path) -> None:
    """Remove ``start_dir`` and its ancestors while empty, stopping at ``stop_dir``."""
    current = start_dir.resolve()
    stop = stop_dir.resolve()

    while current != stop and stop in current.parents:
        try:
            if any(current.iterdir()):
                return
            current.rmdir()
        except OSError:
            return
        current = current.parent


def find_note_record_by_id(notes_dir: Path, note_id: str) -> MarkdownFileRecord | None:
    """Look up a note by its id (relative ``.md`` path)."""
    normalized = note_id.strip()
    if posixpath.splitext(normalized)[1].lower() != NOTE_SUFFIX:
        return None

    full_path = resolve_notes_path(notes_dir, normalized)
    if full_path is None or not full_path.is_file():
        return None

    return MarkdownFileRecord(
        full_path, full_path.relative_to(notes_dir.resolve()).as_posix()
    )


def note_sort_key(note: Note) -> tuple[str, str, str]:
    """Stable note ordering: relative path, then title, then id."""
    return (note.relative_path, note.title, note.id)
