"""Note and comment CRUD over a notes directory.

The store owns everything the anchor engine deliberately does not: files,
sidecars, the per-note comment revision counter, and serialization of
concurrent writers. Every content change is routed through
:func:`agentnotes.transform.remap_comments_for_edit` and the remapped comments
are persisted together with the new content and revision.
"""

import shutil
from datetime import datetime, timezone
from pathlib import Path

from agentnotes.anchoring import (
    build_anchor_from_range,
    get_unique_match_range,
    hash_quote,
    reanchor_comment,
)
from agentnotes.locking import LOCK_FILENAME, file_lock
from agentnotes.models import (
    Affinity,
    CharRange,
    Comment,
    CommentAnchor,
    CommentStatus,
    Note,
    NotesListResult,
)
from agentnotes.resolution import get_all_highlight_ranges
from agentnotes.storage import (
    NOTE_SUFFIX,
    MarkdownFileRecord,
    cleanup_empty_parent_directories,
    find_note_record_by_id,
    generate_unique_file_path,
    get_all_directories,
    get_all_markdown_files,
    get_note_sidecar_path,
    normalize_directory_input,
    note_sort_key,
    parse_note_file,
    resolve_notes_path,
    write_sidecar_data,
)
from agentnotes.transform import mark_comments_stale, remap_comments_for_edit
from agentnotes.utils.atomic_write import atomic_write_text
from agentnotes.utils.logging import get_logger
from agentnotes.utils.slug import slugify
from agentnotes.utils.text import normalize_content, normalize_tags


class NoteStoreError(Exception):
    """Base class for note store failures."""

    pass


class NotesDirectoryNotFound(NoteStoreError):  # noqa: N818
    pass


class NoteNotFound(NoteStoreError):  # noqa: N818
    pass


class CommentNotFound(NoteStoreError):  # noqa: N818
    pass


class InvalidDirectory(NoteStoreError):  # noqa: N818
    """Raised for directory paths that are malformed or escape the notes root."""

    pass


class RevisionMismatch(NoteStoreError):  # noqa: N818
    """Raised when a new anchor was computed against an outdated note revision."""

    def __init__(self, expected: int, received: int) -> None:
        super().__init__(
            f"Anchor revision mismatch. Expected rev {expected}, received rev {received}"
        )
        self.expected = expected
        self.received = received


class AnchorNotFound(NoteStoreError):  # noqa: N818
    """Raised when re-anchor text is missing from the note or ambiguous."""

    pass


class NoteStore:
    """Notes stored as markdown files with JSON sidecars under one directory.

    Args:
        notes_dir: Root of the notes tree (must exist)
        lock_timeout: Seconds to wait for the store lock before LockTimeout
    """

    def __init__(self, notes_dir: Path, lock_timeout: float = 5.0) -> None:
        self.notes_dir = Path(notes_dir)
        self.lock_timeout = lock_timeout
        self.logger = get_logger()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def ensure_notes_dir(self) -> None:
        if not self.notes_dir.is_dir():
            raise NotesDirectoryNotFound(f"Notes directory not found: {self.notes_dir}")

    def _lock(self):
        lock_path = self.notes_dir / LOCK_FILENAME
        return file_lock(lock_path, mode="exclusive", timeout=self.lock_timeout)

    def _relative_path(self, full_path: Path) -> str:
        return full_path.resolve().relative_to(self.notes_dir.resolve()).as_posix()

    def _resolve_directory(self, directory: str) -> tuple[str, Path]:
        normalized = normalize_directory_input(directory)
        if normalized is None:
            raise InvalidDirectory(f"Invalid directory path: {directory!r}")
        target = resolve_notes_path(self.notes_dir, normalized)
        if target is None:
            raise InvalidDirectory(f"Directory path escapes notes root: {directory!r}")
        return normalized, target

    def _load(self, note_id: str) -> tuple[MarkdownFileRecord, Note]:
        record = find_note_record_by_id(self.notes_dir, note_id)
        if record is None:
            raise NoteNotFound(f"Note not found: {note_id}")

        note = parse_note_file(record.full_path, record.relative_path)
        if note is None:
            raise NoteStoreError(f"Failed to parse note: {note_id}")
        return record, note

    def _reload(self, record: MarkdownFileRecord) -> Note:
        note = parse_note_file(record.full_path, record.relative_path)
        if note is None:
            raise NoteStoreError(f"Failed to parse note: {record.relative_path}")
        return note

    def _settle_unsynced_edit(self, note: Note) -> tuple[list[Comment], int]:
        """Comments and revision to build on when the file changed behind the store.

        If the sidecar's content hash no longer matches the file, the anchors
        describe content that is gone and are flagged for review.
        """
        if note.content_hash is None or note.content_hash == hash_quote(note.content):
            return note.comments, note.comment_rev
        self.logger.debug("Note changed outside the store, flagging comments", note=note.id)
        return mark_comments_stale(note.comments, note.content, note.comment_rev)

    def _cleanup_after_removal(self, directory: Path) -> None:
        if directory.resolve() != self.notes_dir.resolve():
            cleanup_empty_parent_directories(directory, self.notes_dir)

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def list_notes(self) -> NotesListResult:
        """All parseable notes (sorted by path) and all directories."""
        if not self.notes_dir.exists():
            return NotesListResult(notes=[], directories=[])

        notes = [
            note
            for note in (
                parse_note_file(record.full_path, record.relative_path)
                for record in get_all_markdown_files(self.notes_dir)
            )
            if note is not None
        ]
        notes.sort(key=note_sort_key)
        return NotesListResult(notes=notes, directories=get_all_directories(self.notes_dir))

    def get_note(self, note_id: str) -> Note | None:
        if not self.notes_dir.exists():
            return None

        record = find_note_record_by_id(self.notes_dir, note_id)
        if record is None:
            return None
        return parse_note_file(record.full_path, record.relative_path)

    def create_note(self, title: str, directory: str = "") -> Note:
        """
        Create ``<directory>/YYYY-MM-DD-<slug>.md`` containing ``# Title``.

        Raises:
            ValueError: If the title is empty
            InvalidDirectory: If ``directory`` is invalid or escapes the root
        """
        self.ensure_notes_dir()

        title = title.strip()
        if not title:
            raise ValueError("Title cannot be empty")

        _, target_dir = self._resolve_directory(directory)

        with self._lock():
            target_dir.mkdir(parents=True, exist_ok=True)
            date_prefix = datetime.now(timezone.utc).strftime("%Y-%m-%d")
            file_path = generate_unique_file_path(
                target_dir, f"{date_prefix}-{slugify(title) or 'note'}"
            )
            initial = f"# {title}\n\n"
            atomic_write_text(initial, file_path)
            write_sidecar_data(file_path, [], [], 0, hash_quote(normalize_content(initial)))

        self.logger.debug("Created note", path=str(file_path))
        return self._reload(MarkdownFileRecord(file_path, self._relative_path(file_path)))

    def update_note(self, note_id: str, content: str) -> Note:
        """
        Replace a note's content, remapping comment anchors through the edit.

        The new content, remapped comments, and advanced revision are written
        under the store lock so each edit is diffed against the content it
        actually replaced.
        """
        self.ensure_notes_dir()
        updated_content = normalize_content(content)

        with self._lock():
            record, note = self._load(note_id)
            comments, next_rev = self._settle_unsynced_edit(note)

            if updated_content != note.content:
                comments, next_rev = remap_comments_for_edit(
                    comments, note.content, updated_content, next_rev
                )

            atomic_write_text(updated_content, record.full_path)
            write_sidecar_data(
                record.full_path, note.tags, comments, next_rev, hash_quote(updated_content)
            )

        self.logger.debug("Updated note", note=note_id, rev=next_rev)
        return self._reload(record)

    def sync_external_edit(self, note_id: str, previous_content: str) -> Note:
        """
        Remap comments after the note file was edited outside the store.

        ``previous_content`` is the content the caller last saw; the file's
        current content is treated as the result of one edit. The sidecar's
        content hash records which content the anchors describe:

        - it matches the file: the store already remapped, nothing is done
        - it matches ``previous_content`` (or is unknown): anchors are remapped
        - otherwise the baseline is lost and every comment is flagged stale
        """
        self.ensure_notes_dir()

        with self._lock():
            record, note = self._load(note_id)
            before = normalize_content(previous_content)
            if before == note.content:
                return note

            current_hash = hash_quote(note.content)
            if note.content_hash == current_hash:
                self.logger.debug("Skipping sync, note already remapped", note=note_id)
                return note

            if note.content_hash is not None and note.content_hash != hash_quote(before):
                self.logger.debug("Unknown edit baseline, flagging comments", note=note_id)
                comments, next_rev = mark_comments_stale(
                    note.comments, note.content, note.comment_rev
                )
            else:
                comments, next_rev = remap_comments_for_edit(
                    note.comments, before, note.content, note.comment_rev
                )
            write_sidecar_data(record.full_path, note.tags, comments, next_rev, current_hash)

        self.logger.debug("Synced external edit", note=note_id, rev=next_rev)
        return self._reload(record)

    def update_note_metadata(self, note_id: str, tags: list[str]) -> Note:
        self.ensure_notes_dir()

        with self._lock():
            record, note = self._load(note_id)
            write_sidecar_data(
                record.full_path,
                normalize_tags(tags),
                note.comments,
                note.comment_rev,
                note.content_hash,
            )

        return self._reload(record)

    def delete_note(self, note_id: str) -> None:
        """Delete a note and its sidecar, pruning directories left empty."""
        self.ensure_notes_dir()

        with self._lock():
            record = find_note_record_by_id(self.notes_dir, note_id)
            if record is None:
                raise NoteNotFound(f"Note not found: {note_id}")

            record.full_path.unlink()
            get_note_sidecar_path(record.full_path).unlink(missing_ok=True)
            self._cleanup_after_removal(record.full_path.parent)

        self.logger.debug("Deleted note", note=note_id)

    def move_note(self, note_id: str, directory: str) -> Note:
        """
        Move a note (and its sidecar) into another directory.

        A unique filename is chosen if the destination is taken.
        """
        self.ensure_notes_dir()
        _, target_dir = self._resolve_directory(directory)

        with self._lock():
            record = find_note_record_by_id(self.notes_dir, note_id)
            if record is None:
                raise NoteNotFound(f"Note not found: {note_id}")

            target_dir.mkdir(parents=True, exist_ok=True)
            current_path = record.full_path.resolve()
            destination = target_dir / current_path.name

            if destination.resolve() != current_path and (
                destination.exists() or get_note_sidecar_path(destination).exists()
            ):
                destination = generate_unique_file_path(
                    target_dir, current_path.name[: -len(NOTE_SUFFIX)]
                )

            if destination.resolve() != current_path:
                source_sidecar = get_note_sidecar_path(current_path)
                current_path.rename(destination)
                if source_sidecar.exists():
                    source_sidecar.rename(get_note_sidecar_path(destination))
                self._cleanup_after_removal(current_path.parent)

        self.logger.debug("Moved note", note=note_id, destination=str(destination))
        return self._reload(MarkdownFileRecord(destination, self._relative_path(destination)))

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def add_comment(self, note_id: str, body: str, author: str, anchor: CommentAnchor) -> Note:
        """
        Add a comment anchored to ``anchor``'s range.

        The anchor must have been computed against the note's current
        revision. It is rebuilt from the stored content so the quote snapshot
        is authoritative; the requested affinities are kept.

        Raises:
            RevisionMismatch: If ``anchor.rev`` is not the note's comment_rev
            InvalidRange: If the range does not fit the current content
        """
        self.ensure_notes_dir()

        with self._lock():
            record, note = self._load(note_id)

            if anchor.rev != note.comment_rev:
                raise RevisionMismatch(expected=note.comment_rev, received=anchor.rev)

            comments, rev = self._settle_unsynced_edit(note)
            target_rev = max(rev, 1)
            built = build_anchor_from_range(note.content, anchor.from_, anchor.to, target_rev)
            built = built.model_copy(
                update={
                    "start_affinity": Affinity(anchor.start_affinity),
                    "end_affinity": Affinity(anchor.end_affinity),
                }
            )

            comment = Comment(author=author, body=body, status=CommentStatus.ATTACHED, anchor=built)
            write_sidecar_data(
                record.full_path,
                note.tags,
                [*comments, comment],
                target_rev,
                hash_quote(note.content),
            )

        self.logger.debug("Added comment", note=note_id, comment=comment.id)
        return self._reload(record)

    def delete_comment(self, note_id: str, comment_id: str) -> Note:
        if not comment_id:
            raise ValueError("Comment ID is required")
        self.ensure_notes_dir()

        with self._lock():
            record, note = self._load(note_id)
            remaining = [c for c in note.comments if c.id != comment_id]
            if len(remaining) == len(note.comments):
                raise CommentNotFound(f"Comment not found: {comment_id}")

            write_sidecar_data(
                record.full_path, note.tags, remaining, note.comment_rev, note.content_hash
            )

        self.logger.debug("Deleted comment", note=note_id, comment=comment_id)
        return self._reload(record)

    def reanchor_comment(
        self,
        note_id: str,
        comment_id: str,
        from_: int | None = None,
        to: int | None = None,
        exact: str | None = None,
    ) -> Note:
        """
        Manually re-anchor a comment, restoring it to ``attached``.

        Pass either an explicit ``from_``/``to`` range or ``exact`` text that
        occurs exactly once in the note.

        Raises:
            AnchorNotFound: If ``exact`` is missing from the note or ambiguous
            InvalidRange: If the explicit range does not fit the content
        """
        self.ensure_notes_dir()

        with self._lock():
            record, note = self._load(note_id)

            if exact is not None:
                match = get_unique_match_range(note.content, exact)
                if match is None:
                    raise AnchorNotFound("Exact text not found or is ambiguous")
                from_, to = match
            elif from_ is None or to is None:
                raise ValueError("Must specify either exact text or both from and to offsets")

            settled, rev = self._settle_unsynced_edit(note)
            target_rev = max(rev, 1)
            comments = []
            found = False
            for comment in settled:
                if comment.id == comment_id:
                    comment = reanchor_comment(comment, note.content, from_, to, target_rev)
                    found = True
                comments.append(comment)
            if not found:
                raise CommentNotFound(f"Comment not found: {comment_id}")

            write_sidecar_data(
                record.full_path, note.tags, comments, target_rev, hash_quote(note.content)
            )

        self.logger.debug("Re-anchored comment", note=note_id, comment=comment_id)
        return self._reload(record)

    def get_highlight_ranges(self, note_id: str) -> list[CharRange]:
        """Merged highlight ranges for all of a note's comments."""
        note = self.get_note(note_id)
        if note is None:
            raise NoteNotFound(f"Note not found: {note_id}")
        return get_all_highlight_ranges(note.content, note.comments)

    # ------------------------------------------------------------------
    # Directories
    # ------------------------------------------------------------------

    def create_directory(self, path: str) -> str:
        self.ensure_notes_dir()
        normalized, target = self._resolve_directory(path)
        if not normalized:
            raise InvalidDirectory(f"Invalid directory path: {path!r}")

        target.mkdir(parents=True, exist_ok=True)
        return normalized

    def delete_directory(self, path: str) -> str:
        """Recursively delete a directory below the notes root, notes included."""
        self.ensure_notes_dir()
        normalized, target = self._resolve_directory(path)
        if not normalized or target == self.notes_dir.resolve():
            raise InvalidDirectory(f"Invalid directory path: {path!r}")
        if not target.exists():
            raise InvalidDirectory(f"Directory not found: {normalized}")
        if not target.is_dir():
            raise InvalidDirectory(f"Target path is not a directory: {normalized}")

        with self._lock():
            shutil.rmtree(target)
            self._cleanup_after_removal(target.parent)

        self.logger.debug("Deleted directory", path=normalized)
        return normalized
