"""Keep comment anchors in sync with notes edited outside agentnotes.

Editors that write note files directly bypass NoteStore.update_note, so
nothing remaps the comments. The watcher keeps a snapshot of every note's
content; when a markdown file settles after a change it hands the snapshot to
NoteStore.sync_external_edit, which derives the edit and persists the remapped
comments. Edits the store made itself are recognised there and skipped.
"""

import signal
import time
from pathlib import Path
from threading import Event, Lock, Timer
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from agentnotes.storage import NOTE_SUFFIX
from agentnotes.store import NoteStore, NoteStoreError
from agentnotes.utils.logging import get_logger


def _decode_path(path: str | bytes) -> str:
    return path if isinstance(path, str) else path.decode("utf-8")


class DebouncedNoteSync(FileSystemEventHandler):
    """File system event handler that remaps comments after external edits.

    Changes are collected per note and flushed once no event has arrived for
    ``debounce_seconds``.
    """

    def __init__(self, store: NoteStore, debounce_seconds: float = 0.5) -> None:
        self.store = store
        self.debounce_seconds = debounce_seconds
        self.snapshots: dict[str, str] = {}
        self.pending: set[str] = set()
        self.timer: Timer | None = None
        self.shutdown_event = Event()
        self._lock = Lock()
        self.logger = get_logger()

    def snapshot_all(self) -> None:
        """Record the current content of every note."""
        self.snapshots = {note.id: note.content for note in self.store.list_notes().notes}

    def _note_id(self, path: str | bytes) -> str | None:
        """Note id for a markdown file below the notes root, else None."""
        file_path = Path(_decode_path(path))
        if file_path.suffix.lower() != NOTE_SUFFIX or file_path.name.startswith("."):
            return None
        try:
            relative = file_path.resolve().relative_to(self.store.notes_dir.resolve())
        except ValueError:
            return None
        return relative.as_posix()

    def _queue(self, path: str | bytes) -> None:
        note_id = self._note_id(path)
        if note_id is None:
            return

        self.logger.debug("Change detected", note=note_id)
        with self._lock:
            self.pending.add(note_id)
            if self.timer is not None:
                self.timer.cancel()
            self.timer = Timer(self.debounce_seconds, self.flush)
            self.timer.daemon = True
            self.timer.start()

    def sync_note(self, note_id: str) -> None:
        """Sync one note against its snapshot and refresh the snapshot."""
        note = self.store.get_note(note_id)
        if note is None:
            self.snapshots.pop(note_id, None)
            return

        previous = self.snapshots.get(note_id)
        if previous is not None and previous != note.content:
            note = self.store.sync_external_edit(note_id, previous)
            self.logger.info(f"Synced comments for {note_id} (rev {note.comment_rev})")

        self.snapshots[note_id] = note.content

    def flush(self) -> None:
        """Sync every note changed since the last flush."""
        with self._lock:
            note_ids = sorted(self.pending)
            self.pending.clear()
            self.timer = None

        for note_id in note_ids:
            try:
                self.sync_note(note_id)
            except NoteStoreError as e:
                self.logger.error(f"Failed to sync {note_id}: {e}")

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._queue(event.src_path)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._queue(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        # Atomic saves show up as a rename of a temp file onto the note
        if not event.is_directory:
            self._queue(event.dest_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        note_id = self._note_id(event.src_path)
        if note_id is not None:
            self.snapshots.pop(note_id, None)

    def shutdown(self) -> None:
        """Cancel any pending flush and signal the watch loop to stop."""
        with self._lock:
            if self.timer is not None:
                self.timer.cancel()
        self.shutdown_event.set()


def watch_notes(store: NoteStore, debounce: float = 0.5) -> None:
    """
    Watch the notes directory until SIGINT/SIGTERM.

    Raises:
        NotesDirectoryNotFound: If the notes directory does not exist
    """
    store.ensure_notes_dir()
    logger = get_logger()

    handler = DebouncedNoteSync(store, debounce_seconds=debounce)
    handler.snapshot_all()

    observer = Observer()
    observer.schedule(handler, str(store.notes_dir), recursive=True)

    def signal_handler(sig: int, frame: Any) -> None:
        logger.info("Shutting down watcher...")
        handler.shutdown()
        observer.stop()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    logger.info(f"Watching {store.notes_dir} ({len(handler.snapshots)} notes)")
    logger.debug("Debounce period", seconds=debounce)
    observer.start()

    try:
        while not handler.shutdown_event.is_set():
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        observer.stop()
        observer.join()
        logger.info("Watcher stopped")
