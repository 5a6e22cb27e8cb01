"""Shared fixtures for agentnotes tests."""

from pathlib import Path

import pytest

from agentnotes.store import NoteStore


@pytest.fixture
def notes_dir(tmp_path: Path) -> Path:
    """Empty notes directory."""
    directory = tmp_path / "notes"
    directory.mkdir()
    return directory


@pytest.fixture
def store(notes_dir: Path) -> NoteStore:
    return NoteStore(notes_dir, lock_timeout=1.0)


@pytest.fixture
def hello_note(store: NoteStore):
    """A note whose content is exactly "hello world"."""
    note = store.create_note("Hello")
    return store.update_note(note.id, "hello world")
