"""Tests for the agentnotes CLI."""

import json
import os

import pytest
from click.testing import CliRunner

from agentnotes.cli import cli, resolve_comment, resolve_note
from agentnotes.models import Comment, CommentAnchor, CommentStatus, Note
from agentnotes.store import CommentNotFound, NoteNotFound, NoteStore


@pytest.fixture
def runner():
    """Create a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def invoke(runner, notes_dir):
    """Run the CLI against the test notes directory."""

    def _invoke(*args: str, input: str | None = None):
        return runner.invoke(cli, ["--dir", str(notes_dir), *args], input=input)

    return _invoke


@pytest.fixture
def kickoff(store):
    note = store.create_note("Kickoff")
    return store.update_note(note.id, "# Kickoff\nhello world\nnext steps")


# ============================================================================
# Note resolution
# ============================================================================


class TestResolveNote:
    """Tests for resolve_note()."""

    def test_by_id(self, store, kickoff):
        assert resolve_note(store, kickoff.id).id == kickoff.id

    def test_by_exact_title_before_substring(self, store):
        store.create_note("Plan B")
        exact = store.create_note("Plan")

        assert resolve_note(store, "plan").id == exact.id

    def test_by_title_substring(self, store, kickoff):
        assert resolve_note(store, "KICK").id == kickoff.id

    def test_by_filename_substring(self, store):
        note = store.update_note(store.create_note("Weekly").id, "no heading here")

        assert resolve_note(store, "weekly").id == note.id

    def test_not_found(self, store):
        with pytest.raises(NoteNotFound):
            resolve_note(store, "nothing")


class TestResolveComment:
    """Tests for resolve_comment()."""

    @pytest.fixture
    def note(self):
        anchor = CommentAnchor(from_=0, to=1, rev=1)
        return Note(
            id="n.md",
            title="n",
            filename="n.md",
            relative_path="n.md",
            comments=[
                Comment(id="01ABC", anchor=anchor),
                Comment(id="01ABCD", anchor=anchor),
                Comment(id="01XYZ", anchor=anchor),
            ],
        )

    def test_unique_prefix(self, note):
        assert resolve_comment(note, "01X").id == "01XYZ"

    def test_full_id_wins_over_longer_match(self, note):
        assert resolve_comment(note, "01ABC").id == "01ABC"

    def test_ambiguous_prefix_rejected(self, note):
        with pytest.raises(ValueError, match="Ambiguous comment id prefix: 01A"):
            resolve_comment(note, "01A")

    def test_not_found(self, note):
        with pytest.raises(CommentNotFound):
            resolve_comment(note, "02")


# ============================================================================
# Note commands
# ============================================================================


class TestNoteCommands:
    def test_add_with_stdin_and_tags(self, invoke, store):
        result = invoke("add", "Ideas", "--tags", "one, two", input="# Ideas\nfirst idea\n")

        assert result.exit_code == 0, result.output
        assert "Created note: Ideas" in result.output
        (note,) = store.list_notes().notes
        assert note.content == "# Ideas\nfirst idea"
        assert note.tags == ["one", "two"]

    def test_add_into_directory(self, invoke, store):
        result = invoke("add", "Nested", "-d", "inbox")

        assert result.exit_code == 0, result.output
        assert store.list_notes().notes[0].directory == "inbox"

    def test_add_missing_notes_dir(self, runner, tmp_path):
        result = runner.invoke(cli, ["--dir", str(tmp_path / "missing"), "add", "X"])

        assert result.exit_code == 1
        assert "✗ Notes directory not found" in result.output

    def test_notes_dir_from_environment(self, runner, notes_dir, kickoff):
        result = runner.invoke(cli, ["list"], env={"AGENTNOTES_DIR": str(notes_dir)})

        assert result.exit_code == 0
        assert "Kickoff" in result.output

    def test_list_filters_by_tag(self, invoke, store, kickoff):
        store.update_note_metadata(kickoff.id, ["meeting"])
        store.create_note("Untagged")

        result = invoke("list", "--tags", "meeting")

        assert "Kickoff" in result.output
        assert "Untagged" not in result.output

    def test_list_empty(self, invoke):
        assert invoke("list").output.strip() == "No notes found."

    def test_show_and_cat(self, invoke, kickoff):
        shown = invoke("show", "kickoff")
        printed = invoke("cat", "kickoff")

        assert f"ID:       {kickoff.id}" in shown.output
        assert printed.output == "# Kickoff\nhello world\nnext steps\n"

    def test_show_unknown_note(self, invoke):
        result = invoke("show", "nothing")

        assert result.exit_code == 1
        assert "✗ Note not found: nothing" in result.output

    def test_search(self, invoke, kickoff):
        assert "Kickoff" in invoke("search", "next steps").output
        assert "No notes found." in invoke("search", "absent").output

    def test_tags(self, invoke, store, kickoff):
        store.update_note_metadata(kickoff.id, ["meeting"])

        assert "#meeting (1)" in invoke("tags").output

    def test_delete_requires_confirmation(self, invoke, store, kickoff):
        cancelled = invoke("delete", "kickoff", input="n\n")
        assert "Cancelled." in cancelled.output
        assert store.get_note(kickoff.id) is not None

        deleted = invoke("delete", "kickoff", "--force")
        assert "Deleted: Kickoff" in deleted.output
        assert store.get_note(kickoff.id) is None

    def test_move_and_directories(self, invoke, store, kickoff):
        assert invoke("mkdir", "archive").exit_code == 0

        moved = invoke("move", "kickoff", "archive")
        assert moved.exit_code == 0, moved.output
        assert store.list_notes().notes[0].directory == "archive"

        removed = invoke("rmdir", "archive", "--force")
        assert removed.exit_code == 0, removed.output
        assert store.list_notes().notes == []

    def test_rmdir_rejects_escape(self, invoke):
        result = invoke("rmdir", "..", "--force")

        assert result.exit_code == 1
        assert "Invalid directory path" in result.output


class TestEditCommand:
    """Tests for the edit command's content and tag options."""

    def test_prepend_remaps_comments(self, invoke, store, kickoff):
        invoke("comment", "add", "kickoff", "greeting", "--exact", "hello")

        result = invoke("edit", "kickoff", "--prepend", "Intro")

        assert result.exit_code == 0, result.output
        note = store.get_note(kickoff.id)
        assert note.content.startswith("Intro\n# Kickoff")
        (comment,) = note.comments
        assert note.content[comment.anchor.from_ : comment.anchor.to] == "hello"
        assert comment.status == CommentStatus.ATTACHED

    def test_append(self, invoke, store, kickoff):
        invoke("edit", "kickoff", "--append", "- item")

        assert store.get_note(kickoff.id).content.endswith("next steps\n- item")

    def test_line_edits(self, invoke, store, kickoff):
        invoke("edit", "kickoff", "--insert", "2:inserted")
        assert store.get_note(kickoff.id).content == "# Kickoff\ninserted\nhello world\nnext steps"

        invoke("edit", "kickoff", "--replace-line", "3:goodbye world")
        assert store.get_note(kickoff.id).content == "# Kickoff\ninserted\ngoodbye world\nnext steps"

        invoke("edit", "kickoff", "--delete-line", "2")
        assert store.get_note(kickoff.id).content == "# Kickoff\ngoodbye world\nnext steps"

    def test_line_out_of_range(self, invoke, kickoff):
        result = invoke("edit", "kickoff", "--delete-line", "42")

        assert result.exit_code == 1
        assert "Line 42 out of range (1-3)" in result.output

    def test_bad_line_edit_format(self, invoke, kickoff):
        result = invoke("edit", "kickoff", "--replace-line", "no-colon")

        assert result.exit_code == 1
        assert "LINE:TEXT" in result.output

    def test_title_rewrites_heading(self, invoke, store, kickoff):
        invoke("edit", "kickoff", "--title", "Kickoff v2")

        note = store.get_note(kickoff.id)
        assert note.title == "Kickoff v2"
        assert note.content.startswith("# Kickoff v2\n")

    def test_tag_options(self, invoke, store, kickoff):
        invoke("edit", "kickoff", "--tags", "a,b")
        invoke("edit", "kickoff", "--add-tags", "B,c", "--remove-tags", "a")

        assert store.get_note(kickoff.id).tags == ["b", "c"]

    def test_content_from_stdin(self, invoke, store, kickoff):
        result = invoke("edit", "kickoff", input="replaced body\n")

        assert "Note updated" in result.output
        assert store.get_note(kickoff.id).content == "replaced body"

    def test_nothing_to_do(self, invoke, kickoff):
        assert "No changes specified." in invoke("edit", "kickoff").output


# ============================================================================
# Comment commands
# ============================================================================


class TestCommentCommands:
    def test_add_by_exact_text(self, invoke, store, kickoff):
        result = invoke("comment", "add", "kickoff", "Needs detail", "--exact", "next steps")

        assert result.exit_code == 0, result.output
        (comment,) = store.get_note(kickoff.id).comments
        assert comment.body == "Needs detail"
        assert comment.anchor.quote == "next steps"

    def test_add_by_offsets_with_body_on_stdin(self, invoke, store, kickoff):
        result = invoke(
            "comment", "add", "kickoff", "--from", "10", "--to", "15", "--author", "ann",
            input="from stdin\n",
        )

        assert result.exit_code == 0, result.output
        (comment,) = store.get_note(kickoff.id).comments
        assert comment.body == "from stdin"
        assert comment.author == "ann"
        assert comment.anchor.quote == "hello"

    def test_add_ambiguous_exact(self, invoke, kickoff):
        result = invoke("comment", "add", "kickoff", "x", "--exact", "o")

        assert result.exit_code == 1
        assert "Exact text not found or is ambiguous" in result.output

    def test_add_invalid_range(self, invoke, kickoff):
        result = invoke("comment", "add", "kickoff", "x", "--from", "5", "--to", "500")

        assert result.exit_code == 1
        assert "Invalid comment anchor range" in result.output

    def test_add_requires_anchor(self, invoke, kickoff):
        result = invoke("comment", "add", "kickoff", "x")

        assert result.exit_code == 2
        assert "--exact or --from and --to" in result.output

    def test_add_requires_body(self, invoke, kickoff):
        result = invoke("comment", "add", "kickoff", "--exact", "hello")

        assert result.exit_code == 1
        assert "Comment content required" in result.output

    def test_list_and_delete_by_prefix(self, invoke, store, kickoff):
        invoke("comment", "add", "kickoff", "first", "--exact", "hello")
        comment_id = store.get_note(kickoff.id).comments[0].id

        listed = invoke("comment", "list", "kickoff")
        assert comment_id[:8] in listed.output
        assert "attached [10:15] rev=1" in listed.output

        deleted = invoke("comment", "delete", "kickoff", comment_id[:10], "--force")
        assert deleted.exit_code == 0, deleted.output
        assert store.get_note(kickoff.id).comments == []

    def test_delete_unknown_comment(self, invoke, kickoff):
        result = invoke("comment", "delete", "kickoff", "ZZZ", "--force")

        assert result.exit_code == 1
        assert "Comment not found: ZZZ" in result.output

    def test_reanchor_detached_comment(self, invoke, store, kickoff):
        invoke("comment", "add", "kickoff", "about steps", "--exact", "next steps")
        invoke("edit", "kickoff", "--delete-line", "3")
        assert store.get_note(kickoff.id).comments[0].status == CommentStatus.DETACHED
        comment_id = store.get_note(kickoff.id).comments[0].id

        result = invoke("comment", "reanchor", "kickoff", comment_id, "--exact", "world")

        assert result.exit_code == 0, result.output
        (comment,) = store.get_note(kickoff.id).comments
        assert comment.status == CommentStatus.ATTACHED
        assert comment.anchor.quote == "world"

    def test_reanchor_exact_resolved_by_store(self, invoke, store, kickoff, monkeypatch):
        invoke("comment", "add", "kickoff", "about hello", "--exact", "hello")
        comment_id = store.get_note(kickoff.id).comments[0].id
        calls = []
        reanchor = NoteStore.reanchor_comment

        def spy(self, *args, **kwargs):
            calls.append(kwargs)
            return reanchor(self, *args, **kwargs)

        monkeypatch.setattr(NoteStore, "reanchor_comment", spy)
        result = invoke("comment", "reanchor", "kickoff", comment_id, "--exact", "steps")

        assert result.exit_code == 0, result.output
        assert calls == [{"from_": None, "to": None, "exact": "steps"}]
        assert "re-anchored to [27:32]" in result.output

    def test_reanchor_rejects_mixed_options(self, invoke, store, kickoff):
        invoke("comment", "add", "kickoff", "about hello", "--exact", "hello")
        comment_id = store.get_note(kickoff.id).comments[0].id

        result = invoke(
            "comment", "reanchor", "kickoff", comment_id, "--exact", "steps", "--from", "0"
        )

        assert result.exit_code == 2
        assert "Cannot use --exact with --from/--to" in result.output

    def test_ambiguous_prefix_not_deleted(self, invoke, store, kickoff):
        invoke("comment", "add", "kickoff", "first", "--exact", "hello")
        invoke("comment", "add", "kickoff", "second", "--exact", "world")
        first, second = store.get_note(kickoff.id).comments
        prefix = os.path.commonprefix([first.id, second.id])

        result = invoke("comment", "delete", "kickoff", prefix, "--force")

        assert result.exit_code == 1
        assert "Ambiguous comment id prefix" in result.output
        assert len(store.get_note(kickoff.id).comments) == 2

    def test_show_with_comments(self, invoke, kickoff):
        invoke("comment", "add", "kickoff", "Looks good", "--exact", "hello", "--author", "bob")

        result = invoke("show", "kickoff", "--comments")

        assert "bob: Looks good" in result.output
        assert '"hello"' in result.output


class TestHighlightsCommand:
    def test_json_output(self, invoke, kickoff):
        invoke("comment", "add", "kickoff", "a", "--exact", "hello")
        invoke("comment", "add", "kickoff", "b", "--exact", "lo wor")

        result = invoke("highlights", "kickoff", "--json")

        assert json.loads(result.output) == [{"from": 10, "to": 19}]

    def test_text_output(self, invoke, kickoff):
        assert "No highlights." in invoke("highlights", "kickoff").output

        invoke("comment", "add", "kickoff", "a", "--exact", "world")
        assert "[16:21] 'world'" in invoke("highlights", "kickoff").output


def test_verbose_logs_store_operations(runner, notes_dir):
    result = runner.invoke(cli, ["--dir", str(notes_dir), "--verbose", "add", "Debugged"])

    assert result.exit_code == 0
    assert "DEBUG: Created note" in result.output
