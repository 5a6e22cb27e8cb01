"""CLI entry point for agentnotes."""

import functools
import json
import sys
from pathlib import Path

import click

from agentnotes.anchoring import build_anchor_from_range, get_unique_match_range
from agentnotes.display import (
    format_comment_list,
    format_highlights,
    format_note_detail,
    format_note_list,
    format_tags,
    success,
)
from agentnotes.locking import LockTimeout
from agentnotes.models import Comment, Note
from agentnotes.search import get_sorted_tags, search
from agentnotes.store import CommentNotFound, NoteNotFound, NoteStore, NoteStoreError
from agentnotes.utils import text
from agentnotes.utils.logging import get_logger, init_logger


def fail(message: str, suggestion: str | None = None) -> None:
    """Report a user error on stderr and exit with status 1."""
    get_logger().error(message, suggestion)
    sys.exit(1)


def reports_errors(func):
    """Turn store and validation errors into ``✗ message`` plus exit status 1."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except LockTimeout as e:
            fail(str(e), "Another agentnotes process may be holding the notes lock")
        except (NoteStoreError, ValueError, OSError) as e:
            fail(str(e))

    return wrapper


def read_stdin() -> str | None:
    """Piped stdin content, or None when stdin is a terminal or empty."""
    stream = click.get_text_stream("stdin")
    if stream.isatty():
        return None
    data = stream.read().strip()
    return data or None


def resolve_note(store: NoteStore, query: str) -> Note:
    """
    Find a note by id, exact title, title substring, or filename substring.

    All title and filename matching is case-insensitive.

    Raises:
        NoteNotFound: If nothing matches
    """
    if query.lower().endswith(".md"):
        note = store.get_note(query)
        if note is not None:
            return note

    notes = store.list_notes().notes
    needle = query.lower()
    matchers = (
        lambda n: n.title.lower() == needle,
        lambda n: needle in n.title.lower(),
        lambda n: needle in n.filename.lower(),
    )
    for matches in matchers:
        for note in notes:
            if matches(note):
                return note

    raise NoteNotFound(f"Note not found: {query}")


def resolve_comment(note: Note, comment_id: str) -> Comment:
    """
    Find a comment by full id or unique id prefix.

    Raises:
        CommentNotFound: If nothing matches
        ValueError: If the prefix matches more than one comment
    """
    matches = []
    for comment in note.comments:
        if comment.id == comment_id:
            return comment
        if comment.id.startswith(comment_id):
            matches.append(comment)

    if len(matches) > 1:
        raise ValueError(
            f"Ambiguous comment id prefix: {comment_id} (matches {len(matches)} comments)"
        )
    if not matches:
        raise CommentNotFound(f"Comment not found: {comment_id}")
    return matches[0]


def check_range_options(exact: str | None, from_: int | None, to: int | None) -> None:
    """Require exactly one of ``--exact`` or the ``--from/--to`` pair."""
    if exact is not None:
        if from_ is not None or to is not None:
            raise click.UsageError("Cannot use --exact with --from/--to")
    elif from_ is None or to is None:
        raise click.UsageError("Must specify either --exact or --from and --to")


def anchor_range(
    content: str, exact: str | None, from_: int | None, to: int | None
) -> tuple[int, int]:
    """Resolve ``--exact`` or ``--from/--to`` options to a character range."""
    check_range_options(exact, from_, to)
    if exact is not None:
        match = get_unique_match_range(content, exact)
        if match is None:
            raise ValueError("Exact text not found or is ambiguous")
        return match.from_, match.to
    return from_, to


@click.group()
@click.version_option(version="0.1.0", prog_name="agentnotes")
@click.option(
    "--dir",
    "notes_dir",
    envvar="AGENTNOTES_DIR",
    type=click.Path(file_okay=False, path_type=Path),
    help="Notes directory (defaults to the current directory)",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug output on stderr")
@click.pass_context
def cli(ctx: click.Context, notes_dir: Path | None, verbose: bool):
    """Local-first markdown notes with anchored comments."""
    init_logger(verbose=verbose)
    ctx.obj = NoteStore(notes_dir or Path.cwd())


# ============================================================================
# Notes
# ============================================================================


@cli.command()
@click.argument("title")
@click.option("--tags", help="Comma-separated tags")
@click.option("-d", "--directory", default="", help="Directory to create the note in")
@click.pass_obj
@reports_errors
def add(store: NoteStore, title: str, tags: str | None, directory: str):
    """
    Create a new note.

    Content is read from stdin when piped, otherwise $EDITOR is opened.

    Examples:

        agentnotes add "Kickoff" --tags meeting,planning

        echo "Body text" | agentnotes add "Scratch" -d inbox
    """
    content = read_stdin()
    if content is None and click.get_text_stream("stdin").isatty():
        content = click.edit(f"# {title}\n\n", extension=".md")
        content = content.strip() if content else None

    note = store.create_note(title, directory)
    if content:
        note = store.update_note(note.id, content)
    if tags:
        note = store.update_note_metadata(note.id, text.parse_tag_list(tags))

    click.echo(success(f"Created note: {note.title}"))
    click.echo(f"  {note.id}")


@cli.command(name="list")
@click.option("--tags", help="Filter by tags (comma-separated)")
@click.option("--limit", default=20, show_default=True, help="Max notes to show")
@click.option(
    "--sort",
    "sort_by",
    type=click.Choice(["created", "updated", "title"]),
    default="created",
    show_default=True,
)
@click.pass_obj
@reports_errors
def list_notes(store: NoteStore, tags: str | None, limit: int, sort_by: str):
    """List notes."""
    notes = search(
        store.list_notes().notes,
        tags=text.parse_tag_list(tags) if tags else None,
        limit=limit,
        sort_by=sort_by,
    )
    click.echo(format_note_list(notes))


@cli.command()
@click.argument("note")
@click.option("--comments", "with_comments", is_flag=True, help="Include comments")
@click.pass_obj
@reports_errors
def show(store: NoteStore, note: str, with_comments: bool):
    """Show a note with its metadata."""
    click.echo(format_note_detail(resolve_note(store, note), with_comments=with_comments))


@cli.command()
@click.argument("note")
@click.pass_obj
@reports_errors
def cat(store: NoteStore, note: str):
    """Print raw note content."""
    click.echo(resolve_note(store, note).content)


@cli.command(name="search")
@click.argument("query")
@click.option("--tags", help="Require tags (comma-separated)")
@click.option("--limit", default=10, show_default=True, help="Max results")
@click.pass_obj
@reports_errors
def search_notes(store: NoteStore, query: str, tags: str | None, limit: int):
    """Search notes by title, content and tags."""
    notes = search(
        store.list_notes().notes,
        query=query,
        tags=text.parse_tag_list(tags) if tags else None,
        limit=limit,
    )
    click.echo(format_note_list(notes))


@cli.command()
@click.argument("note")
@click.option("--title", help="Set a new title (rewrites the leading heading)")
@click.option("--tags", help="Replace all tags")
@click.option("--add-tags", help="Add tags")
@click.option("--remove-tags", help="Remove tags")
@click.option("--content", help="Replace content")
@click.option("--append", help="Append a line")
@click.option("--prepend", help="Prepend a line")
@click.option("--insert", "insert_at", metavar="LINE:TEXT", help="Insert text before a line")
@click.option("--replace-line", metavar="LINE:TEXT", help="Replace a line")
@click.option("--delete-line", "delete_line_num", type=int, metavar="N", help="Delete a line")
@click.pass_obj
@reports_errors
def edit(
    store: NoteStore,
    note: str,
    title: str | None,
    tags: str | None,
    add_tags: str | None,
    remove_tags: str | None,
    content: str | None,
    append: str | None,
    prepend: str | None,
    insert_at: str | None,
    replace_line: str | None,
    delete_line_num: int | None,
):
    """
    Edit a note's content or tags.

    Comment anchors are remapped through the edit.

    Examples:

        agentnotes edit kickoff --append "- follow up with design"

        agentnotes edit kickoff --replace-line 3:"New third line"

        cat draft.md | agentnotes edit kickoff
    """
    target = resolve_note(store, note)

    tags_changed = tags is not None or add_tags is not None or remove_tags is not None
    if tags_changed:
        new_tags = list(target.tags)
        if tags is not None:
            new_tags = text.parse_tag_list(tags)
        if add_tags is not None:
            new_tags = text.merge_tags(new_tags, text.parse_tag_list(add_tags))
        if remove_tags is not None:
            new_tags = text.remove_tags(new_tags, text.parse_tag_list(remove_tags))
        store.update_note_metadata(target.id, new_tags)
        click.echo(success("Tags updated"))

    new_content = read_stdin()
    if new_content is None:
        if content is not None:
            new_content = content
        elif append is not None:
            new_content = f"{target.content}\n{append}"
        elif prepend is not None:
            new_content = f"{prepend}\n{target.content}"
        elif insert_at is not None:
            new_content = text.insert_line(target.content, *text.parse_line_edit(insert_at))
        elif replace_line is not None:
            new_content = text.replace_line(target.content, *text.parse_line_edit(replace_line))
        elif delete_line_num is not None:
            new_content = text.delete_line(target.content, delete_line_num)

    if title is not None:
        base = new_content if new_content is not None else target.content
        new_content = text.set_title_line(base, title)

    if new_content is not None:
        store.update_note(target.id, new_content)
        click.echo(success("Note updated"))

    if not tags_changed and new_content is None:
        click.echo("No changes specified.")


@cli.command()
@click.argument("note")
@click.option("--force", is_flag=True, help="Skip confirmation")
@click.pass_obj
@reports_errors
def delete(store: NoteStore, note: str, force: bool):
    """Delete a note and its comments."""
    target = resolve_note(store, note)
    if not force and not click.confirm(f'Delete "{target.title}"?', default=False):
        click.echo("Cancelled.")
        return

    store.delete_note(target.id)
    click.echo(success(f"Deleted: {target.title}"))


@cli.command()
@click.argument("note")
@click.argument("directory")
@click.pass_obj
@reports_errors
def move(store: NoteStore, note: str, directory: str):
    """Move a note into DIRECTORY ("" or "/" for the notes root)."""
    moved = store.move_note(resolve_note(store, note).id, directory)
    click.echo(success(f"Moved to {moved.id}"))


@cli.command()
@click.argument("path")
@click.pass_obj
@reports_errors
def mkdir(store: NoteStore, path: str):
    """Create a directory under the notes root."""
    click.echo(success(f"Created directory: {store.create_directory(path)}"))


@cli.command()
@click.argument("path")
@click.option("--force", is_flag=True, help="Skip confirmation")
@click.pass_obj
@reports_errors
def rmdir(store: NoteStore, path: str, force: bool):
    """Delete a directory and every note inside it."""
    if not force and not click.confirm(f'Delete directory "{path}" and its notes?', default=False):
        click.echo("Cancelled.")
        return
    click.echo(success(f"Deleted directory: {store.delete_directory(path)}"))


@cli.command()
@click.pass_obj
@reports_errors
def tags(store: NoteStore):
    """List tags with note counts."""
    click.echo(format_tags(get_sorted_tags(store.list_notes().notes)))


@cli.command()
@click.argument("note")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_obj
@reports_errors
def highlights(store: NoteStore, note: str, json_output: bool):
    """Show merged highlight ranges for a note's comments."""
    target = resolve_note(store, note)
    ranges = store.get_highlight_ranges(target.id)

    if json_output:
        click.echo(json.dumps([{"from": r.from_, "to": r.to} for r in ranges], indent=2))
    else:
        click.echo(format_highlights(ranges, target.content))


# ============================================================================
# Comments
# ============================================================================


@cli.group()
def comment():
    """Manage comments on notes."""
    pass


@comment.command(name="add")
@click.argument("note")
@click.argument("body", required=False)
@click.option("--author", default="", help="Comment author")
@click.option("--exact", metavar="TEXT", help="Anchor to text that occurs exactly once")
@click.option("--from", "from_", type=click.IntRange(min=0), help="Start character offset")
@click.option("--to", type=click.IntRange(min=0), help="End character offset (exclusive)")
@click.pass_obj
@reports_errors
def comment_add(
    store: NoteStore,
    note: str,
    body: str | None,
    author: str,
    exact: str | None,
    from_: int | None,
    to: int | None,
):
    """
    Add a comment anchored to a range of a note.

    The body is read from stdin when not given as an argument.

    Examples:

        agentnotes comment add kickoff "Needs a date" --exact "next week"

        agentnotes comment add kickoff "Typo" --from 12 --to 18
    """
    target = resolve_note(store, note)
    body = body or read_stdin()
    if not body:
        fail("Comment content required (as argument or stdin)")

    start, end = anchor_range(target.content, exact, from_, to)
    anchor = build_anchor_from_range(target.content, start, end, target.comment_rev)
    updated = store.add_comment(target.id, body, author, anchor)
    click.echo(success(f"Comment added: {updated.comments[-1].id}"))


@comment.command(name="list")
@click.argument("note")
@click.option("--limit", type=click.IntRange(min=1), help="Max comments to show")
@click.pass_obj
@reports_errors
def comment_list(store: NoteStore, note: str, limit: int | None):
    """List comments on a note."""
    comments = resolve_note(store, note).comments
    if limit:
        comments = comments[:limit]
    click.echo(format_comment_list(comments))


@comment.command(name="delete")
@click.argument("note")
@click.argument("comment_id")
@click.option("--force", is_flag=True, help="Skip confirmation")
@click.pass_obj
@reports_errors
def comment_delete(store: NoteStore, note: str, comment_id: str, force: bool):
    """Delete a comment (a unique id prefix is enough)."""
    target = resolve_note(store, note)
    found = resolve_comment(target, comment_id)

    if not force and not click.confirm(f"Delete comment {found.id[:8]}?", default=False):
        click.echo("Cancelled.")
        return

    store.delete_comment(target.id, found.id)
    click.echo(success("Comment deleted"))


@comment.command(name="reanchor")
@click.argument("note")
@click.argument("comment_id")
@click.option("--exact", metavar="TEXT", help="Anchor to text that occurs exactly once")
@click.option("--from", "from_", type=click.IntRange(min=0), help="Start character offset")
@click.option("--to", type=click.IntRange(min=0), help="End character offset (exclusive)")
@click.pass_obj
@reports_errors
def comment_reanchor(
    store: NoteStore,
    note: str,
    comment_id: str,
    exact: str | None,
    from_: int | None,
    to: int | None,
):
    """Re-anchor a stale or detached comment, marking it attached again."""
    target = resolve_note(store, note)
    found = resolve_comment(target, comment_id)
    check_range_options(exact, from_, to)

    updated = store.reanchor_comment(target.id, found.id, from_=from_, to=to, exact=exact)
    anchor = next(c.anchor for c in updated.comments if c.id == found.id)
    click.echo(success(f"Comment re-anchored to [{anchor.from_}:{anchor.to}]"))


# ============================================================================
# Long-running modes
# ============================================================================


@cli.command()
@click.option(
    "--debounce",
    default=0.5,
    show_default=True,
    type=click.FloatRange(min=0.0),
    help="Seconds to wait for a file to settle before syncing",
)
@click.pass_obj
@reports_errors
def watch(store: NoteStore, debounce: float):
    """Keep comment anchors in sync with edits made by other editors."""
    from .watch import watch_notes

    watch_notes(store, debounce=debounce)


@cli.command()
@click.pass_obj
def mcp(store: NoteStore):
    """Serve note and comment tools over MCP (stdio)."""
    from .mcp_server import configure, run_server

    configure(store.notes_dir)
    run_server()


if __name__ == "__main__":
    cli()
