"""Terminal formatting for CLI output.

Styling goes through ``click.style``; ``click.echo`` strips the ANSI codes
when output is not a terminal.
"""

import click

from agentnotes.models import CharRange, Comment, Note, TagCount

QUOTE_PREVIEW_LEN = 60
SHORT_ID_LEN = 8


def success(message: str) -> str:
    return f"{click.style('✓', fg='green', bold=True)} {message}"


def _tag_list(tags: list[str]) -> str:
    return click.style(" ".join(f"#{tag}" for tag in tags), fg="green")


def _dim(text: str) -> str:
    return click.style(text, dim=True)


def _anchor_span(comment: Comment) -> str:
    return f"[{comment.anchor.from_}:{comment.anchor.to}]"


def _quote_preview(comment: Comment) -> str:
    return (comment.anchor.quote or "")[:QUOTE_PREVIEW_LEN]


def format_note_list(notes: list[Note]) -> str:
    if not notes:
        return "No notes found."

    lines = []
    for note in notes:
        line = f"{click.style(note.title, fg='cyan', bold=True)} {_dim(f'[{note.id[:30]}]')}"
        if note.tags:
            line += f" {_tag_list(note.tags)}"
        lines.append(line)
    return "\n".join(lines)


def format_note_detail(note: Note, with_comments: bool = False) -> str:
    """Header block (title, id, tags, comment count) followed by the content."""
    separator = click.style("─" * 50, bold=True)
    lines = [
        separator,
        click.style(note.title, fg="cyan", bold=True),
        f"{_dim('ID:')}       {note.id}",
    ]
    if note.tags:
        lines.append(f"{_dim('Tags:')}     {_tag_list(note.tags)}")
    if note.comments:
        lines.append(f"{_dim('Comments:')} {len(note.comments)}")
    lines.append(separator)
    lines.append(note.content)

    if with_comments and note.comments:
        lines.append("")
        lines.append(click.style("Comments:", bold=True))
        for comment in note.comments:
            author = click.style(comment.author or "anonymous", fg="magenta")
            lines.append(f"  {click.style('•', fg='yellow')} {author}: {comment.body}")
            quote = _quote_preview(comment)
            if quote:
                lines.append("    " + _dim(f'"{quote}"'))
            status = f"[{comment.id[:SHORT_ID_LEN]}] {comment.status.value} {_anchor_span(comment)}"
            lines.append(f"    {_dim(status)}")

    return "\n".join(lines)


def format_comment_list(comments: list[Comment]) -> str:
    if not comments:
        return "No comments."

    lines = []
    for comment in comments:
        short_id = click.style(comment.id[:SHORT_ID_LEN], fg="yellow", bold=True)
        lines.append(f"{short_id} {click.style(comment.author or 'anonymous', fg='magenta')}")
        lines.append(f"  {comment.body}")
        lines.append(
            "  "
            + _dim(f"{comment.status.value} {_anchor_span(comment)} rev={comment.anchor.rev}")
        )
        quote = _quote_preview(comment)
        if quote:
            lines.append("  " + _dim(f'"{quote}"'))
        lines.append("")
    return "\n".join(lines)


def format_tags(tags: list[TagCount]) -> str:
    if not tags:
        return "No tags found."
    return "\n".join(
        f"{click.style('#' + tc.tag, fg='green')} {_dim(f'({tc.count})')}" for tc in tags
    )


def format_highlights(ranges: list[CharRange], content: str) -> str:
    """One line per merged highlight range with a preview of its text."""
    if not ranges:
        return "No highlights."

    lines = []
    for r in ranges:
        preview = content[r.from_ : r.to].replace("\n", " ")[:QUOTE_PREVIEW_LEN]
        lines.append(f"[{r.from_}:{r.to}] {_dim(repr(preview))}")
    return "\n".join(lines)
