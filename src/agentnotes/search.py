"""Note search and tag aggregation."""

from collections import Counter
from typing import Literal

from agentnotes.models import Note, TagCount

SortField = Literal["created", "updated", "title"]


def _matches_query(note: Note, query: str) -> bool:
    needle = query.lower()
    return (
        needle in note.title.lower()
        or needle in note.content.lower()
        or any(needle in tag.lower() for tag in note.tags)
    )


def _has_all_tags(note: Note, tags: list[str]) -> bool:
    note_tags = {tag.lower() for tag in note.tags}
    return all(tag.lower() in note_tags for tag in tags)


def search(
    notes: list[Note],
    query: str | None = None,
    tags: list[str] | None = None,
    limit: int | None = None,
    sort_by: SortField = "created",
    reverse: bool = False,
) -> list[Note]:
    """
    Filter and sort notes.

    Args:
        notes: Notes to search
        query: Case-insensitive substring matched against title, content and tags
        tags: Tags that must all be present (case-insensitive)
        limit: Maximum number of results when > 0
        sort_by: "title", or "created"/"updated" (both order by relative path,
            whose date prefix records creation)
        reverse: Reverse the sort order

    Returns:
        Matching notes
    """
    results = notes
    if query and query.strip():
        results = [n for n in results if _matches_query(n, query.strip())]
    if tags:
        results = [n for n in results if _has_all_tags(n, tags)]

    if sort_by == "title":
        results = sorted(results, key=lambda n: (n.title.lower(), n.relative_path), reverse=reverse)
    else:
        results = sorted(results, key=lambda n: n.relative_path, reverse=reverse)

    if limit is not None and limit > 0:
        results = results[:limit]
    return results


def get_all_tags(notes: list[Note]) -> dict[str, int]:
    """Count notes per tag, keyed by lower-cased tag."""
    counts: Counter[str] = Counter()
    for note in notes:
        counts.update({tag.lower() for tag in note.tags})
    return dict(counts)


def get_sorted_tags(notes: list[Note]) -> list[TagCount]:
    """Tags by note count (descending), ties broken alphabetically."""
    return [
        TagCount(tag, count)
        for tag, count in sorted(get_all_tags(notes).items(), key=lambda item: (-item[1], item[0]))
    ]
