"""Highlight range resolution for rendering comments over note content."""

from agentnotes.models import CharRange, Comment, CommentStatus
from agentnotes.transform import clamp


def resolve_comment_range(content: str, comment: Comment) -> CharRange | None:
    """Resolve a comment to a displayable range within ``content``.

    Detached comments never resolve. Otherwise the stored offsets are clamped
    into ``content``; if clamping leaves an empty range (content shrank below
    the anchor, e.g. truncated outside the app) the comment does not resolve,
    whatever its status.
    """
    if comment.status == CommentStatus.DETACHED:
        return None

    from_ = clamp(comment.anchor.from_, 0, len(content))
    to = clamp(comment.anchor.to, 0, len(content))
    if to <= from_:
        return None

    return CharRange(from_, to)


def merge_ranges(ranges: list[CharRange]) -> list[CharRange]:
    """Merge start-sorted ranges that overlap or touch."""
    merged: list[CharRange] = []
    for current in ranges:
        if merged and current.from_ <= merged[-1].to:
            last = merged[-1]
            merged[-1] = CharRange(last.from_, max(last.to, current.to))
        else:
            merged.append(current)
    return merged


def get_all_highlight_ranges(content: str, comments: list[Comment]) -> list[CharRange]:
    """Resolve every comment and merge the results for highlighting.

    Returns:
        Start-ordered, non-overlapping ranges; shared regions appear once.
    """
    ranges = [r for r in (resolve_comment_range(content, c) for c in comments) if r is not None]
    ranges.sort(key=lambda r: r.from_)
    return merge_ranges(ranges)
