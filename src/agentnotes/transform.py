"""Comment anchor remapping: carrying anchors through text edits.

An edit is inferred from two full-text snapshots as a single contiguous
replacement (common prefix + common suffix). Every anchor boundary is then
mapped through that replacement independently, using its own affinity, and the
comment's status is re-derived:

1. Collapsed to zero width -> detached
2. Edit touched the anchored text -> stale
3. Pure positional shift -> attached

Status never improves here; only a manual re-anchor
(:func:`agentnotes.anchoring.reanchor_comment`) restores ``attached``.

All functions are pure: no I/O, no shared state.
"""

import math

from agentnotes.anchoring import hash_quote
from agentnotes.models import (
    Affinity,
    Comment,
    CommentStatus,
    RemapResult,
    TextEditOp,
)


def common_prefix_len(a: str, b: str) -> int:
    """Length of the longest common prefix of ``a`` and ``b``."""
    limit = min(len(a), len(b))
    index = 0
    while index < limit and a[index] == b[index]:
        index += 1
    return index


def common_suffix_len(a: str, b: str) -> int:
    """Length of the longest common suffix of ``a`` and ``b``."""
    limit = min(len(a), len(b))
    index = 0
    while index < limit and a[-1 - index] == b[-1 - index]:
        index += 1
    return index


def clamp(value: int, min_value: int, max_value: int) -> int:
    return max(min_value, min(max_value, value))


def derive_text_edit_ops(before: str, after: str) -> list[TextEditOp]:
    """Infer the single contiguous edit that turns ``before`` into ``after``.

    The suffix is measured on the tails left after the common prefix, so
    prefix and suffix never overlap. Several disjoint edits collapse into one
    op spanning from the first divergence to the last; callers rely on this
    single-op shape.

    Args:
        before: Text before the edit
        after: Text after the edit

    Returns:
        Empty list when the texts are identical, otherwise one TextEditOp
    """
    if before == after:
        return []

    prefix = common_prefix_len(before, after)
    suffix = common_suffix_len(before[prefix:], after[prefix:])

    delete_len = len(before) - prefix - suffix
    insert_len = len(after) - prefix - suffix

    if delete_len == 0 and insert_len == 0:
        return []

    return [TextEditOp(at=prefix, delete_len=delete_len, insert_len=insert_len)]


def transform_offset(offset: int, affinity: Affinity, op: TextEditOp) -> int:
    """Map one offset through one edit.

    - At or before the edit start: unchanged, except that an ``after``-affine
      point sitting exactly on a pure insertion moves past the inserted text.
    - At or past the end of the deleted span: shifted by the net length change.
    - Strictly inside the deleted span: collapsed to the edit start.
    """
    if offset <= op.at:
        if offset == op.at and op.delete_len == 0 and affinity == Affinity.AFTER:
            return op.at + op.insert_len
        return offset

    if offset >= op.at + op.delete_len:
        return offset + op.insert_len - op.delete_len

    return op.at


def _edit_touches_range(op: TextEditOp, from_: int, to: int) -> bool:
    """Whether ``op`` modifies text inside ``[from_, to)``.

    Deletions count on any intersection with the anchor. Pure insertions count
    only strictly inside the anchor; inserting at a boundary is left to the
    boundary affinities.
    """
    if op.delete_len > 0:
        return from_ < op.at + op.delete_len and op.at < to
    return from_ < op.at < to


def _worse(a: CommentStatus, b: CommentStatus) -> CommentStatus:
    return a if a.severity >= b.severity else b


def normalize_comment(comment: Comment, content: str, fallback_rev: int) -> Comment:
    """Repair a comment loaded from storage against the current content.

    Clamps anchor offsets into ``content``, captures a missing quote (and its
    hash), substitutes ``fallback_rev`` for a zero revision, and demotes an
    ``attached``/``stale`` comment whose range is empty to ``detached``.
    """
    anchor = comment.anchor
    from_ = clamp(anchor.from_, 0, len(content))
    to = clamp(anchor.to, 0, len(content))
    has_range = to > from_

    quote = anchor.quote
    if quote is None and has_range:
        quote = content[from_:to]
    quote_hash = anchor.quote_hash
    if quote and not quote_hash:
        quote_hash = hash_quote(quote)

    rev = anchor.rev if anchor.rev > 0 else max(0, math.floor(fallback_rev))

    status = comment.status if has_range else CommentStatus.DETACHED

    return comment.model_copy(
        update={
            "status": status,
            "anchor": anchor.model_copy(
                update={
                    "from_": from_,
                    "to": to,
                    "rev": rev,
                    "quote": quote,
                    "quote_hash": quote_hash,
                }
            ),
        }
    )


def _remap_comment(
    comment: Comment, ops: list[TextEditOp], after: str, next_rev: int
) -> Comment:
    anchor = comment.anchor
    from_ = anchor.from_
    to = anchor.to
    touched = False

    for op in ops:
        if _edit_touches_range(op, from_, to):
            touched = True
        from_ = transform_offset(from_, anchor.start_affinity, op)
        to = transform_offset(to, anchor.end_affinity, op)

    from_ = clamp(from_, 0, len(after))
    to = clamp(to, 0, len(after))

    if to <= from_:
        status = CommentStatus.DETACHED
    elif touched:
        status = CommentStatus.STALE
    else:
        status = CommentStatus.ATTACHED

    return comment.model_copy(
        update={
            "status": _worse(comment.status, status),
            "anchor": anchor.model_copy(update={"from_": from_, "to": to, "rev": next_rev}),
        }
    )


def remap_comments_for_edit(
    comments: list[Comment], before: str, after: str, current_rev: int
) -> RemapResult:
    """Carry every comment's anchor through the edit ``before`` -> ``after``.

    Quotes and quote hashes are left as they were; anchors are not
    re-verified against their text.

    Args:
        comments: Comments anchored against ``before``
        before: Note content the anchors currently describe
        after: New note content
        current_rev: Note revision matching ``before``

    Returns:
        RemapResult with new comment objects (inputs are not mutated) and the
        revision they are valid for: ``current_rev`` when nothing changed,
        otherwise ``current_rev + 1``.
    """
    if not comments:
        return RemapResult(comments=comments, next_rev=max(0, current_rev))

    ops = derive_text_edit_ops(before, after)
    if not ops:
        return RemapResult(comments=comments, next_rev=max(0, current_rev))

    next_rev = max(1, current_rev + 1)
    remapped = [_remap_comment(comment, ops, after, next_rev) for comment in comments]
    return RemapResult(comments=remapped, next_rev=next_rev)


def mark_comments_stale(comments: list[Comment], after: str, current_rev: int) -> RemapResult:
    """Flag every comment for review after an edit whose baseline is unknown.

    Offsets stay where they were, clamped into ``after``. Comments whose range
    collapses become ``detached``, the rest at least ``stale``.
    """
    if not comments:
        return RemapResult(comments=comments, next_rev=max(0, current_rev))

    next_rev = max(1, current_rev + 1)
    flagged = []
    for comment in comments:
        from_ = clamp(comment.anchor.from_, 0, len(after))
        to = clamp(comment.anchor.to, 0, len(after))
        status = CommentStatus.DETACHED if to <= from_ else CommentStatus.STALE
        flagged.append(
            comment.model_copy(
                update={
                    "status": _worse(comment.status, status),
                    "anchor": comment.anchor.model_copy(
                        update={"from_": from_, "to": to, "rev": next_rev}
                    ),
                }
            )
        )
    return RemapResult(comments=flagged, next_rev=next_rev)
