"""Plain-text notes with comments anchored to character ranges.

The anchor engine (anchoring, transform, resolution) is a pure function
library. NoteStore persists notes and their comment sidecars and calls into the
engine whenever content changes.
"""

from .anchoring import (
    InvalidRange,
    build_anchor_from_range,
    get_unique_match_range,
    hash_quote,
    reanchor_comment,
)
from .models import (
    Affinity,
    CharRange,
    Comment,
    CommentAnchor,
    CommentStatus,
    Note,
    RemapResult,
    TextEditOp,
)
from .resolution import get_all_highlight_ranges, merge_ranges, resolve_comment_range
from .transform import (
    derive_text_edit_ops,
    normalize_comment,
    remap_comments_for_edit,
    transform_offset,
)

__all__ = [
    "Affinity",
    "CharRange",
    "Comment",
    "CommentAnchor",
    "CommentStatus",
    "InvalidRange",
    "Note",
    "RemapResult",
    "TextEditOp",
    "build_anchor_from_range",
    "derive_text_edit_ops",
    "get_all_highlight_ranges",
    "get_unique_match_range",
    "hash_quote",
    "merge_ranges",
    "normalize_comment",
    "reanchor_comment",
    "remap_comments_for_edit",
    "resolve_comment_range",
    "transform_offset",
]
