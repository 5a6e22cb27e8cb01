"""Anchor construction: quote fingerprints, range validation, manual re-anchoring.

Anchors are built once, when a comment is created, and rebuilt only when a
human explicitly re-anchors a comment. Automatic remapping after edits lives in
:mod:`agentnotes.transform` and never touches the quote snapshot.
"""

import math

from agentnotes.models import (
    DEFAULT_END_AFFINITY,
    DEFAULT_START_AFFINITY,
    CharRange,
    Comment,
    CommentAnchor,
    CommentStatus,
)

_FNV64_OFFSET_BASIS = 0xCBF29CE484222325
_FNV64_PRIME = 0x100000001B3
_FNV64_MASK = 0xFFFFFFFFFFFFFFFF


class InvalidRange(ValueError):  # noqa: N818
    """Raised when an anchor range is empty, inverted, or out of bounds."""

    pass


def hash_quote(text: str) -> str:
    """Fingerprint a quoted span for drift detection.

    64-bit FNV-1a over the UTF-16 code units of ``text``, so a character
    outside the BMP contributes both halves of its surrogate pair. Deterministic
    across runs and platforms; not a cryptographic hash.

    Args:
        text: Span to fingerprint (may be empty)

    Returns:
        16 lowercase hex digits. The empty string hashes to the FNV offset
        basis, ``"cbf29ce484222325"``.
    """
    value = _FNV64_OFFSET_BASIS
    data = text.encode("utf-16-le", "surrogatepass")
    for index in range(0, len(data), 2):
        value ^= data[index] | (data[index + 1] << 8)
        value = (value * _FNV64_PRIME) & _FNV64_MASK
    return f"{value:016x}"


def build_anchor_from_range(content: str, from_: float, to: float, rev: float) -> CommentAnchor:
    """Build a validated anchor for ``content[from_:to]``.

    Offsets are floored to integers before validation. The quote is captured
    from ``content`` and fingerprinted; affinities take their defaults
    (start=after, end=before).

    Args:
        content: Note content the range refers to
        from_: Start offset (inclusive)
        to: End offset (exclusive)
        rev: Note revision the range is valid for (clamped to >= 0)

    Returns:
        New CommentAnchor

    Raises:
        InvalidRange: If ``from_ < 0``, ``to <= from_``, or ``to > len(content)``
    """
    start = math.floor(from_)
    end = math.floor(to)
    if start < 0 or end <= start or end > len(content):
        raise InvalidRange(
            f"Invalid comment anchor range [{start}, {end}) for content length {len(content)}"
        )

    quote = content[start:end]
    return CommentAnchor(
        from_=start,
        to=end,
        rev=max(0, math.floor(rev)),
        start_affinity=DEFAULT_START_AFFINITY,
        end_affinity=DEFAULT_END_AFFINITY,
        quote=quote,
        quote_hash=hash_quote(quote),
    )


def get_unique_match_range(content: str, exact: str) -> CharRange | None:
    """Locate ``exact`` in ``content`` only if it occurs exactly once.

    Ambiguity is treated as failure: zero matches, more than one
    non-overlapping match, or an empty search string all return None.
    """
    if not exact:
        return None

    first = content.find(exact)
    if first < 0:
        return None

    if content.find(exact, first + len(exact)) >= 0:
        return None

    return CharRange(first, first + len(exact))


def reanchor_comment(comment: Comment, content: str, from_: int, to: int, rev: int) -> Comment:
    """Manually re-anchor a comment to a new range.

    This is the only way a comment recovers to ``attached`` after going
    stale or detached. The anchor is replaced wholesale: new quote, new
    hash, default affinities.

    Raises:
        InvalidRange: If the new range is not valid for ``content``
    """
    anchor = build_anchor_from_range(content, from_, to, rev)
    return comment.model_copy(update={"anchor": anchor, "status": CommentStatus.ATTACHED})
