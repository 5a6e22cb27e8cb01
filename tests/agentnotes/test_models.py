"""Tests for note and comment data models."""

import pytest
from pydantic import ValidationError

from agentnotes.models import (
    Affinity,
    Comment,
    CommentAnchor,
    CommentStatus,
    SidecarData,
)


class TestCommentAnchor:
    """Tests for CommentAnchor validation and wire aliases."""

    def test_accepts_wire_alias_and_field_name(self):
        by_alias = CommentAnchor.model_validate({"from": 2, "to": 5, "rev": 1})
        by_name = CommentAnchor(from_=2, to=5, rev=1)

        assert by_alias == by_name

    def test_unknown_affinities_fall_back_to_defaults(self):
        anchor = CommentAnchor.model_validate(
            {"from": 0, "to": 1, "start_affinity": "sideways", "end_affinity": None}
        )

        assert anchor.start_affinity == Affinity.AFTER
        assert anchor.end_affinity == Affinity.BEFORE

    def test_explicit_affinities_kept(self):
        anchor = CommentAnchor(from_=0, to=1, start_affinity="before", end_affinity="after")

        assert anchor.start_affinity == Affinity.BEFORE
        assert anchor.end_affinity == Affinity.AFTER

    def test_negative_offsets_rejected(self):
        with pytest.raises(ValidationError):
            CommentAnchor(from_=-1, to=3)

    def test_zero_width_allowed(self):
        anchor = CommentAnchor(from_=4, to=4)

        assert not anchor.has_range


class TestComment:
    """Tests for the Comment model."""

    def test_generates_ulid(self):
        first, second = Comment(), Comment()

        assert len(first.id) == 26
        assert first.id != second.id

    def test_created_normalized_to_utc_z(self):
        comment = Comment(created="2026-01-05T10:00:00+02:00")

        assert comment.created == "2026-01-05T08:00:00Z"

    def test_naive_created_treated_as_utc(self):
        assert Comment(created="2026-01-05T10:00:00").created == "2026-01-05T10:00:00Z"

    def test_unparseable_created_replaced_with_now(self):
        comment = Comment(created="last tuesday")

        assert comment.created.endswith("Z")
        assert comment.created != "last tuesday"

    def test_author_length_limited(self):
        with pytest.raises(ValidationError):
            Comment(author="x" * 201)

    def test_to_record_uses_wire_keys(self):
        comment = Comment(
            author="ann",
            body="Looks good",
            anchor=CommentAnchor(from_=1, to=3, rev=2, quote="el", quote_hash="abc"),
        )

        record = comment.to_record()

        assert record["content"] == "Looks good"
        assert "body" not in record
        assert record["status"] == "attached"
        assert record["anchor"] == {
            "from": 1,
            "to": 3,
            "rev": 2,
            "start_affinity": "after",
            "end_affinity": "before",
            "quote": "el",
            "quote_hash": "abc",
        }

    def test_to_record_omits_missing_quote(self):
        record = Comment(anchor=CommentAnchor(from_=0, to=0)).to_record()

        assert "quote" not in record["anchor"]
        assert "quote_hash" not in record["anchor"]

    def test_record_round_trip(self):
        comment = Comment(author="bob", body="hi", anchor=CommentAnchor(from_=0, to=2, rev=1))

        assert Comment.model_validate(comment.to_record()) == comment


class TestCommentStatus:
    def test_severity_order(self):
        assert (
            CommentStatus.ATTACHED.severity
            < CommentStatus.STALE.severity
            < CommentStatus.DETACHED.severity
        )


class TestSidecarData:
    def test_defaults(self):
        data = SidecarData()

        assert (data.tags, data.comments, data.comment_rev) == ([], [], 0)
