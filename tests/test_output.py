"""Tests for reviewer output decoding."""
from __future__ import annotations

import pytest

from conftest import review_yaml
from pkg.reviewloop.errors import OutputParseError
from pkg.reviewloop.models import ReviewComment, ReviewPayload, dump_payload
from pkg.reviewloop.output import parse_review_output, strip_yaml_markers


def test_parses_well_formed_output() -> None:
    payload = parse_review_output(review_yaml(("app/server.py", 12, "RIGHT"), note="n1", body="b1"))
    assert payload.note == "n1"
    assert payload.body == "b1"
    assert payload.comments == (ReviewComment("app/server.py", 12, "comment on app/server.py:12", "RIGHT"),)


def test_accepts_bytes() -> None:
    payload = parse_review_output(review_yaml().encode("utf-8"))
    assert payload.comments == ()


def test_missing_note_becomes_empty() -> None:
    payload = parse_review_output("review:\n  body: ok\n  comments: []\n")
    assert payload.note == ""


def test_comment_fields_may_be_missing() -> None:
    raw = "review:\n  body: ok\n  comments:\n    - body: floating comment\n"
    (comment,) = parse_review_output(raw).comments
    assert comment.path is None
    assert comment.line is None
    assert comment.side is None


@pytest.mark.parametrize(
    ("raw", "message"),
    [
        ("note: [unclosed\n", "failed to unmarshal yaml"),
        ("just some prose\n", "must be a YAML mapping"),
        ("note: hi\n", "'review' field is missing"),
        ("review: text\n", "'review' field must be a mapping"),
        ("review:\n  comments: []\n", "'review.body' field is missing or empty"),
        ("review:\n  body: '  '\n  comments: []\n", "'review.body' field is missing or empty"),
        ("review:\n  body: ok\n", "'review.comments' field is missing"),
        ("review:\n  body: ok\n  comments: nope\n", "must be a list"),
        ("note: [a, b]\nreview:\n  body: ok\n  comments: []\n", "note: expected string"),
        ("review:\n  body: ok\n  comments:\n    - just text\n", r"comments\[0\]: expected mapping"),
        ("review:\n  body: ok\n  comments:\n    - {path: a.py, line: twelve}\n", r"comments\[0\].line"),
        ("review:\n  body: ok\n  comments:\n    - {path: a.py, line: true}\n", r"comments\[0\].line"),
        ("review:\n  body: ok\n  comments:\n    - {path: {a: 1}, line: 1}\n", r"comments\[0\].path"),
    ],
)
def test_malformed_output_is_rejected(raw: str, message: str) -> None:
    with pytest.raises(OutputParseError, match=message):
        parse_review_output(raw)


def test_fenced_output_is_not_unwrapped_by_parser() -> None:
    fenced = "Here you go:\n```yaml\n" + review_yaml() + "```\n"
    with pytest.raises(OutputParseError):
        parse_review_output(fenced)
    assert parse_review_output(strip_yaml_markers(fenced)).body == "Summary."


class TestStripYamlMarkers:
    def test_extracts_first_fenced_block(self) -> None:
        text = "intro\n```yaml\nnote: a\n```\nmiddle\n```yaml\nnote: b\n```\n"
        assert strip_yaml_markers(text) == "note: a"

    def test_plain_text_is_unchanged(self) -> None:
        assert strip_yaml_markers("note: a\n") == "note: a\n"

    def test_unterminated_fence_is_unchanged(self) -> None:
        text = "```yaml\nnote: a\n"
        assert strip_yaml_markers(text) == text


def test_dumped_payload_parses_back() -> None:
    payload = ReviewPayload(
        note="multi\nline note",
        body="Überblick",
        comments=(ReviewComment("a.py", 3, "use a constant: 42", "LEFT"),),
    )
    text = dump_payload(payload)
    assert text.startswith("note:")
    assert parse_review_output(text) == payload


def test_scalar_text_fields_decode_as_strings() -> None:
    raw = "note: 123\nreview:\n  body: 42\n  comments:\n    - {path: 2024, line: 1, body: 7.5, side: RIGHT}\n"
    payload = parse_review_output(raw)
    assert payload.note == "123"
    assert payload.body == "42"
    assert payload.comments == (ReviewComment("2024", 1, "7.5", "RIGHT"),)
