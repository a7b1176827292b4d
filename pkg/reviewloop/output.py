"""Decode raw reviewer output into a ReviewPayload.

Parsing is all-or-nothing: any missing or malformed required field raises
OutputParseError and nothing partial is returned.
"""

from __future__ import annotations

from typing import Any

import yaml

from .errors import OutputParseError
from .models import ReviewComment, ReviewPayload

YAML_START_MARKER = "```yaml"
FENCE_MARKER = "```"


def strip_yaml_markers(text: str) -> str:
    """Return the content of the first ```yaml fence, or the input unchanged."""
    start = text.find(YAML_START_MARKER)
    if start == -1:
        return text
    start += len(YAML_START_MARKER)
    end = text.find(FENCE_MARKER, start)
    if end == -1:
        return text
    return text[start:end].strip()


def _as_text(raw: bytes | str) -> str:
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return raw


def _optional_str(value: Any, ctx: str) -> str | None:
    """Scalars decode as text; mappings and lists do not."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (bool, int, float)):
        return str(value).lower() if isinstance(value, bool) else str(value)
    raise OutputParseError(f"{ctx}: expected string")


def _optional_int(value: Any, ctx: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise OutputParseError(f"{ctx}: expected integer")
    return value


def _parse_comment(raw: Any, idx: int) -> ReviewComment:
    ctx = f"review.comments[{idx}]"
    if not isinstance(raw, dict):
        raise OutputParseError(f"{ctx}: expected mapping")
    return ReviewComment(
        path=_optional_str(raw.get("path"), f"{ctx}.path"),
        line=_optional_int(raw.get("line"), f"{ctx}.line"),
        body=_optional_str(raw.get("body"), f"{ctx}.body") or "",
        side=_optional_str(raw.get("side"), f"{ctx}.side"),
    )


def parse_review_output(raw: bytes | str) -> ReviewPayload:
    text = _as_text(raw)
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise OutputParseError(f"failed to unmarshal yaml: {exc}") from exc

    if not isinstance(doc, dict):
        raise OutputParseError("output must be a YAML mapping")

    review = doc.get("review")
    if review is None:
        raise OutputParseError("'review' field is missing from yaml output")
    if not isinstance(review, dict):
        raise OutputParseError("'review' field must be a mapping")

    body = _optional_str(review.get("body"), "review.body")
    if body is None or not body.strip():
        raise OutputParseError("'review.body' field is missing or empty")

    comments = review.get("comments")
    if comments is None:
        raise OutputParseError("'review.comments' field is missing")
    if not isinstance(comments, list):
        raise OutputParseError("'review.comments' field must be a list")

    note = _optional_str(doc.get("note"), "note") or ""

    return ReviewPayload(
        note=note,
        body=body,
        comments=tuple(_parse_comment(c, idx) for idx, c in enumerate(comments)),
    )
