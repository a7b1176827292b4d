"""Anchor review comments to lines that actually changed.

A comment survives only if its (path, line, side) falls inside a hunk of a
matching file in the DiffModel. Invalid comments are dropped, never raised.
Kept comments carry the canonical RIGHT/LEFT side.
"""

from __future__ import annotations

from dataclasses import replace

from .console import LogFn, eprint
from .diff import DiffModel
from .models import LEFT, RIGHT, SIDES, ReviewComment, ReviewPayload


def normalize_side(side: str | None) -> str | None:
    if side is None:
        return None
    normalized = side.strip().upper()
    return normalized if normalized in SIDES else None


def is_comment_valid(comment: ReviewComment, model: DiffModel) -> bool:
    if comment.path is None or comment.line is None:
        return False
    side = normalize_side(comment.side)
    if side is None:
        return False
    for diff_file in model.files_for(comment.path):
        for hunk in diff_file.hunks:
            if side == RIGHT and hunk.contains_new(comment.line):
                return True
            if side == LEFT and hunk.contains_old(comment.line):
                return True
    return False


def validate_payload(payload: ReviewPayload, model: DiffModel, *, log: LogFn = eprint) -> ReviewPayload:
    """Return a copy of payload keeping only comments anchored in the diff."""
    kept: list[ReviewComment] = []
    for comment in payload.comments:
        if is_comment_valid(comment, model):
            kept.append(replace(comment, side=normalize_side(comment.side)))
            continue
        if comment.path is not None and comment.line is not None:
            log(
                f"Filtering out invalid comment on file {comment.path} at line {comment.line} "
                f"(side={comment.side or 'missing'})"
            )
        else:
            log("Filtering out invalid comment with missing path or line")
    return payload.with_comments(tuple(kept))
