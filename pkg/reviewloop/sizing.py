"""Diff size classification and expected comment counts."""

from __future__ import annotations

from dataclasses import dataclass

from .diff import DiffModel

XS = "XS"
S = "S"
M = "M"
L = "L"
XL = "XL"
XXL = "XXL"

# Inclusive upper bound of changed lines for each class; anything larger is XXL.
SIZE_THRESHOLDS = (
    (9, XS),
    (29, S),
    (99, M),
    (499, L),
    (999, XL),
)

SIZE_TARGETS = {
    XS: 2,
    S: 4,
    M: 6,
    L: 10,
    XL: 15,
    XXL: 20,
}


@dataclass(frozen=True)
class DiffSize:
    total_changed: int
    size_class: str
    target_comments: int


def total_changed_lines(model: DiffModel) -> int:
    return sum(h.changed_lines for f in model.files for h in f.hunks)


def classify_changed_lines(total_changed: int) -> str:
    for upper, size_class in SIZE_THRESHOLDS:
        if total_changed <= upper:
            return size_class
    return XXL


def classify_diff(model: DiffModel) -> DiffSize:
    total = total_changed_lines(model)
    size_class = classify_changed_lines(total)
    return DiffSize(total_changed=total, size_class=size_class, target_comments=SIZE_TARGETS[size_class])
