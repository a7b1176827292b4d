"""Review payload data model and its YAML form.

Wire shape (reviewer output and final artifact):

    note: <string>
    review:
      body: <string>
      comments:
        - path: <string>
          line: <int>
          body: <string>
          side: RIGHT | LEFT
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import yaml

RIGHT = "RIGHT"
LEFT = "LEFT"
SIDES = (RIGHT, LEFT)


@dataclass(frozen=True)
class ReviewComment:
    path: str | None
    line: int | None
    body: str = ""
    side: str | None = RIGHT

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "line": self.line, "body": self.body, "side": self.side}


@dataclass(frozen=True)
class ReviewPayload:
    note: str = ""
    body: str = ""
    comments: tuple[ReviewComment, ...] = field(default_factory=tuple)

    def with_comments(self, comments: tuple[ReviewComment, ...]) -> "ReviewPayload":
        return ReviewPayload(note=self.note, body=self.body, comments=comments)

    def to_dict(self) -> dict[str, Any]:
        return {
            "note": self.note,
            "review": {
                "body": self.body,
                "comments": [c.to_dict() for c in self.comments],
            },
        }


def dump_payload(payload: ReviewPayload) -> str:
    return yaml.safe_dump(
        payload.to_dict(),
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    )
