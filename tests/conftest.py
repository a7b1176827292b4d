"""Shared fakes and diff fixtures for the review loop tests."""
from __future__ import annotations

import sys
import threading
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).parent.parent

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from pkg.reviewloop.errors import InvocationError  # noqa: E402


def file_section(path: str, *hunks: str) -> str:
    return f"--- a/{path}\n+++ b/{path}\n" + "".join(hunks)


def added_hunk(start: int, count: int) -> str:
    """A pure addition hunk: `count` new lines starting at `start`."""
    body = "".join(f"+added line {n}\n" for n in range(count))
    return f"@@ -{start},0 +{start},{count} @@\n{body}"


# One file, one hunk {oldStart:10, oldLines:0, newStart:10, newLines:5}.
SINGLE_HUNK_DIFF = file_section("app/server.py", added_hunk(10, 5))

MIXED_DIFF = (
    "diff --git a/pkg/handler.go b/pkg/handler.go\n"
    "index 3b18e51..a9c4f2d 100644\n"
    "--- a/pkg/handler.go\n"
    "+++ b/pkg/handler.go\n"
    "@@ -20,4 +20,5 @@ func Handle() {\n"
    " \tctx := r.Context()\n"
    "-\tdata := load()\n"
    "+\tdata, err := load(ctx)\n"
    "+\tif err != nil { return }\n"
    " \tuse(data)\n"
    " \tdone()\n"
    "diff --git a/README.md b/README.md\n"
    "index 1111111..2222222 100644\n"
    "--- a/README.md\n"
    "+++ b/README.md\n"
    "@@ -1,2 +1,2 @@\n"
    "-# Old title\n"
    "+# New title\n"
    " intro\n"
)


def review_yaml(*comments: tuple[str, int, str], note: str = "Looks reasonable.", body: str = "Summary.") -> str:
    lines = [f"note: {note}", "review:", f"  body: {body}", "  comments:"]
    if not comments:
        lines[-1] = "  comments: []"
    for path, line, side in comments:
        lines.extend(
            [
                f"    - path: {path}",
                f"      line: {line}",
                f"      side: {side}",
                f"      body: comment on {path}:{line}",
            ]
        )
    return "\n".join(lines) + "\n"


class FakeReviewer:
    """Replays scripted results: bytes/str are returned, exceptions raised."""

    def __init__(self, *results: object) -> None:
        self.results = list(results)
        self.prompts: list[str] = []
        self.timeouts: list[float | None] = []
        self.cancels: list[threading.Event | None] = []

    def invoke(
        self,
        prompt: str,
        *,
        timeout_seconds: float | None = None,
        cancel: threading.Event | None = None,
    ) -> bytes:
        self.prompts.append(prompt)
        self.timeouts.append(timeout_seconds)
        self.cancels.append(cancel)
        if not self.results:
            raise InvocationError("no scripted result left")
        result = self.results.pop(0)
        if isinstance(result, BaseException):
            raise result
        if isinstance(result, str):
            return result.encode("utf-8")
        return result


class ContextResponse:
    def __init__(self, status: int, body: str | bytes = "") -> None:
        self.status = status
        self._body = body.encode() if isinstance(body, str) else body

    def read(self, _size: int = -1) -> bytes:
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *_args):
        return None


@pytest.fixture
def log_lines() -> list[str]:
    return []


@pytest.fixture
def log(log_lines: list[str]):
    return log_lines.append
