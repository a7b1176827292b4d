"""Unified diff download and parsing.

The DiffModel only keeps what comment anchoring needs: per file, the hunk
ranges on both sides plus added/removed counts for sizing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import threading
from typing import Callable, Iterable, Iterator, Sequence
from urllib import error
from urllib import request

from unidiff import PatchSet
from unidiff.errors import UnidiffParseError

from .errors import DiffParseError, DisallowedURLError, FetchError, ReviewAborted

DEFAULT_ALLOWED_PREFIXES = ("https://github.com/",)
DEFAULT_FETCH_TIMEOUT_SECONDS = 30

GENERATED_SUFFIXES = (".pb.go", ".generated.go", "zz_generated.deepcopy.go")
GENERATED_MARKERS = ("Code generated by", "DO NOT EDIT")

DiffHttpOpen = Callable[[request.Request, float], object]


@dataclass(frozen=True)
class Hunk:
    """One @@ block. `added`/`removed` are None when the hunk was built by hand."""

    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    added: int | None = None
    removed: int | None = None

    @property
    def changed_lines(self) -> int:
        if self.added is None or self.removed is None:
            return self.old_lines + self.new_lines
        return self.added + self.removed

    def contains_new(self, line: int) -> bool:
        return self.new_start <= line <= self.new_start + self.new_lines

    def contains_old(self, line: int) -> bool:
        return self.old_start <= line <= self.old_start + self.old_lines


@dataclass(frozen=True)
class DiffFile:
    path: str
    hunks: tuple[Hunk, ...] = ()


@dataclass(frozen=True)
class DiffModel:
    files: tuple[DiffFile, ...] = field(default_factory=tuple)

    def files_for(self, path: str) -> Iterator[DiffFile]:
        """Every file entry whose path matches. Duplicate paths are tolerated."""
        return (f for f in self.files if f.path == path)

    @property
    def paths(self) -> list[str]:
        return [f.path for f in self.files]


def is_generated_file(path: str, lines: Iterable[str] = ()) -> bool:
    """Vendored or generated code is excluded from review."""
    if "vendor/" in path:
        return True
    if path.endswith(GENERATED_SUFFIXES):
        return True
    for line in lines:
        if any(marker in line for marker in GENERATED_MARKERS):
            return True
    return False


def parse_unified_diff(diff_text: str, *, skip_generated: bool = True) -> DiffModel:
    """Parse diff text into a DiffModel.

    Raises DiffParseError when unidiff rejects the text or when it contains
    no file sections at all.
    """
    try:
        patch = PatchSet(diff_text.splitlines(keepends=True))
    except UnidiffParseError as exc:
        raise DiffParseError(f"failed to parse diff: {exc}") from exc

    if len(patch) == 0:
        raise DiffParseError("failed to parse diff: no file sections found")

    files: list[DiffFile] = []
    for patched_file in patch:
        path = patched_file.path
        if skip_generated:
            values = (line.value for hunk in patched_file for line in hunk)
            if is_generated_file(path, values):
                continue
        hunks = tuple(
            Hunk(
                old_start=hunk.source_start,
                old_lines=hunk.source_length,
                new_start=hunk.target_start,
                new_lines=hunk.target_length,
                added=hunk.added,
                removed=hunk.removed,
            )
            for hunk in patched_file
        )
        files.append(DiffFile(path=path, hunks=hunks))
    return DiffModel(files=tuple(files))


def is_allowed_url(url: str, allowed_prefixes: Sequence[str] = DEFAULT_ALLOWED_PREFIXES) -> bool:
    return any(url.startswith(prefix) for prefix in allowed_prefixes if prefix)


def _default_opener(req: request.Request, timeout_seconds: float) -> object:
    return request.urlopen(req, timeout=timeout_seconds)


def _read_body(response: object) -> str:
    raw = response.read()
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return str(raw or "")


def fetch_diff_text(
    url: str,
    *,
    allowed_prefixes: Sequence[str] = DEFAULT_ALLOWED_PREFIXES,
    timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
    opener: DiffHttpOpen | None = None,
    cancel: threading.Event | None = None,
) -> str:
    if not is_allowed_url(url, allowed_prefixes):
        allowed = ", ".join(allowed_prefixes) or "(none)"
        raise DisallowedURLError(f"diff URL must start with one of: {allowed}")
    if cancel is not None and cancel.is_set():
        raise ReviewAborted("diff download cancelled")

    req = request.Request(url, method="GET")
    open_url = opener or _default_opener
    try:
        with open_url(req, timeout_seconds) as response:
            status = int(getattr(response, "status", 200))
            if status != 200:
                raise FetchError(f"failed to download diff: status code {status}")
            return _read_body(response)
    except error.HTTPError as exc:
        raise FetchError(f"failed to download diff: status code {exc.code}") from exc
    except error.URLError as exc:
        reason = exc.reason if hasattr(exc, "reason") else exc
        raise FetchError(f"failed to download diff: {reason}") from exc
    except (OSError, ValueError) as exc:
        raise FetchError(f"failed to download diff: {exc}") from exc


def fetch_diff(
    url: str,
    *,
    allowed_prefixes: Sequence[str] = DEFAULT_ALLOWED_PREFIXES,
    timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
    opener: DiffHttpOpen | None = None,
    skip_generated: bool = True,
    cancel: threading.Event | None = None,
) -> DiffModel:
    """Download a diff and parse it. No retries at this layer."""
    text = fetch_diff_text(
        url,
        allowed_prefixes=allowed_prefixes,
        timeout_seconds=timeout_seconds,
        opener=opener,
        cancel=cancel,
    )
    return parse_unified_diff(text, skip_generated=skip_generated)
