"""Persistence of prompts, per-attempt raw output and the final payload.

The retry loop hands records to a sink; it never touches the filesystem
itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from .models import ReviewPayload, dump_payload

PROMPT_FILE = "agent-prompt.txt"
FINAL_OUTPUT_FILE = "agent-output.txt"


def attempt_output_name(index: int) -> str:
    """Debug artifact name for a 0-based attempt index."""
    return f"agent-output-run{index + 1}.txt"


@dataclass(frozen=True)
class AttemptRecord:
    index: int
    prompt: str
    raw_output: bytes


class ArtifactSink(Protocol):
    def write_prompt(self, prompt: str) -> None:
        ...

    def write_attempt(self, record: AttemptRecord) -> None:
        ...

    def write_final(self, payload: ReviewPayload) -> None:
        ...


@dataclass(frozen=True)
class DirectoryArtifactSink:
    output_dir: Path

    def _write(self, name: str, content: bytes) -> Path:
        path = self.output_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path

    def write_prompt(self, prompt: str) -> None:
        self._write(PROMPT_FILE, prompt.encode("utf-8"))

    def write_attempt(self, record: AttemptRecord) -> None:
        self._write(attempt_output_name(record.index), record.raw_output)

    def write_final(self, payload: ReviewPayload) -> None:
        self._write(FINAL_OUTPUT_FILE, dump_payload(payload).encode("utf-8"))


@dataclass
class MemoryArtifactSink:
    """Keeps everything in memory; handy for embedding and tests."""

    prompt: str | None = None
    attempts: list[AttemptRecord] = field(default_factory=list)
    final: ReviewPayload | None = None

    def write_prompt(self, prompt: str) -> None:
        self.prompt = prompt

    def write_attempt(self, record: AttemptRecord) -> None:
        self.attempts.append(record)

    def write_final(self, payload: ReviewPayload) -> None:
        self.final = payload
