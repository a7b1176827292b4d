"""Bounded retry loop that accumulates validated review output.

Each attempt composes a prompt, invokes the reviewer, parses and validates
the output, then merges it into the accumulated payload. The loop stops when
enough comments are gathered, enough attempts succeeded, the attempt budget
runs out, or the deadline passes.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from .artifacts import ArtifactSink, AttemptRecord, attempt_output_name
from .console import LogFn, eprint, notice, warning
from .diff import DiffModel
from .errors import InvocationError, NoValidOutputError, OutputParseError, ReviewAborted
from .models import ReviewPayload
from .output import parse_review_output
from .prompt import compose_prompt
from .reviewers import Reviewer, redact_secrets
from .validator import validate_payload

MAX_ATTEMPTS = 10
MAX_SUCCESSFUL_RUNS = 5
INVOKE_RETRY_DELAY_SECONDS = 10.0
PARSE_RETRY_DELAY_SECONDS = 5.0
SEPARATOR = "\n---\n"


@dataclass(frozen=True)
class LoopLimits:
    max_attempts: int = MAX_ATTEMPTS
    max_successful_runs: int = MAX_SUCCESSFUL_RUNS
    invoke_retry_delay: float = INVOKE_RETRY_DELAY_SECONDS
    parse_retry_delay: float = PARSE_RETRY_DELAY_SECONDS


@dataclass
class RunState:
    accumulated: ReviewPayload | None = None
    successful_runs: int = 0
    attempt: int = 0

    @property
    def comment_count(self) -> int:
        return len(self.accumulated.comments) if self.accumulated is not None else 0


def merge_payloads(accumulated: ReviewPayload | None, current: ReviewPayload) -> ReviewPayload:
    """Append current onto accumulated, preserving comment order."""
    if accumulated is None:
        return current
    note = accumulated.note
    if current.note:
        note = note + SEPARATOR + current.note
    body = accumulated.body
    if current.body:
        body = body + SEPARATOR + current.body
    return ReviewPayload(note=note, body=body, comments=accumulated.comments + current.comments)


def _stop_reason(state: RunState, limits: LoopLimits, target_comments: int) -> str | None:
    if state.successful_runs >= limits.max_successful_runs:
        return f"Stopping because max successful runs ({limits.max_successful_runs}) reached."
    if state.comment_count >= target_comments:
        return f"Stopping because expected number of comments ({target_comments}) was met."
    return None


def run_review_loop(
    *,
    reviewer: Reviewer,
    model: DiffModel,
    base_prompt: str,
    target_comments: int,
    limits: LoopLimits = LoopLimits(),
    sink: ArtifactSink | None = None,
    log: LogFn = eprint,
    cancel: threading.Event | None = None,
    deadline: float | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> ReviewPayload:
    """Drive attempts until a stop condition holds; return the merged payload.

    Raises NoValidOutputError when no attempt succeeded and ReviewAborted when
    `cancel` is set. A passed `deadline` (a `clock()` instant) only stops new
    attempts.
    """
    cancel = cancel or threading.Event()
    state = RunState()

    def remaining() -> float | None:
        if deadline is None:
            return None
        return max(deadline - clock(), 0.0)

    def pause(seconds: float) -> None:
        left = remaining()
        if left is not None:
            seconds = min(seconds, left)
        if seconds > 0 and cancel.wait(seconds):
            raise ReviewAborted("review loop cancelled")

    for i in range(limits.max_attempts):
        state.attempt = i
        if cancel.is_set():
            raise ReviewAborted("review loop cancelled")
        log(
            f"Running reviewer (attempt {i + 1}/{limits.max_attempts}, "
            f"successful runs {state.successful_runs})"
        )

        reason = _stop_reason(state, limits, target_comments)
        if reason:
            log(reason)
            break
        left = remaining()
        if left is not None and left <= 0:
            warning(log, "Stopping because the review deadline passed.")
            break

        prompt = compose_prompt(base_prompt, target_comments, state.accumulated)

        try:
            raw = reviewer.invoke(prompt, timeout_seconds=left, cancel=cancel)
        except InvocationError as exc:
            log(f"Reviewer run failed (class={exc.error_class}): {redact_secrets(str(exc))}. Continuing...")
            pause(limits.invoke_retry_delay)
            continue

        if sink is not None:
            try:
                sink.write_attempt(AttemptRecord(index=i, prompt=prompt, raw_output=raw))
                log(f"Wrote reviewer output to {attempt_output_name(i)}")
            except OSError as exc:
                log(f"Failed to write reviewer output to {attempt_output_name(i)}: {exc}")

        try:
            payload = parse_review_output(raw)
        except OutputParseError as exc:
            log(f"Reviewer output validation failed: {exc}. Continuing...")
            pause(limits.parse_retry_delay)
            continue

        validated = validate_payload(payload, model, log=log)
        state.successful_runs += 1
        state.accumulated = merge_payloads(state.accumulated, validated)
        log(
            f"Reviewer run and validation successful: kept {len(validated.comments)}/"
            f"{len(payload.comments)} comments, {state.comment_count} total."
        )

    if cancel.is_set():
        raise ReviewAborted("review loop cancelled")
    if state.successful_runs == 0 or state.accumulated is None:
        raise NoValidOutputError(
            f"reviewer failed to produce any valid output after {limits.max_attempts} attempts"
        )

    notice(
        log,
        f"Finished reviewer runs. Total successful runs: {state.successful_runs}. "
        f"Total comments: {state.comment_count}",
    )
    if sink is not None:
        sink.write_final(state.accumulated)
    return state.accumulated
