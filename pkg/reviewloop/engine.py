"""End-to-end wiring: reviewer setup, diff fetch, sizing, retry loop."""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Callable

from .artifacts import ArtifactSink, DirectoryArtifactSink
from .config import ReviewLoopConfig
from .console import LogFn, eprint, notice
from .diff import DiffHttpOpen, fetch_diff
from .loop import run_review_loop
from .models import ReviewPayload
from .prompt import load_template, render_review_prompt
from .reviewers import Reviewer, build_reviewer
from .sizing import classify_diff

DEFAULT_TEMPLATE = "default"


def resolve_base_prompt(config: ReviewLoopConfig) -> str:
    """Use the prompt verbatim unless a template is requested or no prompt was given.

    With a template, the configured prompt becomes the additional
    instructions section of the rendered template.
    """
    if not config.prompt_template and config.prompt.strip():
        return config.prompt
    template_path = None
    if config.prompt_template and config.prompt_template != DEFAULT_TEMPLATE:
        template_path = Path(config.prompt_template)
    return render_review_prompt(
        template_text=load_template(template_path),
        pr_context=config.pr_context,
        additional_instructions=config.prompt,
    )


def run_review(
    config: ReviewLoopConfig,
    *,
    reviewer: Reviewer | None = None,
    sink: ArtifactSink | None = None,
    opener: DiffHttpOpen | None = None,
    log: LogFn = eprint,
    cancel: threading.Event | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> ReviewPayload:
    log(f"Review with reviewer backend: {config.reviewer}")
    if reviewer is None:
        reviewer = build_reviewer(
            config.reviewer,
            api_key=config.api_key,
            timeout_seconds=config.invoke_timeout,
            claude_model=config.claude_model,
        )
    if sink is None:
        sink = DirectoryArtifactSink(config.output_dir)

    deadline = None
    fetch_timeout = config.fetch_timeout
    if config.deadline_seconds is not None:
        deadline = clock() + config.deadline_seconds
        fetch_timeout = min(fetch_timeout, config.deadline_seconds)

    log(f"Downloading and parsing diff from {config.diff_url}")
    model = fetch_diff(
        config.diff_url,
        allowed_prefixes=config.allowed_url_prefixes,
        timeout_seconds=fetch_timeout,
        opener=opener,
        cancel=cancel,
    )
    size = classify_diff(model)
    notice(
        log,
        f"Diff size categorized as {size.size_class} ({size.total_changed} changed lines across "
        f"{len(model.files)} files), expecting up to {size.target_comments} comments.",
    )

    base_prompt = resolve_base_prompt(config)
    try:
        sink.write_prompt(base_prompt)
    except OSError as exc:
        log(f"Failed to write prompt to file: {exc}")

    return run_review_loop(
        reviewer=reviewer,
        model=model,
        base_prompt=base_prompt,
        target_comments=size.target_comments,
        limits=config.limits,
        sink=sink,
        log=log,
        cancel=cancel,
        deadline=deadline,
        clock=clock,
    )
