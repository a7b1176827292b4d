"""Command line entry point.

Environment:
  GIT_DIFF_URL      (required) diff to review; must match an allowed prefix
  AGENT_NAME        (required) reviewer backend: gemini-cli | claude
  AGENT_PROMPT      (optional) base prompt text
  REVIEW_LOOP_CONFIG (optional) YAML file with the same settings

Exit codes: 0 success, 1 review failed, 2 configuration error.
"""

from __future__ import annotations

import argparse
import os
import signal
import sys
import threading
from pathlib import Path
from typing import Mapping

from .config import CONFIG_FILE_ENV, config_from_env
from .console import eprint
from .engine import run_review
from .errors import ConfigurationError, ReviewLoopError


def _install_cancel_handlers(cancel: threading.Event) -> dict[int, object]:
    def handle(signum: int, _frame: object) -> None:
        eprint(f"::warning::Received signal {signum}; cancelling review loop.")
        cancel.set()

    previous = {}
    for sig in (signal.SIGTERM, signal.SIGINT):
        previous[sig] = signal.signal(sig, handle)
    return previous


def main(argv: list[str] | None = None, env: Mapping[str, str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="reviewloop", description="Generate diff-anchored review comments.")
    parser.add_argument("--config", default="", help=f"YAML config file (overrides ${CONFIG_FILE_ENV})")
    parser.add_argument("--output-dir", default="", help="directory for prompt, per-attempt and final artifacts")
    args = parser.parse_args(argv)

    resolved_env = dict(os.environ if env is None else env)
    if args.config:
        resolved_env[CONFIG_FILE_ENV] = args.config
    if args.output_dir:
        resolved_env["REVIEW_OUTPUT_DIR"] = str(Path(args.output_dir))

    try:
        config = config_from_env(resolved_env)
    except ConfigurationError as exc:
        eprint(f"::error::review loop config error: {exc}")
        return 2

    cancel = threading.Event()
    previous_handlers: dict[int, object] = {}
    if threading.current_thread() is threading.main_thread():
        previous_handlers = _install_cancel_handlers(cancel)

    try:
        run_review(config, cancel=cancel)
    except ConfigurationError as exc:
        eprint(f"::error::review loop config error: {exc}")
        return 2
    except (ReviewLoopError, OSError) as exc:
        eprint(f"::error::failed reviewing: {exc}")
        return 1
    finally:
        for sig, handler in previous_handlers.items():
            if handler is not None:
                signal.signal(sig, handler)
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
