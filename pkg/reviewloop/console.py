"""Progress output helpers shared by the loop components."""

from __future__ import annotations

import sys
from typing import Callable

LogFn = Callable[[str], None]


def eprint(msg: str) -> None:
    print(msg, file=sys.stderr)


def notice(log: LogFn, msg: str) -> None:
    log(f"::notice::{msg}")


def warning(log: LogFn, msg: str) -> None:
    log(f"::warning::{msg}")
