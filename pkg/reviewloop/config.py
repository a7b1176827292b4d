"""Typed configuration for one review loop run.

Values come from defaults, then an optional YAML file (REVIEW_LOOP_CONFIG),
then environment variables. Everything is validated up front so a bad
backend selector fails before any diff work starts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from .diff import DEFAULT_ALLOWED_PREFIXES, DEFAULT_FETCH_TIMEOUT_SECONDS
from .errors import ConfigurationError
from .loop import (
    INVOKE_RETRY_DELAY_SECONDS,
    MAX_ATTEMPTS,
    MAX_SUCCESSFUL_RUNS,
    PARSE_RETRY_DELAY_SECONDS,
    LoopLimits,
)
from .prompt import PullRequestContext
from .reviewers import (
    API_KEY_ENV_VARS,
    DEFAULT_CLAUDE_MODEL,
    DEFAULT_INVOKE_TIMEOUT_SECONDS,
    REVIEWER_BACKENDS,
    TOKEN_FILE_NAMES,
)

CONFIG_FILE_ENV = "REVIEW_LOOP_CONFIG"
DEFAULT_OUTPUT_DIR = ".."
DEFAULT_TOKENS_DIR = "/tokens"

# config key -> environment variable
ENV_KEYS = {
    "diffUrl": "GIT_DIFF_URL",
    "prompt": "AGENT_PROMPT",
    "reviewer": "AGENT_NAME",
    "outputDir": "REVIEW_OUTPUT_DIR",
    "allowedUrlPrefixes": "REVIEW_ALLOWED_URL_PREFIXES",
    "maxAttempts": "REVIEW_MAX_ATTEMPTS",
    "maxSuccessfulRuns": "REVIEW_MAX_SUCCESSFUL_RUNS",
    "invokeRetryDelay": "REVIEW_INVOKE_RETRY_DELAY",
    "parseRetryDelay": "REVIEW_PARSE_RETRY_DELAY",
    "fetchTimeout": "REVIEW_FETCH_TIMEOUT",
    "invokeTimeout": "REVIEW_INVOKE_TIMEOUT",
    "deadline": "REVIEW_DEADLINE",
    "tokensDir": "REVIEW_TOKENS_DIR",
    "claudeModel": "REVIEW_CLAUDE_MODEL",
    "promptTemplate": "REVIEW_PROMPT_TEMPLATE",
    "prTitle": "GH_PR_TITLE",
    "prBody": "GH_PR_BODY",
    "prUrl": "GH_PR_URL",
}


def _require_str(value: Any, ctx: str) -> str:
    if not isinstance(value, str):
        raise ConfigurationError(f"{ctx}: expected string")
    s = value.strip()
    if not s:
        raise ConfigurationError(f"{ctx}: must be non-empty")
    return s


def _optional_str(value: Any, ctx: str, default: str = "") -> str:
    if value is None:
        return default
    if not isinstance(value, str):
        raise ConfigurationError(f"{ctx}: expected string")
    return value


def _coerce_positive_int(value: Any, ctx: str, default: int) -> int:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ConfigurationError(f"{ctx}: expected integer")
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError as exc:
            raise ConfigurationError(f"{ctx}: expected integer") from exc
    if not isinstance(value, int):
        raise ConfigurationError(f"{ctx}: expected integer")
    if value < 1:
        raise ConfigurationError(f"{ctx}: must be >= 1")
    return value


def _coerce_seconds(value: Any, ctx: str, default: float | None) -> float | None:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ConfigurationError(f"{ctx}: expected number")
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError as exc:
            raise ConfigurationError(f"{ctx}: expected number") from exc
    if not isinstance(value, (int, float)):
        raise ConfigurationError(f"{ctx}: expected number")
    if value < 0:
        raise ConfigurationError(f"{ctx}: must be >= 0")
    return float(value)


def _coerce_prefixes(value: Any) -> tuple[str, ...]:
    if value is None or value == "":
        return DEFAULT_ALLOWED_PREFIXES
    if isinstance(value, str):
        items: list[Any] = value.split(",")
    elif isinstance(value, list):
        items = value
    else:
        raise ConfigurationError("allowedUrlPrefixes: expected list or comma-separated string")
    prefixes = tuple(
        _require_str(item, f"allowedUrlPrefixes[{idx}]")
        for idx, item in enumerate(items)
        if not (isinstance(item, str) and not item.strip())
    )
    if not prefixes:
        raise ConfigurationError("allowedUrlPrefixes: must be non-empty")
    return prefixes


def _coerce_backend(value: Any) -> str:
    backend = _require_str(value, "reviewer")
    if backend not in REVIEWER_BACKENDS:
        raise ConfigurationError(f"unknown provider: {backend} (expected one of {', '.join(REVIEWER_BACKENDS)})")
    return backend


def read_token_file(tokens_dir: Path, backend: str) -> str:
    token_file = tokens_dir / TOKEN_FILE_NAMES[backend]
    try:
        return token_file.read_text(encoding="utf-8").strip()
    except OSError:
        return ""


@dataclass(frozen=True)
class ReviewLoopConfig:
    diff_url: str
    reviewer: str
    prompt: str = ""
    api_key: str = field(default="", repr=False)
    output_dir: Path = Path(DEFAULT_OUTPUT_DIR)
    allowed_url_prefixes: tuple[str, ...] = DEFAULT_ALLOWED_PREFIXES
    limits: LoopLimits = field(default_factory=LoopLimits)
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT_SECONDS
    invoke_timeout: float = DEFAULT_INVOKE_TIMEOUT_SECONDS
    deadline_seconds: float | None = None
    claude_model: str = DEFAULT_CLAUDE_MODEL
    prompt_template: str = ""
    pr_context: PullRequestContext = field(default_factory=PullRequestContext)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], *, api_key: str = "") -> "ReviewLoopConfig":
        # Backend first: an unknown selector must fail before anything else is checked.
        backend = _coerce_backend(raw.get("reviewer"))
        diff_url = _require_str(raw.get("diffUrl"), "diffUrl")

        limits = LoopLimits(
            max_attempts=_coerce_positive_int(raw.get("maxAttempts"), "maxAttempts", MAX_ATTEMPTS),
            max_successful_runs=_coerce_positive_int(
                raw.get("maxSuccessfulRuns"), "maxSuccessfulRuns", MAX_SUCCESSFUL_RUNS
            ),
            invoke_retry_delay=_coerce_seconds(
                raw.get("invokeRetryDelay"), "invokeRetryDelay", INVOKE_RETRY_DELAY_SECONDS
            ),
            parse_retry_delay=_coerce_seconds(
                raw.get("parseRetryDelay"), "parseRetryDelay", PARSE_RETRY_DELAY_SECONDS
            ),
        )

        return cls(
            diff_url=diff_url,
            reviewer=backend,
            prompt=_optional_str(raw.get("prompt"), "prompt"),
            api_key=api_key,
            output_dir=Path(_optional_str(raw.get("outputDir"), "outputDir", DEFAULT_OUTPUT_DIR) or DEFAULT_OUTPUT_DIR),
            allowed_url_prefixes=_coerce_prefixes(raw.get("allowedUrlPrefixes")),
            limits=limits,
            fetch_timeout=_coerce_seconds(raw.get("fetchTimeout"), "fetchTimeout", DEFAULT_FETCH_TIMEOUT_SECONDS),
            invoke_timeout=_coerce_seconds(
                raw.get("invokeTimeout"), "invokeTimeout", DEFAULT_INVOKE_TIMEOUT_SECONDS
            ),
            deadline_seconds=_coerce_seconds(raw.get("deadline"), "deadline", None),
            claude_model=_optional_str(raw.get("claudeModel"), "claudeModel", DEFAULT_CLAUDE_MODEL)
            or DEFAULT_CLAUDE_MODEL,
            prompt_template=_optional_str(raw.get("promptTemplate"), "promptTemplate").strip(),
            pr_context=PullRequestContext(
                title=_optional_str(raw.get("prTitle"), "prTitle"),
                body=_optional_str(raw.get("prBody"), "prBody"),
                url=_optional_str(raw.get("prUrl"), "prUrl"),
                diff_url=diff_url,
            ),
        )


def load_config_file(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"unable to read config file {path}: {exc}") from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"invalid YAML in {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: expected mapping")
    unknown = sorted(set(data) - set(ENV_KEYS))
    if unknown:
        raise ConfigurationError(f"{path}: unknown keys: {', '.join(unknown)}")
    return data


def config_from_env(env: Mapping[str, str]) -> ReviewLoopConfig:
    raw: dict[str, Any] = {}
    config_file = env.get(CONFIG_FILE_ENV, "").strip()
    if config_file:
        raw.update(load_config_file(Path(config_file)))
    for key, env_var in ENV_KEYS.items():
        value = env.get(env_var)
        if value is not None and value != "":
            raw[key] = value

    backend = _coerce_backend(raw.get("reviewer"))
    api_key = (env.get(API_KEY_ENV_VARS[backend]) or "").strip()
    if not api_key:
        tokens_dir = Path(_optional_str(raw.get("tokensDir"), "tokensDir", DEFAULT_TOKENS_DIR) or DEFAULT_TOKENS_DIR)
        api_key = read_token_file(tokens_dir, backend)
    return ReviewLoopConfig.from_dict(raw, api_key=api_key)
