"""Diff-anchored review comment generation with a bounded retry loop."""

from .artifacts import ArtifactSink, AttemptRecord, DirectoryArtifactSink, MemoryArtifactSink
from .config import ReviewLoopConfig, config_from_env, load_config_file
from .diff import DiffFile, DiffModel, Hunk, fetch_diff, is_allowed_url, is_generated_file, parse_unified_diff
from .engine import run_review
from .errors import (
    ConfigurationError,
    DiffParseError,
    DisallowedURLError,
    FetchError,
    InvocationError,
    NoValidOutputError,
    OutputParseError,
    ReviewAborted,
    ReviewLoopError,
)
from .loop import LoopLimits, RunState, merge_payloads, run_review_loop
from .models import LEFT, RIGHT, ReviewComment, ReviewPayload, dump_payload
from .output import parse_review_output, strip_yaml_markers
from .prompt import PullRequestContext, compose_prompt, render_accumulated, render_review_prompt
from .reviewers import REVIEWER_BACKENDS, ClaudeReviewer, GeminiCliReviewer, Reviewer, build_reviewer
from .sizing import DiffSize, classify_changed_lines, classify_diff, total_changed_lines
from .validator import is_comment_valid, validate_payload

__all__ = [
    "ArtifactSink",
    "AttemptRecord",
    "ClaudeReviewer",
    "ConfigurationError",
    "DiffFile",
    "DiffModel",
    "DiffParseError",
    "DiffSize",
    "DirectoryArtifactSink",
    "DisallowedURLError",
    "FetchError",
    "GeminiCliReviewer",
    "Hunk",
    "InvocationError",
    "LEFT",
    "LoopLimits",
    "MemoryArtifactSink",
    "NoValidOutputError",
    "OutputParseError",
    "PullRequestContext",
    "REVIEWER_BACKENDS",
    "RIGHT",
    "ReviewAborted",
    "ReviewComment",
    "ReviewLoopConfig",
    "ReviewLoopError",
    "ReviewPayload",
    "Reviewer",
    "RunState",
    "build_reviewer",
    "classify_changed_lines",
    "classify_diff",
    "compose_prompt",
    "config_from_env",
    "dump_payload",
    "fetch_diff",
    "is_allowed_url",
    "is_comment_valid",
    "is_generated_file",
    "load_config_file",
    "merge_payloads",
    "parse_review_output",
    "parse_unified_diff",
    "render_accumulated",
    "render_review_prompt",
    "run_review",
    "run_review_loop",
    "strip_yaml_markers",
    "total_changed_lines",
    "validate_payload",
]
