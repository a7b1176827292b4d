"""Review prompt rendering and per-attempt prompt composition.

The base prompt is rendered once with a single substitution pass over a
fixed placeholder set. Maintainer instructions and PR fields are inserted as
escaped data; placeholders inside them are never expanded.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from pathlib import Path

import yaml

from .models import ReviewPayload

DEFAULT_TEMPLATE_PATH = Path(__file__).with_name("review-prompt.md")
TOKEN_RE = re.compile(r"\{\{[A-Z0-9_]+\}\}")

TARGET_CLAUSE = "\n\nTry generating at least {target} review comments"
PREVIOUS_REVIEWS_CLAUSE = (
    "\n\nHere are the reviews generated so far:\n"
    "```yaml\n{rendered}\n```\n"
    "Please generate new, unique review comments that are not duplicates of the ones above."
)


def escape_untrusted(text: str) -> str:
    """Escape &, < and > so untrusted text cannot break out of its tag."""
    return html.escape(text or "", quote=False)


@dataclass(frozen=True)
class PullRequestContext:
    title: str = ""
    body: str = ""
    url: str = ""
    diff_url: str = ""


def load_template(path: Path | None = None) -> str:
    return (path or DEFAULT_TEMPLATE_PATH).read_text(encoding="utf-8")


def render_review_prompt(
    *,
    template_text: str,
    pr_context: PullRequestContext,
    additional_instructions: str = "",
) -> str:
    replacements = {
        "{{PR_TITLE}}": escape_untrusted(pr_context.title),
        "{{PR_BODY}}": escape_untrusted(pr_context.body),
        "{{PR_URL}}": escape_untrusted(pr_context.url),
        "{{DIFF_URL}}": escape_untrusted(pr_context.diff_url),
        "{{ADDITIONAL_INSTRUCTIONS}}": escape_untrusted(additional_instructions.strip()) or "(none)",
    }

    def replace_token(match: re.Match[str]) -> str:
        token = match.group(0)
        return replacements.get(token, token)

    # One pass: substituted values are not scanned again.
    return TOKEN_RE.sub(replace_token, template_text)


def render_accumulated(payload: ReviewPayload) -> str:
    """YAML rendering of the note and comments gathered so far."""
    data = {
        "note": payload.note,
        "comments": [c.to_dict() for c in payload.comments],
    }
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True).rstrip("\n")


def compose_prompt(base_prompt: str, target_comments: int, accumulated: ReviewPayload | None = None) -> str:
    prompt = base_prompt + TARGET_CLAUSE.format(target=target_comments)
    if accumulated is None or not accumulated.comments:
        return prompt
    return prompt + PREVIOUS_REVIEWS_CLAUSE.format(rendered=render_accumulated(accumulated))
