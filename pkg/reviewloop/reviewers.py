"""Reviewer backends.

A reviewer turns a prompt into raw text. Failures are ordinary
InvocationErrors carrying an error class; the retry loop decides what to do
with them. A set cancel event surfaces as ReviewAborted. Credentials are
passed in explicitly and only ever reach the child process environment or
the request headers.
"""

from __future__ import annotations

import json
import os
import re
import subprocess
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol, Sequence
from urllib import error
from urllib import request

from .errors import ConfigurationError, InvocationError, ReviewAborted
from .output import strip_yaml_markers

GEMINI_CLI = "gemini-cli"
CLAUDE = "claude"
REVIEWER_BACKENDS = (GEMINI_CLI, CLAUDE)

API_KEY_ENV_VARS = {
    GEMINI_CLI: "GEMINI_API_KEY",
    CLAUDE: "ANTHROPIC_API_KEY",
}
TOKEN_FILE_NAMES = {
    GEMINI_CLI: "gemini",
    CLAUDE: "anthropic",
}

DEFAULT_INVOKE_TIMEOUT_SECONDS = 600
CANCEL_POLL_SECONDS = 0.25
DEFAULT_CLAUDE_MODEL = "claude-sonnet-4-5"
DEFAULT_CLAUDE_MAX_TOKENS = 4096
DEFAULT_CLAUDE_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_API_VERSION = "2023-06-01"

PostProcessor = Callable[[str], str]
ProcessSpawner = Callable[..., subprocess.Popen]
ReviewerHttpOpen = Callable[[request.Request, float], object]


class Reviewer(Protocol):
    def invoke(
        self,
        prompt: str,
        *,
        timeout_seconds: float | None = None,
        cancel: threading.Event | None = None,
    ) -> bytes:
        ...


def classify_invocation_error(*, stdout: str, stderr: str, exit_code: int) -> str:
    """Classify a failed invocation into an error class."""

    if exit_code == 0:
        return "none"
    if exit_code == 124:
        return "timeout"

    combined = f"{stdout}\n{stderr}".lower()

    if re.search(
        r"incorrect_api_key|invalid_api_key|invalid.api.key|api_key_invalid|exceeded_current_quota|"
        r"insufficient_quota|insufficient.credits|payment.required|quota.exceeded|"
        r"authentication failed|unauthorized|http[^0-9]*401",
        combined,
    ):
        return "auth_or_quota"

    if re.search(r"rate.limit|too many requests|resource.exhausted|http[^0-9]*429|error[^0-9]*429", combined):
        return "rate_limit"

    if re.search(r"http[^0-9]*5[0-9]{2}|error[^0-9]*5[0-9]{2}|service.unavailable|overloaded", combined):
        return "server_5xx"

    if re.search(
        r"network.*(error|timeout|unreachable)|timed out|connection (reset|refused|aborted)|"
        r"temporary failure|econn(reset|refused)|enotfound|broken pipe",
        combined,
    ):
        return "network"

    if re.search(r"http[^0-9]*4[0-9]{2}|error[^0-9]*4[0-9]{2}", combined):
        return "client_4xx"

    return "unknown"


def redact_secrets(text: str) -> str:
    redacted = text
    patterns = [
        (r"(?i)(authorization\s*:\s*bearer\s+)[^\s]+", r"\1<redacted>"),
        (r"(?i)(x-api-key\s*:\s*)[^\s]+", r"\1<redacted>"),
        (r"(?i)((?:api|access|secret|auth)[_-]?key\s*[:=]\s*)[^\s,;]+", r"\1<redacted>"),
        (r"(?i)(token\s*[:=]\s*)[^\s,;]+", r"\1<redacted>"),
    ]
    for pattern, replacement in patterns:
        redacted = re.sub(pattern, replacement, redacted)
    return redacted


def _apply(post_processors: Sequence[PostProcessor], text: str) -> bytes:
    for post_process in post_processors:
        text = post_process(text)
    return text.encode("utf-8")


def _decode(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _raise_if_cancelled(cancel: threading.Event | None, what: str) -> None:
    if cancel is not None and cancel.is_set():
        raise ReviewAborted(f"{what} cancelled")


@dataclass
class GeminiCliReviewer:
    """Runs `gemini -y -p <prompt>` with the API key in the child environment only.

    The child is polled so a cancel event or the timeout kills it promptly.
    """

    api_key: str = field(repr=False)
    command: str = "gemini"
    timeout_seconds: float = DEFAULT_INVOKE_TIMEOUT_SECONDS
    spawn: ProcessSpawner | None = None
    post_processors: list[PostProcessor] = field(default_factory=lambda: [strip_yaml_markers])

    def add_post_processor(self, post_process: PostProcessor) -> None:
        self.post_processors.append(post_process)

    def build_command(self, prompt: str) -> list[str]:
        return [self.command, "-y", "-p", prompt]

    def build_env(self) -> dict[str, str]:
        env = {
            "PATH": os.environ.get("PATH", ""),
            "HOME": os.environ.get("HOME", ""),
            "GEMINI_API_KEY": self.api_key,
        }
        for name in ("LANG", "LC_ALL"):
            if os.environ.get(name):
                env[name] = os.environ[name]
        return env

    def _stop(self, proc: subprocess.Popen) -> None:
        proc.kill()
        proc.communicate()

    def _communicate(
        self,
        proc: subprocess.Popen,
        timeout: float,
        cancel: threading.Event | None,
    ) -> tuple[object, object]:
        end = time.monotonic() + timeout
        while True:
            if cancel is not None and cancel.is_set():
                self._stop(proc)
                raise ReviewAborted(f"{self.command} cancelled")
            left = end - time.monotonic()
            if left <= 0:
                self._stop(proc)
                raise InvocationError(f"{self.command} timed out after {timeout}s", error_class="timeout")
            try:
                return proc.communicate(timeout=min(CANCEL_POLL_SECONDS, left))
            except subprocess.TimeoutExpired:
                continue

    def invoke(
        self,
        prompt: str,
        *,
        timeout_seconds: float | None = None,
        cancel: threading.Event | None = None,
    ) -> bytes:
        _raise_if_cancelled(cancel, self.command)
        spawn = self.spawn or subprocess.Popen
        timeout = timeout_seconds if timeout_seconds is not None else self.timeout_seconds
        try:
            proc = spawn(
                self.build_command(prompt),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                env=self.build_env(),
            )
        except OSError as exc:
            raise InvocationError(f"unable to run {self.command}: {exc}", error_class="not_found") from exc

        out, err = self._communicate(proc, timeout, cancel)
        stdout = _decode(out)
        stderr = _decode(err)
        if proc.returncode != 0:
            error_class = classify_invocation_error(stdout=stdout, stderr=stderr, exit_code=proc.returncode)
            detail = redact_secrets(f"{stderr.strip()} {stdout.strip()}".strip())[:2000]
            raise InvocationError(
                f"{self.command} exited {proc.returncode}: {detail}",
                error_class=error_class,
            )
        return _apply(self.post_processors, stdout)


def _default_opener(req: request.Request, timeout_seconds: float) -> object:
    return request.urlopen(req, timeout=timeout_seconds)


@dataclass
class ClaudeReviewer:
    """Calls the Anthropic Messages API and returns the first text block."""

    api_key: str = field(repr=False)
    model: str = DEFAULT_CLAUDE_MODEL
    max_tokens: int = DEFAULT_CLAUDE_MAX_TOKENS
    url: str = DEFAULT_CLAUDE_API_URL
    timeout_seconds: float = DEFAULT_INVOKE_TIMEOUT_SECONDS
    opener: ReviewerHttpOpen | None = None
    post_processors: list[PostProcessor] = field(default_factory=lambda: [strip_yaml_markers])

    def add_post_processor(self, post_process: PostProcessor) -> None:
        self.post_processors.append(post_process)

    def build_request(self, prompt: str) -> request.Request:
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        return request.Request(
            self.url,
            data=json.dumps(payload).encode(),
            method="POST",
            headers={
                "Content-Type": "application/json",
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_API_VERSION,
            },
        )

    def _post(self, req: request.Request, timeout: float) -> tuple[int, str]:
        open_url = self.opener or _default_opener
        try:
            with open_url(req, timeout) as response:
                return int(getattr(response, "status", 200)), _decode(response.read())
        except error.HTTPError as exc:
            body = _decode(exc.read())
            error_class = classify_invocation_error(stdout=body, stderr=f"http {exc.code}", exit_code=1)
            raise InvocationError(
                f"request failed with status {exc.code}: {redact_secrets(body)[:2000]}",
                error_class=error_class,
            ) from exc
        except error.URLError as exc:
            raise InvocationError(f"failed to make request: {exc.reason}", error_class="network") from exc
        except TimeoutError as exc:
            raise InvocationError(f"request timed out after {timeout}s", error_class="timeout") from exc
        except OSError as exc:
            raise InvocationError(f"failed to read response: {exc}", error_class="network") from exc

    def _post_until_cancelled(
        self,
        req: request.Request,
        timeout: float,
        cancel: threading.Event,
    ) -> tuple[int, str]:
        """Run the request on a worker thread so a cancel event is seen while it is in flight.

        An abandoned request still ends within its own timeout.
        """
        outcome: dict[str, object] = {}

        def worker() -> None:
            try:
                outcome["result"] = self._post(req, timeout)
            except Exception as exc:  # re-raised on the calling thread
                outcome["error"] = exc

        thread = threading.Thread(target=worker, name="claude-request", daemon=True)
        thread.start()
        while thread.is_alive() and not cancel.is_set():
            thread.join(CANCEL_POLL_SECONDS)
        _raise_if_cancelled(cancel, "claude request")
        if "error" in outcome:
            raise outcome["error"]
        return outcome["result"]

    def invoke(
        self,
        prompt: str,
        *,
        timeout_seconds: float | None = None,
        cancel: threading.Event | None = None,
    ) -> bytes:
        cancel = cancel or threading.Event()
        _raise_if_cancelled(cancel, "claude request")
        timeout = timeout_seconds if timeout_seconds is not None else self.timeout_seconds
        status, body = self._post_until_cancelled(self.build_request(prompt), timeout, cancel)

        if status != 200:
            error_class = classify_invocation_error(stdout=body, stderr=f"http {status}", exit_code=1)
            raise InvocationError(f"request failed with status {status}", error_class=error_class)

        try:
            decoded = json.loads(body)
        except json.JSONDecodeError as exc:
            raise InvocationError(f"failed to decode response body: {exc}") from exc

        content = decoded.get("content") if isinstance(decoded, dict) else None
        if not isinstance(content, list) or not content:
            raise InvocationError("no content in response")
        first = content[0]
        text = first.get("text") if isinstance(first, dict) else None
        if not isinstance(text, str):
            raise InvocationError("first content block has no text")
        return _apply(self.post_processors, text)


def build_reviewer(
    backend: str,
    *,
    api_key: str,
    timeout_seconds: float = DEFAULT_INVOKE_TIMEOUT_SECONDS,
    claude_model: str = DEFAULT_CLAUDE_MODEL,
) -> Reviewer:
    if backend not in REVIEWER_BACKENDS:
        raise ConfigurationError(f"unknown provider: {backend}")
    if not api_key:
        raise ConfigurationError(f"missing API key for provider {backend} ({API_KEY_ENV_VARS[backend]})")
    if backend == GEMINI_CLI:
        return GeminiCliReviewer(api_key=api_key, timeout_seconds=timeout_seconds)
    return ClaudeReviewer(api_key=api_key, model=claude_model, timeout_seconds=timeout_seconds)
