"""Error taxonomy for the review loop.

Fetch, diff-parse and configuration errors are fatal and surface to the
caller. Invocation and output-parse errors are absorbed by the retry loop;
only their cumulative effect surfaces as NoValidOutputError.
"""

from __future__ import annotations


class ReviewLoopError(RuntimeError):
    """Base class for every error raised by the review loop."""


class FetchError(ReviewLoopError):
    """Diff could not be downloaded (network failure, non-200 status, bad URL)."""


class ConfigurationError(ReviewLoopError):
    """Invalid or unrecognized configuration value."""


class DisallowedURLError(FetchError, ConfigurationError):
    """Diff URL does not start with an allow-listed prefix. Raised before any network call."""


class DiffParseError(ReviewLoopError):
    """Downloaded body is not a usable unified diff."""


class InvocationError(ReviewLoopError):
    """Reviewer backend failed to produce output for a prompt."""

    def __init__(self, message: str, *, error_class: str = "unknown") -> None:
        super().__init__(message)
        self.error_class = error_class


class OutputParseError(ReviewLoopError):
    """Reviewer output is not a complete review payload."""


class NoValidOutputError(ReviewLoopError):
    """Every attempt in the budget failed; nothing usable was produced."""


class ReviewAborted(ReviewLoopError):
    """Run was cancelled from outside before it terminated."""
