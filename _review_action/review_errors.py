"""
Review Action Errors - PR Prompt Review

PURPOSE:
    The exception hierarchy shared by every stage. Errors fall into two
    groups:

    FATAL (abort the run before any completion call is dispatched):
      - ConfigurationError     -> exit status 1
      - PatchAcquisitionError  -> exit status 2
      - PatchTooLargeError     -> exit status 3

    PER-TASK (terminal for one prompt only, never for its siblings):
      - CompletionFailure, EmptyResponse, ReviewParseFailure,
        ReviewCreateFailure, ReviewSubmitFailure

CALLED BY:
    Every stage raises these; review_action_main.py maps the fatal ones to
    exit codes and stage_5_fan_out_prompts.py contains the per-task ones.
"""

from typing import Optional


class ReviewActionError(Exception):
    """Base class for every error raised by the review action."""

    exit_code = 1


# ---------------------------------------------------------------------------
# FATAL ERRORS
# ---------------------------------------------------------------------------


class ConfigurationError(ReviewActionError):
    """A required token, ref or setting is missing or malformed."""

    exit_code = 1


class PatchAcquisitionError(ReviewActionError):
    """Neither the workspace patch nor the git diff produced a patch."""

    exit_code = 2

    def __init__(self, workspace_error: Exception, filesystem_error: Exception):
        self.workspace_error = workspace_error
        self.filesystem_error = filesystem_error
        super().__init__(
            f"workspace: {workspace_error}; filesystem: {filesystem_error}"
        )


class PatchTooLargeError(ReviewActionError):
    """The acquired patch exceeds the configured maximum size."""

    exit_code = 3

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(
            f"patch is {size} bytes, which exceeds the limit of {limit} bytes"
        )


# ---------------------------------------------------------------------------
# PER-TASK ERRORS
# ---------------------------------------------------------------------------


class PromptTaskError(ReviewActionError):
    """Base class for failures contained within a single prompt task."""


class CompletionFailure(PromptTaskError):
    def __init__(self, prompt_name: str, cause: Exception):
        self.prompt_name = prompt_name
        self.cause = cause
        super().__init__(
            f"unable to prompt the completion provider for {prompt_name!r}: {cause}"
        )


class EmptyResponse(PromptTaskError):
    def __init__(self, prompt_name: str, raw: dict):
        self.prompt_name = prompt_name
        self.raw = raw
        super().__init__(
            f"no or empty response from the completion provider for "
            f"{prompt_name!r}: {raw!r}"
        )


class ReviewParseFailure(PromptTaskError):
    def __init__(self, prompt_name: str, cause: Exception, raw_text: str):
        self.prompt_name = prompt_name
        self.cause = cause
        self.raw_text = raw_text
        super().__init__(
            f"unable to parse review comments for {prompt_name!r}: {cause}"
        )


class ReviewCreateFailure(PromptTaskError):
    def __init__(self, cause: Exception, response_body: Optional[str] = None):
        self.cause = cause
        self.response_body = response_body
        super().__init__(f"problem creating code review: {cause}")


class ReviewSubmitFailure(PromptTaskError):
    def __init__(self, cause: Exception, response_body: Optional[str] = None):
        self.cause = cause
        self.response_body = response_body
        super().__init__(f"problem submitting code review: {cause}")
