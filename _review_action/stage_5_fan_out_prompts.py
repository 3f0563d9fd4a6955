"""
Stage 5: Fan Out Prompts - PR Prompt Review

PURPOSE:
    Run every configured prompt against the patch at the same time and route
    each result to its output pipeline:

      1. Render the prompt template with the patch
      2. Ask the completion provider (Stage 4)
      3. COMMENT kind -> post "## <name>\\n<content>"
         REVIEW kind  -> parse inline comments, create + submit a review
      4. On any failure, post a comment describing it (best effort), including
         when the result comment itself was rejected

    One thread per prompt. run() returns only after every task has finished,
    successfully or not. A failing task never cancels or blocks its siblings,
    and nothing is retried.

CALLED BY:
    review_action_main.py - after the patch passed the size gate.

SHARED STATE:
    The patch and the prompt table are read-only. The UsageAccumulator is the
    only object written by several threads; it locks internally.
"""

import concurrent.futures
import logging
from typing import Dict, List, Optional

import requests

from .review_errors import (
    CompletionFailure,
    EmptyResponse,
    PromptTaskError,
    ReviewCreateFailure,
    ReviewParseFailure,
    ReviewSubmitFailure,
)
from .stage_3_prompt_table import PromptKind, PromptSpec
from .stage_4_completion_request import (
    CompletionProvider,
    CompletionProviderError,
    describe_raw,
)
from .stage_6_post_comment_and_review import (
    GitHubAPI,
    format_error_comment,
    format_prompt_comment,
    format_review_body,
    parse_review_comments,
    response_body,
)
from .usage_accumulator import UsageAccumulator


logger = logging.getLogger(__name__)


class PromptOrchestrator:
    """Fan the patch out to every prompt and fan the results back in."""

    def __init__(
        self,
        pr_number: int,
        provider: CompletionProvider,
        github: GitHubAPI,
        usage: UsageAccumulator,
    ):
        self.pr_number = pr_number
        self.provider = provider
        self.github = github
        self.usage = usage

    def run(self, patch: bytes, specs: List[PromptSpec]) -> Dict[str, dict]:
        """
        Dispatch one task per spec and wait for all of them.

        Returns:
            dict mapping each prompt name to its outcome:
                - 'success' (bool)
                - 'action_taken' (str): 'comment', 'review' or 'error'
                - 'error' (str or None)
        """
        if not specs:
            return {}

        logger.info("Running %d prompts in parallel", len(specs))
        results: Dict[str, dict] = {}

        with concurrent.futures.ThreadPoolExecutor(max_workers=len(specs)) as executor:
            future_to_spec = {
                executor.submit(self.run_prompt, patch, spec): spec for spec in specs
            }

            for future in concurrent.futures.as_completed(future_to_spec):
                spec = future_to_spec[future]
                try:
                    results[spec.name] = future.result()
                except Exception as e:
                    logger.exception("Unexpected failure in prompt %r", spec.name)
                    results[spec.name] = _outcome("error", e)

        successful = sum(1 for r in results.values() if r["success"])
        logger.info("Completed %d/%d prompts successfully", successful, len(specs))
        return results

    def run_prompt(self, patch: bytes, spec: PromptSpec) -> dict:
        """Execute one prompt end to end. Per-task failures are reported here."""
        try:
            content = self._complete(patch, spec)
            if spec.kind is PromptKind.REVIEW:
                self._create_and_submit_review(spec, content)
                return _outcome("review")
            self.github.post_comment(self.pr_number, format_prompt_comment(spec.name, content))
            return _outcome("comment")
        except PromptTaskError as e:
            self._report_failure(spec, e)
            return _outcome("error", e)
        except requests.RequestException as e:
            body = response_body(e)
            logger.error("unable to post comment for %r: %s\nBody: %s", spec.name, e, body)
            self._post_failure(
                spec, format_error_comment(f"unable to post comment for {spec.name!r}: {e}", body)
            )
            return _outcome("error", e)
        except Exception as e:
            logger.exception("Unexpected failure in prompt %r", spec.name)
            self._post_failure(spec, format_error_comment(f"{spec.name}: {e!r}"))
            return _outcome("error", e)

    # -----------------------------------------------------------------------
    # PRIVATE HELPERS
    # -----------------------------------------------------------------------

    def _complete(self, patch: bytes, spec: PromptSpec) -> str:
        prompt = spec.render(patch)
        logger.debug("Prompting %r: %s", spec.name, prompt)

        try:
            response = self.provider.complete(prompt)
        except CompletionProviderError as e:
            self.usage.add(e.token_usage)
            raise CompletionFailure(spec.name, e) from e

        self.usage.add(response.token_usage)

        if not response.content:
            raise EmptyResponse(spec.name, response.raw)

        logger.debug("Prompt response for %r: %s", spec.name, response.content)
        return response.content

    def _create_and_submit_review(self, spec: PromptSpec, content: str) -> None:
        try:
            comments = parse_review_comments(content)
        except ValueError as e:
            raise ReviewParseFailure(spec.name, e, content) from e

        body = format_review_body(spec.name)

        try:
            review_id = self.github.create_review(self.pr_number, body, comments)
        except requests.RequestException as e:
            raise ReviewCreateFailure(e, response_body(e)) from e

        try:
            self.github.submit_review(self.pr_number, review_id, body, "REQUEST_CHANGES")
        except requests.RequestException as e:
            raise ReviewSubmitFailure(e, response_body(e)) from e

        logger.info(
            "Review %s for %r submitted with %d comments", review_id, spec.name, len(comments)
        )

    def _report_failure(self, spec: PromptSpec, error: PromptTaskError) -> None:
        if isinstance(error, ReviewParseFailure):
            logger.error("%s\nRaw text:\n%s", error, error.raw_text)
            comment = format_prompt_comment(
                spec.name,
                f"Unable to parse the inline review comments ({error.cause}). "
                f"Raw response:\n\n{error.raw_text}",
            )
        elif isinstance(error, (ReviewCreateFailure, ReviewSubmitFailure)):
            logger.error("%s\nBody: %s", error, error.response_body)
            comment = format_error_comment(f"{spec.name}: {error}", error.response_body)
        elif isinstance(error, EmptyResponse):
            logger.error("%s", error)
            comment = format_error_comment(
                f"no or empty response from the completion provider for {spec.name!r}",
                describe_raw(error.raw),
            )
        else:
            logger.error("%s", error)
            comment = format_error_comment(str(error))

        self._post_failure(spec, comment)

    def _post_failure(self, spec: PromptSpec, comment: str) -> None:
        try:
            self.github.post_comment(self.pr_number, comment)
        except requests.RequestException as e:
            logger.error("unable to post failure comment for %r: %s", spec.name, e)


def _outcome(action_taken: str, error: Optional[Exception] = None) -> dict:
    return {
        "success": error is None,
        "action_taken": action_taken,
        "error": str(error) if error is not None else None,
    }
