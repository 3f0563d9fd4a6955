"""
Review Action Main - PR Prompt Review

PURPOSE:
    Entry point of the GitHub Action. Wires the stages together:

      1. Load the ActionConfig from the environment
      2. Acquire the patch and apply the size gate
      3. Fan the patch out to every prompt and post the results
      4. Report the total token usage (always, exactly once)

EXIT STATUS:
    0  the prompts ran (individual prompt failures are reported on the PR)
    1  configuration error
    2  no patch could be acquired
    3  the patch exceeds MAX_PATCH_SIZE

    Fatal errors leave one best-effort comment on the pull request before the
    process exits.
"""

import logging
import os
import sys
from typing import Mapping, Optional

import requests

from .review_errors import ConfigurationError, ReviewActionError
from .stage_1_load_action_config import ActionConfig, parse_pr_number
from .stage_2_acquire_patch import acquire_patch, check_patch_size
from .stage_4_completion_request import create_completion_provider
from .stage_5_fan_out_prompts import PromptOrchestrator
from .stage_6_post_comment_and_review import GitHubAPI, format_error_comment
from .usage_accumulator import UsageAccumulator


logger = logging.getLogger(__name__)


def main(environ: Optional[Mapping[str, str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    usage = UsageAccumulator()
    try:
        return run(usage, environ)
    finally:
        logger.info("Used %d tokens", usage.total())


def run(usage: UsageAccumulator, environ: Optional[Mapping[str, str]] = None) -> int:
    try:
        config = ActionConfig.from_env(environ)
    except ConfigurationError as e:
        logger.error("unable to load configuration: %s", e)
        _post_config_error(e, os.environ if environ is None else environ)
        return e.exit_code

    if config.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    github = GitHubAPI(
        config.repo_owner, config.repo_name, config.github_token, config.request_timeout
    )

    try:
        patch = acquire_patch(
            config.workspace_patch_path,
            config.base_ref,
            config.head_ref,
            cwd=config.workspace_dir,
        )
        check_patch_size(patch, config.max_patch_size)
    except ReviewActionError as e:
        logger.error("unable to get patch: %s", e)
        _post_best_effort(github, config.pr_number, format_error_comment(f"unable to get patch: {e}"))
        return e.exit_code

    logger.info("Reviewing a %d byte patch with %d prompts", len(patch), len(config.prompts))

    orchestrator = PromptOrchestrator(
        pr_number=config.pr_number,
        provider=create_completion_provider(config),
        github=github,
        usage=usage,
    )
    orchestrator.run(patch, config.prompts)
    return 0


def _post_config_error(error: ConfigurationError, environ: Mapping[str, str]) -> None:
    token = environ.get("GITHUB_TOKEN", "")
    parts = environ.get("GITHUB_REPOSITORY", "").split("/")
    if not token or len(parts) != 2 or not all(parts):
        logger.warning("not enough configuration to report the error on the pull request")
        return
    try:
        pr_number = parse_pr_number(environ.get("GITHUB_REF", ""))
    except ConfigurationError:
        logger.warning("not enough configuration to report the error on the pull request")
        return

    _post_best_effort(
        GitHubAPI(parts[0], parts[1], token),
        pr_number,
        format_error_comment(f"unable to load configuration: {error}"),
    )


def _post_best_effort(github: GitHubAPI, pr_number: int, comment: str) -> None:
    try:
        github.post_comment(pr_number, comment)
    except requests.RequestException as e:
        logger.error("unable to post comment: %s", e)


if __name__ == "__main__":
    sys.exit(main())
