"""
Stage 1: Load Action Config - PR Prompt Review

PURPOSE:
    Read everything the pipeline needs from the environment of the GitHub
    Actions runner into one immutable ActionConfig. Nothing downstream reads
    os.environ; the config object is passed into each stage.

    A .env file in the working directory is honored (python-dotenv) so the
    action can be exercised locally with the same variables.

CALLED BY:
    review_action_main.py - first thing after logging is set up.

RAISES:
    ConfigurationError for missing tokens, a malformed GITHUB_REPOSITORY,
    a GITHUB_REF that does not name a pull request, a non-numeric limit, an
    unknown provider, or an invalid PROMPTS override.
"""

import math
import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from dotenv import load_dotenv

from .review_errors import ConfigurationError
from .stage_3_prompt_table import PromptSpec, load_prompt_table


OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODELS = {
    "openai": "gpt-3.5-turbo",
    "gemini": "gemini-2.5-flash-lite",
}
DEFAULT_PATCH_FILE = "patch"
DEFAULT_REQUEST_TIMEOUT = 120.0


@dataclass(frozen=True)
class ActionConfig:
    """Configuration for one run of the review action"""

    github_token: str
    repo_owner: str
    repo_name: str
    ref: str
    pr_number: int

    # Completion provider
    provider: str = "openai"
    model: str = DEFAULT_MODELS["openai"]
    openai_token: str = ""
    openai_base_url: str = OPENAI_BASE_URL
    gemini_api_key: str = ""

    # Patch acquisition
    base_ref: str = ""
    head_ref: str = ""
    workspace_dir: str = "."
    patch_file_name: str = DEFAULT_PATCH_FILE
    max_patch_size: Optional[int] = None

    prompts: List[PromptSpec] = field(default_factory=load_prompt_table)
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    debug: bool = False

    @property
    def workspace_patch_path(self) -> str:
        return os.path.join(self.workspace_dir, self.patch_file_name)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None):
        """Load configuration from environment variables"""
        if environ is None:
            load_dotenv()
            environ = os.environ

        github_token = environ.get("GITHUB_TOKEN", "")
        provider = environ.get("COMPLETION_PROVIDER", "openai").strip().lower() or "openai"
        if provider not in DEFAULT_MODELS:
            raise ConfigurationError(
                f"unknown COMPLETION_PROVIDER {provider!r}, use 'openai' or 'gemini'"
            )

        openai_token = environ.get("OPENAI_TOKEN", "")
        gemini_api_key = environ.get("GEMINI_API_KEY", "")
        provider_token = openai_token if provider == "openai" else gemini_api_key
        if not github_token or not provider_token:
            provider_var = "OPENAI_TOKEN" if provider == "openai" else "GEMINI_API_KEY"
            raise ConfigurationError(
                f"you need to set both GITHUB_TOKEN and {provider_var}"
            )

        repository = environ.get("GITHUB_REPOSITORY", "")
        parts = repository.split("/")
        if len(parts) != 2 or not all(parts):
            raise ConfigurationError(
                f"GITHUB_REPOSITORY was in wrong format: {repository!r}"
            )

        ref = environ.get("GITHUB_REF", "")

        return cls(
            github_token=github_token,
            repo_owner=parts[0],
            repo_name=parts[1],
            ref=ref,
            pr_number=parse_pr_number(ref),
            provider=provider,
            model=environ.get("MODEL") or DEFAULT_MODELS[provider],
            openai_token=openai_token,
            openai_base_url=environ.get("OPENAI_BASE_URL") or OPENAI_BASE_URL,
            gemini_api_key=gemini_api_key,
            base_ref=environ.get("GITHUB_BASE_REF", ""),
            head_ref=environ.get("GITHUB_HEAD_REF", ""),
            workspace_dir=environ.get("GITHUB_WORKSPACE") or ".",
            patch_file_name=environ.get("PATCH_FILE") or DEFAULT_PATCH_FILE,
            max_patch_size=_parse_max_patch_size(environ.get("MAX_PATCH_SIZE", "")),
            prompts=load_prompt_table(environ.get("PROMPTS", "")),
            request_timeout=_parse_timeout(environ.get("REQUEST_TIMEOUT", "")),
            debug=environ.get("DEBUG", "") != "",
        )


def parse_pr_number(ref: str) -> int:
    """Extract the PR number from a ref such as refs/pull/123/merge."""
    parts = ref.split("/")
    if len(parts) < 3:
        raise ConfigurationError(f"unable to extract PR number from ref {ref!r}")
    try:
        return int(parts[2])
    except ValueError as e:
        raise ConfigurationError(
            f"unable to extract PR number from ref {ref!r}"
        ) from e


def _parse_max_patch_size(value: str) -> Optional[int]:
    value = value.strip()
    if not value:
        return None
    try:
        limit = int(value)
    except ValueError as e:
        raise ConfigurationError(f"MAX_PATCH_SIZE must be an integer: {value!r}") from e
    if limit < 0:
        raise ConfigurationError(f"MAX_PATCH_SIZE must not be negative: {limit}")
    # 0 disables the gate
    return limit or None


def _parse_timeout(value: str) -> float:
    value = value.strip()
    if not value:
        return DEFAULT_REQUEST_TIMEOUT
    try:
        timeout = float(value)
    except ValueError as e:
        raise ConfigurationError(f"REQUEST_TIMEOUT must be a number: {value!r}") from e
    if not math.isfinite(timeout) or timeout <= 0:
        raise ConfigurationError(f"REQUEST_TIMEOUT must be a positive number: {value!r}")
    return timeout
