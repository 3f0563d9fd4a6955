"""
Stage 6: Post Comment & Review - PR Prompt Review

PURPOSE:
    Write results back to the pull request. Two output pipelines exist:

    COMMENT:
      1. Post the completion as an issue comment headed "## <prompt name>"

    REVIEW:
      1. Parse the completion as a JSON array of inline review comments
      2. Create a pending pull-request review carrying all of them
      3. Submit that review with the REQUEST_CHANGES event

    Failures of this stage are raised to the caller with the HTTP response
    body attached when GitHub returned one. Nothing is retried.

CALLED BY:
    stage_5_fan_out_prompts.py - from each prompt task.
    review_action_main.py - for the single diagnostic comment on fatal errors.

DEPENDS ON:
    - GitHub REST API (via requests library)
    - The GITHUB_TOKEN provided by GitHub Actions (issues:write,
      pull-requests:write)
"""

import json
from dataclasses import dataclass
from typing import List, Optional

import requests


REVIEW_SIDES = ("LEFT", "RIGHT")


@dataclass(frozen=True)
class ReviewComment:
    """One inline comment of a pull-request review."""

    path: str
    body: str
    line: int
    side: str = "RIGHT"
    start_side: Optional[str] = None
    start_line: Optional[int] = None

    def to_payload(self) -> dict:
        payload = {
            "path": self.path,
            "body": self.body,
            "line": self.line,
            "side": self.side,
        }
        if self.start_line is not None:
            payload["start_line"] = self.start_line
            payload["start_side"] = self.start_side or self.side
        return payload


# ---------------------------------------------------------------------------
# GITHUB API HELPER CLASS
# ---------------------------------------------------------------------------


class GitHubAPI:
    """
    Thin wrapper around GitHub REST API for the operations we need.

    Every method opens its own request; instances are shared between prompt
    threads.
    """

    def __init__(self, owner: str, repo: str, token: str, timeout: float = 30):
        self.owner = owner
        self.repo = repo
        self.timeout = timeout
        self.base_url = f"https://api.github.com/repos/{owner}/{repo}"
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def post_comment(self, pr_number: int, body: str):
        """Post a comment on the pull request's conversation."""
        url = f"{self.base_url}/issues/{pr_number}/comments"
        resp = requests.post(url, headers=self.headers, json={"body": body}, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def create_review(self, pr_number: int, body: str, comments: List[ReviewComment]) -> int:
        """Create a pending review with inline comments. Returns the review ID."""
        url = f"{self.base_url}/pulls/{pr_number}/reviews"
        data = {
            "body": body,
            "comments": [c.to_payload() for c in comments],
        }
        resp = requests.post(url, headers=self.headers, json=data, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()["id"]

    def submit_review(
        self, pr_number: int, review_id: int, body: str, event: str = "REQUEST_CHANGES"
    ):
        """Submit a pending review."""
        url = f"{self.base_url}/pulls/{pr_number}/reviews/{review_id}/events"
        data = {"event": event, "body": body}
        resp = requests.post(url, headers=self.headers, json=data, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()


# ---------------------------------------------------------------------------
# REVIEW PARSING
# ---------------------------------------------------------------------------


def parse_review_comments(raw_text: str) -> List[ReviewComment]:
    """
    Parse a completion into ReviewComments.

    The text must be a JSON array, optionally wrapped in Markdown code
    fences. Any malformed element rejects the whole array.

    Raises:
        ValueError: when the text is not a well-formed array of comments
    """
    text = raw_text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        if lines[-1].strip() == "```":
            text = "\n".join(lines[1:-1]).strip()

    items = json.loads(text)
    if not isinstance(items, list):
        raise ValueError(f"expected a JSON array, got {type(items).__name__}")

    return [_parse_review_comment(i, item) for i, item in enumerate(items)]


def response_body(error: Exception) -> Optional[str]:
    """Return the HTTP response body attached to a requests error, if any."""
    response = getattr(error, "response", None)
    if response is None:
        return None
    return response.text


# ---------------------------------------------------------------------------
# COMMENT FORMATTING
# ---------------------------------------------------------------------------


def format_prompt_comment(prompt_name: str, content: str) -> str:
    return f"## {prompt_name}\n{content}"


def format_review_body(prompt_name: str) -> str:
    return f"## {prompt_name}"


def format_error_comment(summary: str, detail: Optional[str] = None) -> str:
    """Format an error comment when a stage of the pipeline fails."""
    comment = f"{summary}\n"
    if detail:
        comment += f"\n```\n{detail}\n```\n"
    return comment


# ---------------------------------------------------------------------------
# PRIVATE HELPER FUNCTIONS
# ---------------------------------------------------------------------------


def _parse_review_comment(index: int, item) -> ReviewComment:
    if not isinstance(item, dict):
        raise ValueError(f"comment {index} is not an object")

    path = item.get("path")
    body = item.get("body")
    if not isinstance(path, str) or not path:
        raise ValueError(f"comment {index} has no path")
    if not isinstance(body, str) or not body:
        raise ValueError(f"comment {index} has no body")

    line = _as_line(index, "line", item.get("line"))
    if line is None:
        raise ValueError(f"comment {index} has no line")
    start_line = _as_line(index, "start_line", item.get("start_line"))

    side = _as_side(index, "side", item.get("side")) or "RIGHT"
    start_side = _as_side(index, "start_side", item.get("start_side"))

    return ReviewComment(
        path=path,
        body=body,
        line=line,
        side=side,
        start_side=start_side,
        start_line=start_line,
    )


def _as_line(index: int, key: str, value) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"comment {index} has an invalid {key}: {value!r}")
    return value


def _as_side(index: int, key: str, value) -> Optional[str]:
    if value is None or value == "":
        return None
    if not isinstance(value, str) or value.upper() not in REVIEW_SIDES:
        raise ValueError(f"comment {index} has an invalid {key}: {value!r}")
    return value.upper()
