"""Tests for the GitHub client and inline review parsing."""

import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from _review_action.stage_6_post_comment_and_review import (
    GitHubAPI,
    ReviewComment,
    format_error_comment,
    format_prompt_comment,
    parse_review_comments,
    response_body,
)


def _ok_response(json_data):
    response = MagicMock()
    response.json.return_value = json_data
    response.raise_for_status.return_value = None
    return response


@pytest.fixture
def github():
    return GitHubAPI("octo", "widgets", "test-token", timeout=10)


def test_post_comment(github):
    with patch("requests.post", return_value=_ok_response({"id": 1})) as mock_post:
        github.post_comment(42, "Test comment body")

    args, kwargs = mock_post.call_args
    assert args[0] == "https://api.github.com/repos/octo/widgets/issues/42/comments"
    assert kwargs["headers"]["Authorization"] == "Bearer test-token"
    assert kwargs["json"] == {"body": "Test comment body"}
    assert kwargs["timeout"] == 10


def test_create_review_returns_id(github):
    comments = [
        ReviewComment(path="a.py", body="rename", line=3),
        ReviewComment(path="b.py", body="split", line=9, start_line=5, start_side="RIGHT"),
    ]
    with patch("requests.post", return_value=_ok_response({"id": 77})) as mock_post:
        review_id = github.create_review(42, "## Code review", comments)

    assert review_id == 77
    args, kwargs = mock_post.call_args
    assert args[0] == "https://api.github.com/repos/octo/widgets/pulls/42/reviews"
    assert "event" not in kwargs["json"]
    assert kwargs["json"]["body"] == "## Code review"
    assert kwargs["json"]["comments"] == [
        {"path": "a.py", "body": "rename", "line": 3, "side": "RIGHT"},
        {
            "path": "b.py",
            "body": "split",
            "line": 9,
            "side": "RIGHT",
            "start_line": 5,
            "start_side": "RIGHT",
        },
    ]


def test_submit_review_requests_changes(github):
    with patch("requests.post", return_value=_ok_response({"state": "CHANGES_REQUESTED"})) as mock_post:
        github.submit_review(42, 77, "## Code review")

    args, kwargs = mock_post.call_args
    assert args[0] == "https://api.github.com/repos/octo/widgets/pulls/42/reviews/77/events"
    assert kwargs["json"] == {"event": "REQUEST_CHANGES", "body": "## Code review"}


def test_http_error_propagates_with_body(github):
    error_response = MagicMock()
    error_response.text = '{"message": "Validation Failed"}'
    http_error = requests.HTTPError("422 Client Error", response=error_response)
    response = MagicMock()
    response.raise_for_status.side_effect = http_error

    with patch("requests.post", return_value=response), pytest.raises(requests.HTTPError) as exc_info:
        github.create_review(42, "## Code review", [])

    assert response_body(exc_info.value) == '{"message": "Validation Failed"}'


def test_response_body_without_response():
    assert response_body(requests.ConnectionError("down")) is None


def test_parse_two_comments():
    text = json.dumps(
        [
            {"path": "a.py", "body": "rename", "side": "RIGHT", "line": 3},
            {
                "path": "b.py",
                "body": "split",
                "side": "left",
                "start_side": "LEFT",
                "line": 9,
                "start_line": 5,
            },
        ]
    )

    comments = parse_review_comments(text)

    assert comments == [
        ReviewComment(path="a.py", body="rename", line=3),
        ReviewComment(
            path="b.py", body="split", line=9, side="LEFT", start_side="LEFT", start_line=5
        ),
    ]


def test_parse_strips_code_fences():
    text = '```json\n[{"path": "a.py", "body": "x", "line": 1}]\n```'

    assert parse_review_comments(text) == [ReviewComment(path="a.py", body="x", line=1)]


def test_parse_empty_array():
    assert parse_review_comments("[]") == []


@pytest.mark.parametrize(
    "text",
    [
        "this is not json",
        '{"path": "a.py", "body": "x", "line": 1}',
        '[{"path": "a.py", "body": "x", "line": 1}, "oops"]',
        '[{"body": "x", "line": 1}]',
        '[{"path": "a.py", "line": 1}]',
        '[{"path": "a.py", "body": "x"}]',
        '[{"path": "a.py", "body": "x", "line": "1"}]',
        '[{"path": "a.py", "body": "x", "line": 0}]',
        '[{"path": "a.py", "body": "x", "line": 1, "side": "MIDDLE"}]',
    ],
)
def test_parse_malformed_array_raises(text):
    with pytest.raises(ValueError):
        parse_review_comments(text)


def test_format_prompt_comment():
    assert format_prompt_comment("Unit tests", "X") == "## Unit tests\nX"


def test_format_error_comment_with_detail():
    comment = format_error_comment("it broke", "details here")

    assert comment.startswith("it broke\n")
    assert "```\ndetails here\n```" in comment
