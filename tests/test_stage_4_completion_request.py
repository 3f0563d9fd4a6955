"""Tests for the completion providers."""

import sys
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import requests

from _review_action.stage_1_load_action_config import ActionConfig
from _review_action.stage_4_completion_request import (
    CompletionProviderError,
    CompletionResponse,
    GeminiCompletionProvider,
    OpenAICompletionProvider,
    create_completion_provider,
)


def _http_response(status_code=200, json_data=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    if isinstance(json_data, Exception):
        response.json.side_effect = json_data
    else:
        response.json.return_value = json_data
    return response


@pytest.fixture
def provider():
    return OpenAICompletionProvider(
        api_key="test-key",
        model="gpt-3.5-turbo",
        base_url="https://api.openai.com/v1/",
        timeout=5,
    )


def test_openai_request_shape(provider):
    data = {
        "choices": [{"message": {"role": "assistant", "content": "Looks good"}}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
    }
    with patch("requests.post", return_value=_http_response(200, data)) as mock_post:
        result = provider.complete("Review this")

    mock_post.assert_called_once()
    args, kwargs = mock_post.call_args
    assert args[0] == "https://api.openai.com/v1/chat/completions"
    assert kwargs["headers"]["Authorization"] == "Bearer test-key"
    assert kwargs["json"] == {
        "model": "gpt-3.5-turbo",
        "messages": [{"role": "user", "content": "Review this"}],
    }
    assert kwargs["timeout"] == 5

    assert result.content == "Looks good"
    assert result.token_usage == 15
    assert result.raw == data


def test_openai_empty_choices(provider):
    data = {"choices": [], "usage": {"total_tokens": 3}}
    with patch("requests.post", return_value=_http_response(200, data)):
        result = provider.complete("Review this")

    assert result.choices == []
    assert result.content == ""
    assert result.token_usage == 3


def test_openai_null_content_is_empty(provider):
    data = {"choices": [{"message": {"content": None}}]}
    with patch("requests.post", return_value=_http_response(200, data)):
        result = provider.complete("Review this")

    assert result.choices == [""]
    assert result.token_usage == 0


def test_openai_http_error_status(provider):
    response = _http_response(429, {"error": {"message": "rate limited"}}, text="rate limited")
    with (
        patch("requests.post", return_value=response),
        pytest.raises(CompletionProviderError, match="429"),
    ):
        provider.complete("Review this")


def test_openai_http_error_keeps_reported_usage(provider):
    response = _http_response(
        400,
        {"error": {"message": "context too long"}, "usage": {"total_tokens": 13}},
        text="context too long",
    )
    with (
        patch("requests.post", return_value=response),
        pytest.raises(CompletionProviderError) as excinfo,
    ):
        provider.complete("Review this")

    assert excinfo.value.token_usage == 13


def test_openai_http_error_without_json_has_no_usage(provider):
    response = _http_response(502, ValueError("not json"), text="<html>bad gateway</html>")
    with (
        patch("requests.post", return_value=response),
        pytest.raises(CompletionProviderError) as excinfo,
    ):
        provider.complete("Review this")

    assert excinfo.value.token_usage == 0


def test_openai_transport_error(provider):
    with (
        patch("requests.post", side_effect=requests.ConnectionError("refused")),
        pytest.raises(CompletionProviderError, match="refused"),
    ):
        provider.complete("Review this")


def test_openai_invalid_json(provider):
    response = _http_response(200, ValueError("bad json"))
    with (
        patch("requests.post", return_value=response),
        pytest.raises(CompletionProviderError, match="unmarshalling"),
    ):
        provider.complete("Review this")


def test_completion_response_content_defaults():
    assert CompletionResponse().content == ""
    assert CompletionResponse(choices=["a", "b"]).content == "a"


def test_gemini_provider_extracts_text_and_usage():
    response = MagicMock()
    response.text = "Gemini says hi"
    response.usage_metadata = SimpleNamespace(total_token_count=21)
    response.model_dump.return_value = {"text": "Gemini says hi"}

    client = MagicMock()
    client.models.generate_content.return_value = response
    genai = MagicMock()
    genai.Client.return_value = client
    google = MagicMock()
    google.genai = genai

    with patch.dict(
        sys.modules,
        {"google": google, "google.genai": genai, "google.genai.types": genai.types},
    ):
        provider = GeminiCompletionProvider(api_key="g-key", model="gemini-test", timeout=2)
        result = provider.complete("Review this")

    client.models.generate_content.assert_called_once_with(
        model="gemini-test", contents="Review this"
    )
    assert result.content == "Gemini says hi"
    assert result.token_usage == 21


def test_gemini_provider_wraps_errors():
    client = MagicMock()
    client.models.generate_content.side_effect = RuntimeError("quota exceeded")
    genai = MagicMock()
    genai.Client.return_value = client
    google = MagicMock()
    google.genai = genai

    with (
        patch.dict(
            sys.modules,
            {"google": google, "google.genai": genai, "google.genai.types": genai.types},
        ),
        pytest.raises(CompletionProviderError, match="quota exceeded"),
    ):
        GeminiCompletionProvider(api_key="g-key", model="gemini-test").complete("x")


def test_gemini_client_construction_errors_are_wrapped():
    genai = MagicMock()
    genai.Client.side_effect = ValueError("invalid api key")
    google = MagicMock()
    google.genai = genai

    with (
        patch.dict(
            sys.modules,
            {"google": google, "google.genai": genai, "google.genai.types": genai.types},
        ),
        pytest.raises(CompletionProviderError, match="invalid api key"),
    ):
        GeminiCompletionProvider(api_key="bad", model="gemini-test").complete("x")


def test_create_completion_provider_selects_provider():
    base = {
        "GITHUB_TOKEN": "gh",
        "OPENAI_TOKEN": "oa",
        "GEMINI_API_KEY": "gm",
        "GITHUB_REPOSITORY": "octo/widgets",
        "GITHUB_REF": "refs/pull/1/merge",
    }

    openai_provider = create_completion_provider(ActionConfig.from_env(base))
    gemini_provider = create_completion_provider(
        ActionConfig.from_env({**base, "COMPLETION_PROVIDER": "gemini"})
    )

    assert isinstance(openai_provider, OpenAICompletionProvider)
    assert openai_provider.api_key == "oa"
    assert isinstance(gemini_provider, GeminiCompletionProvider)
    assert gemini_provider.api_key == "gm"
