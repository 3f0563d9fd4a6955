"""
Stage 4: Completion Request - PR Prompt Review

PURPOSE:
    Send one rendered prompt to the completion provider and hand back the
    generated text together with the token usage. This is the only stage that
    costs money.

    Two providers are supported, selected by COMPLETION_PROVIDER:

      openai -> OpenAI chat-completions REST API, called with requests
      gemini -> Gemini through the google-genai SDK

    Both return a CompletionResponse and raise CompletionProviderError on any
    failure. Neither retries; a failed request is terminal for its prompt.

CALLED BY:
    stage_5_fan_out_prompts.py - once per prompt, from a worker thread. The
    providers hold only immutable configuration, so one instance is shared by
    every thread and each call opens its own request.

EXTERNAL APIS USED:
    - POST {OPENAI_BASE_URL}/chat/completions  (bearer OPENAI_TOKEN)
    - Gemini generate_content                  (GEMINI_API_KEY)
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List

import requests


logger = logging.getLogger(__name__)


class CompletionProviderError(RuntimeError):
    """The provider could not produce a completion.

    token_usage holds any usage the provider reported for the failed request.
    """

    def __init__(self, message: str, token_usage: int = 0):
        super().__init__(message)
        self.token_usage = token_usage


@dataclass(frozen=True)
class CompletionResponse:
    choices: List[str] = field(default_factory=list)
    token_usage: int = 0
    raw: dict = field(default_factory=dict)

    @property
    def content(self) -> str:
        """The first choice, or "" when there is none."""
        return self.choices[0] if self.choices else ""


class CompletionProvider(ABC):
    """Interface for all completion providers"""

    @abstractmethod
    def complete(self, prompt: str) -> CompletionResponse:
        """Return the completion for prompt or raise CompletionProviderError."""


class OpenAICompletionProvider(CompletionProvider):
    """Provider for the OpenAI chat-completions endpoint (or a compatible one)"""

    def __init__(self, api_key: str, model: str, base_url: str, timeout: float = 120.0):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def complete(self, prompt: str) -> CompletionResponse:
        url = f"{self.base_url}/chat/completions"
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            resp = requests.post(url, headers=headers, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise CompletionProviderError(f"error doing request: {e}") from e

        if resp.status_code < 200 or resp.status_code > 300:
            raise CompletionProviderError(
                f"error doing request: {resp.status_code}\n{resp.text}",
                token_usage=_usage_from_error_response(resp),
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise CompletionProviderError(f"error unmarshalling data: {e}") from e
        if not isinstance(data, dict):
            raise CompletionProviderError(f"unexpected response: {data!r}")

        return CompletionResponse(
            choices=_extract_choices(data),
            token_usage=_extract_total_tokens(data),
            raw=data,
        )


class GeminiCompletionProvider(CompletionProvider):
    """Provider for Google Gemini"""

    def __init__(self, api_key: str, model: str, timeout: float = 120.0):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    def complete(self, prompt: str) -> CompletionResponse:
        # Imported here so the OpenAI path never loads the SDK.
        from google import genai
        from google.genai import types

        try:
            client = genai.Client(
                api_key=self.api_key,
                http_options=types.HttpOptions(timeout=int(self.timeout * 1000)),
            )
            response = client.models.generate_content(model=self.model, contents=prompt)
        except Exception as e:
            raise CompletionProviderError(f"Gemini API call failed: {e}") from e

        text = response.text or ""
        usage = response.usage_metadata
        total = (usage.total_token_count or 0) if usage else 0

        return CompletionResponse(
            choices=[text] if text else [],
            token_usage=total,
            raw=response.model_dump(mode="json", exclude_none=True),
        )


def create_completion_provider(config) -> CompletionProvider:
    """
    Factory function to create the configured provider

    Args:
        config: ActionConfig with provider, model, tokens and request_timeout
    """
    if config.provider == "openai":
        return OpenAICompletionProvider(
            api_key=config.openai_token,
            model=config.model,
            base_url=config.openai_base_url,
            timeout=config.request_timeout,
        )
    elif config.provider == "gemini":
        return GeminiCompletionProvider(
            api_key=config.gemini_api_key,
            model=config.model,
            timeout=config.request_timeout,
        )
    else:
        raise ValueError(f"Unknown provider: {config.provider}. Use 'openai' or 'gemini'")


def describe_raw(raw: dict) -> str:
    """Render a raw provider response for a diagnostic comment."""
    return json.dumps(raw, indent=2, sort_keys=True, default=str)


# ---------------------------------------------------------------------------
# PRIVATE HELPER FUNCTIONS
# ---------------------------------------------------------------------------


def _extract_choices(data: dict) -> List[str]:
    choices = []
    for choice in data.get("choices") or []:
        message = (choice or {}).get("message") or {}
        choices.append(message.get("content") or "")
    return choices


def _extract_total_tokens(data: dict) -> int:
    usage = data.get("usage") or {}
    try:
        return int(usage.get("total_tokens") or 0)
    except (TypeError, ValueError):
        logger.warning("ignoring malformed usage block: %r", usage)
        return 0


def _usage_from_error_response(resp) -> int:
    try:
        data = resp.json()
    except ValueError:
        return 0
    return _extract_total_tokens(data) if isinstance(data, dict) else 0
