"""
Azure OpenAI chat-completions gateway.

Wraps the `openai` SDK's AzureOpenAI client. One non-streaming request per
turn:

    client.chat.completions.create(
        model=<deployment>, messages=[...], max_tokens=..., temperature=...,
        top_p=..., frequency_penalty=..., presence_penalty=..., stop=...,
        stream=False,
    )

The reply is `choices[0].message.content`, stripped. Any SDK exception is
converted into an ERROR result; nothing is retried.
"""

from __future__ import annotations

from typing import Any, Optional

import openai
from openai import AzureOpenAI

from .base import BaseGateway, CompletionResult
from ..models import AzureSettings, CompletionParams, ErrorClass, Transcript

# ── Error pattern matching ────────────────────────────────────────────────────

# Rate-limit messages that mean the quota is gone rather than a short burst limit
_QUOTA_PATTERNS = (
    "quota",
    "insufficient_quota",
    "billing",
    "exceeded your current",
)


def _content_of(completion: Any) -> Optional[str]:
    choices = getattr(completion, "choices", None)
    if not choices:
        return None
    message = getattr(choices[0], "message", None)
    if message is None:
        return None
    content = getattr(message, "content", None)
    return content if isinstance(content, str) else None


def extract_reply_text(completion: Any) -> Optional[str]:
    """
    Return the stripped assistant text, or None when the response carries
    none (no choices, no message, null or blank content).
    """
    content = _content_of(completion)
    if content is None:
        return None
    stripped = content.strip()
    return stripped or None


def describe_error(exc: BaseException) -> str:
    """
    Most specific message available for an error: the API error body's
    `message`, then the SDK message, then str(exc), then the type name.
    """
    if isinstance(exc, openai.APIError):
        body = exc.body
        if isinstance(body, dict):
            detail = body.get("message")
            if not detail and isinstance(body.get("error"), dict):
                detail = body["error"].get("message")
            if detail:
                return str(detail)
        elif isinstance(body, str) and body.strip():
            return body.strip()
        if exc.message:
            return exc.message
    return str(exc) or type(exc).__name__


def classify_error(exc: BaseException) -> ErrorClass:
    if isinstance(exc, openai.RateLimitError):
        lower = describe_error(exc).lower()
        if any(p in lower for p in _QUOTA_PATTERNS):
            return ErrorClass.QUOTA_EXHAUSTED
        return ErrorClass.TRANSIENT_RATE_LIMIT

    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return ErrorClass.AUTH_REQUIRED

    # APITimeoutError is a subclass of APIConnectionError
    if isinstance(exc, openai.APIConnectionError):
        return ErrorClass.CONNECTION_ERROR

    return ErrorClass.OTHER_ERROR


class AzureGateway(BaseGateway):
    name = "azure"

    def __init__(self, settings: AzureSettings, client: Optional[Any] = None) -> None:
        self.settings = settings
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = AzureOpenAI(
                azure_endpoint=self.settings.endpoint,
                api_key=self.settings.api_key,
                api_version=self.settings.api_version,
                # Failed calls are reported, never retried
                max_retries=0,
            )
        return self._client

    def request_kwargs(
        self,
        transcript: Transcript,
        params: CompletionParams,
    ) -> dict[str, Any]:
        return {
            "model": self.settings.deployment,
            "messages": transcript.as_messages(),
            "max_tokens": params.max_tokens,
            "temperature": params.temperature,
            "top_p": params.top_p,
            "frequency_penalty": params.frequency_penalty,
            "presence_penalty": params.presence_penalty,
            "stop": params.stop,
            "stream": False,
        }

    def complete(
        self,
        transcript: Transcript,
        params: CompletionParams,
    ) -> CompletionResult:
        try:
            completion = self.client.chat.completions.create(
                **self.request_kwargs(transcript, params)
            )
        except openai.OpenAIError as exc:
            return CompletionResult.failure(classify_error(exc), describe_error(exc))

        return CompletionResult.from_text(extract_reply_text(completion))
