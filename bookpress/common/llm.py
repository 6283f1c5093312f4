"""
LiteLLM-powered chat completion helper utilities.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Mapping, MutableMapping, Sequence

import litellm
from litellm import completion

from .errors import PermanentGenerationError, TransientGenerationError

ChatMessage = Mapping[str, Any]

_TRANSIENT_LITELLM_ERRORS: tuple[type[BaseException], ...] = (
    litellm.RateLimitError,
    litellm.APIConnectionError,
    litellm.Timeout,
    litellm.ServiceUnavailableError,
    litellm.InternalServerError,
)


@dataclass
class ChatResult:
    """
    Structured response returned from an LLM chat completion.
    """

    text: str
    raw: Any


CompletionCallable = Callable[..., ChatResult]


def call_chat_completion(
    *,
    model: str,
    messages: Sequence[ChatMessage],
    temperature: float | None = None,
    max_tokens: int | None = None,
    api_key: str | None = None,
    **extra_kwargs: Any,
) -> ChatResult:
    """
    Invoke LiteLLM's `completion` API and return the consolidated text.

    Rate limits, connection failures and server-side errors are raised as
    :class:`TransientGenerationError`; every other LiteLLM failure is a
    :class:`PermanentGenerationError`.
    """
    payload: MutableMapping[str, Any] = {
        "model": model,
        "messages": list(messages),
    }

    if temperature is not None:
        payload["temperature"] = temperature

    if max_tokens is not None:
        payload["max_tokens"] = max_tokens

    if api_key is not None:
        payload["api_key"] = api_key

    payload.update(extra_kwargs)

    try:
        response = completion(**payload)
    except _TRANSIENT_LITELLM_ERRORS as exc:
        raise TransientGenerationError(f"{model}: {exc}") from exc
    except (
        litellm.APIError,
        litellm.BadRequestError,
        litellm.AuthenticationError,
        litellm.PermissionDeniedError,
        litellm.NotFoundError,
        litellm.UnprocessableEntityError,
    ) as exc:
        raise PermanentGenerationError(f"{model}: {exc}") from exc

    try:
        message = response["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise PermanentGenerationError("Unexpected LiteLLM response format.") from exc

    text = str(message).strip()
    return ChatResult(text=text, raw=response)


def parse_json_payload(raw_text: str) -> Any:
    """
    Parse a JSON reply, tolerating a surrounding Markdown code fence.
    """
    cleaned = raw_text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.strip("`")
        if cleaned.lower().startswith("json"):
            cleaned = cleaned[4:]
    cleaned = cleaned.strip()
    if not cleaned:
        raise PermanentGenerationError("Model returned an empty JSON payload.")

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise PermanentGenerationError(
            f"Failed to parse model response as JSON: {raw_text[:200]!r}"
        ) from exc
