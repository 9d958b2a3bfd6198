"""Async model client built around OpenAI-compatible chat endpoints."""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Sequence, cast

import httpx
from openai import (
    APIConnectionError,
    APIError,
    APIStatusError,
    AsyncOpenAI,
    AuthenticationError,
    PermissionDeniedError,
    RateLimitError,
)
from openai.types.chat import ChatCompletionMessageParam
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import (
    CopilotError,
    InvalidCredentialError,
    ProviderError,
    ProviderUnreachableError,
    RateLimitedError,
)
from .utils.tokens import compact_json

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.anthropic.com/v1/"
DEFAULT_MODEL = "claude-sonnet-4-6"
SCENE_CONTEXT_HEADER = "[Scene Context]"


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the model client.

    ``max_retries`` counts attempts, so the default of 1 sends each request once.
    Only rate limits and unreachable-provider errors are ever retried.
    """

    api_key: str
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    request_timeout: float | None = 90.0
    max_tokens: int = 4096
    max_retries: int = 1
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False


class ModelClient:
    """Sends the system instruction, scene context and history; returns the raw reply text."""

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client or self._build_client(settings)

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def complete(
        self,
        messages: Iterable[Mapping[str, Any]],
        *,
        system: str,
        context: Any = None,
        max_tokens: int | None = None,
    ) -> str:
        payload = self._build_chat_payload(
            messages=self.build_messages(messages, system=system, context=context),
            max_tokens=max_tokens or self._settings.max_tokens,
        )
        LOGGER.debug(
            "Requesting completion from %s with %s message(s)",
            self._settings.model,
            len(payload["messages"]),
        )
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        response = await self._send(payload)
        text = _first_choice_text(response)
        LOGGER.debug("Received %s characters from %s", len(text), self._settings.model)
        return text

    async def ping(self) -> None:
        """Send a one-token request to verify the credential and endpoint."""

        payload = self._build_chat_payload(
            messages=[cast(ChatCompletionMessageParam, {"role": "user", "content": "hi"})],
            max_tokens=1,
        )
        await self._send(payload)

    @staticmethod
    def build_messages(
        messages: Iterable[Mapping[str, Any]],
        *,
        system: str,
        context: Any = None,
    ) -> List[ChatCompletionMessageParam]:
        normalized: List[ChatCompletionMessageParam] = [
            cast(ChatCompletionMessageParam, {"role": "system", "content": system})
        ]
        if context is not None:
            payload = context.as_payload() if hasattr(context, "as_payload") else context
            normalized.append(
                cast(
                    ChatCompletionMessageParam,
                    {"role": "system", "content": f"{SCENE_CONTEXT_HEADER}\n{compact_json(payload)}"},
                )
            )
        history = [cast(ChatCompletionMessageParam, dict(message)) for message in messages]
        normalized.extend(history)
        if not history:
            raise ValueError("At least one message is required to request a completion")
        return normalized

    async def _send(self, payload: Dict[str, Any]) -> Any:
        try:
            async for attempt in self._retrying():
                with attempt:
                    try:
                        return await self._client.chat.completions.create(**payload)
                    except CopilotError:
                        raise
                    except Exception as exc:
                        raise classify_provider_error(exc) from exc
        except CopilotError as exc:
            LOGGER.warning("Model request failed: %s", exc)
            raise
        raise ProviderError(message="The model provider returned no response.")  # pragma: no cover

    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        headers = dict(settings.default_headers) if settings.default_headers else None
        return AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            timeout=settings.request_timeout,
            max_retries=0,
            default_headers=headers,
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type((RateLimitedError, ProviderUnreachableError)),
        )

    def _build_chat_payload(
        self,
        *,
        messages: Sequence[ChatCompletionMessageParam],
        max_tokens: int | None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self._settings.model,
            "messages": list(messages),
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        return payload

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("Model prompt payload (unserializable): %s", payload)
        else:
            LOGGER.debug("Model prompt payload:\n%s", serialized)

    async def aclose(self) -> None:
        """Close the underlying OpenAI client to release network resources."""

        close = getattr(self._client, "close", None)
        if close is None:
            return
        try:
            result = close()
        except Exception as exc:  # pragma: no cover
            LOGGER.debug("Model client close failed to start: %s", exc)
            return
        if inspect.isawaitable(result):
            await result


def classify_provider_error(exc: BaseException) -> CopilotError:
    """Map SDK and transport exceptions onto the copilot error taxonomy."""

    if isinstance(exc, (AuthenticationError, PermissionDeniedError)):
        return InvalidCredentialError(details={"status_code": exc.status_code})
    if isinstance(exc, RateLimitError):
        return RateLimitedError(details={"status_code": exc.status_code})
    if isinstance(exc, (APIConnectionError, httpx.TransportError)):
        return ProviderUnreachableError(details={"reason": str(exc) or type(exc).__name__})
    if isinstance(exc, APIStatusError):
        return ProviderError(
            message=f"Model provider error {exc.status_code}: {exc.message}",
            status_code=exc.status_code,
        )
    if isinstance(exc, APIError):
        return ProviderError(message=f"Model provider error: {exc.message}")
    return ProviderError(message=f"Model request failed: {exc}" if str(exc) else "Model request failed.")


def _first_choice_text(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    if not choices:
        raise ProviderError(message="The model provider returned no choices.")
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    if isinstance(content, list):
        return "".join(str(getattr(part, "text", "") or "") for part in content)
    return str(content or "")


__all__ = [
    "DEFAULT_BASE_URL",
    "DEFAULT_MODEL",
    "SCENE_CONTEXT_HEADER",
    "ClientSettings",
    "ModelClient",
    "classify_provider_error",
]
