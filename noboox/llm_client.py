"""OpenRouter LLM client over the OpenAI-compatible SDK."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

import openai

from noboox.config import settings
from noboox.errors import FailureReason, LLMError
from noboox.services import logger as log_service


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class GenerationOptions:
    temperature: float = 0.6
    max_tokens: int = 8192
    top_p: float = 0.8
    stop: tuple[str, ...] = ()
    timeout: float | None = None

    def widened(self, factor: float) -> "GenerationOptions":
        return GenerationOptions(
            temperature=self.temperature,
            max_tokens=int(self.max_tokens * factor),
            top_p=self.top_p,
            stop=self.stop,
            timeout=None if self.timeout is None else self.timeout * factor,
        )


@dataclass
class Completion:
    text: str
    model: str
    usage: Usage = field(default_factory=Usage)
    finish_reason: str | None = None


def classify_error(exc: Exception) -> LLMError:
    """Map an SDK exception to a tagged ``LLMError``."""
    message = str(exc)
    lowered = message.lower()
    if isinstance(exc, openai.APITimeoutError):
        return LLMError(FailureReason.TIMEOUT, message)
    if isinstance(exc, openai.RateLimitError):
        if "quota" in lowered or "credit" in lowered:
            return LLMError(FailureReason.QUOTA_EXCEEDED, message)
        return LLMError(FailureReason.RATE_LIMITED, message)
    if isinstance(exc, openai.APIStatusError):
        status = exc.status_code
        if status == 402 or "quota" in lowered:
            return LLMError(FailureReason.QUOTA_EXCEEDED, message)
        if status == 408:
            return LLMError(FailureReason.TIMEOUT, message)
        if status == 429:
            return LLMError(FailureReason.RATE_LIMITED, message)
        if status >= 500:
            return LLMError(FailureReason.UNAVAILABLE, message)
        return LLMError(FailureReason.INVALID_REQUEST, message)
    if isinstance(exc, openai.APIResponseValidationError):
        return LLMError(FailureReason.MALFORMED_RESPONSE, message)
    if isinstance(exc, openai.APIConnectionError):
        return LLMError(FailureReason.UNAVAILABLE, message)
    if isinstance(exc, ValueError):
        # Undecodable JSON bodies surface as ValueError subclasses.
        return LLMError(FailureReason.MALFORMED_RESPONSE, message)
    return LLMError(FailureReason.UNAVAILABLE, message)


class OpenRouterClient:
    def __init__(self, openai_client: Any, model: str | None = None):
        self._client = openai_client
        self.model = model or get_model()

    @staticmethod
    def _extract_completion(response: Any, model: str) -> Completion:
        choices = getattr(response, "choices", None) or []
        if not choices:
            raise LLMError(FailureReason.MALFORMED_RESPONSE, "response has no choices")
        message = getattr(choices[0], "message", None)
        text = getattr(message, "content", None) if message is not None else None
        if not isinstance(text, str):
            raise LLMError(FailureReason.MALFORMED_RESPONSE, "response message has no text content")
        if not text.strip():
            raise LLMError(FailureReason.EMPTY_RESPONSE, "empty response text")

        usage = getattr(response, "usage", None)
        return Completion(
            text=text,
            model=getattr(response, "model", None) or model,
            usage=Usage(
                input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            ),
            finish_reason=getattr(choices[0], "finish_reason", None),
        )

    async def generate(
        self,
        prompt: str,
        options: GenerationOptions | None = None,
        *,
        caller: str = "llm",
    ) -> Completion:
        options = options or GenerationOptions()
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "top_p": options.top_p,
            "timeout": options.timeout or settings.llm_timeout_seconds,
        }
        if options.stop:
            # OpenAI-compatible endpoints accept at most four stop sequences.
            kwargs["stop"] = list(options.stop[:4])

        t0 = time.monotonic()
        try:
            response = await self._client.chat.completions.create(**kwargs)
            completion = self._extract_completion(response, self.model)
        except LLMError as e:
            log_service.log_llm_call(
                model=self.model,
                caller=caller,
                duration_ms=int((time.monotonic() - t0) * 1000),
                status=e.reason.value,
                error=str(e),
            )
            raise
        except Exception as e:
            mapped = classify_error(e)
            log_service.log_llm_call(
                model=self.model,
                caller=caller,
                duration_ms=int((time.monotonic() - t0) * 1000),
                status=mapped.reason.value,
                error=str(e),
            )
            raise mapped from e

        log_service.log_llm_call(
            model=completion.model,
            caller=caller,
            input_tokens=completion.usage.input_tokens,
            output_tokens=completion.usage.output_tokens,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        return completion


def get_client(model: str | None = None) -> OpenRouterClient:
    """Get an OpenRouter client via the OpenAI-compatible SDK."""
    from openai import AsyncOpenAI

    base_url = settings.openrouter_base_url.strip() or "https://openrouter.ai/api/v1"
    openai_client = AsyncOpenAI(
        api_key=settings.openrouter_api_key,
        base_url=base_url,
        max_retries=0,
    )
    return OpenRouterClient(openai_client, model=model)


def get_model() -> str:
    """Get the active OpenRouter model id."""
    if settings.openrouter_model:
        return settings.openrouter_model
    return settings.default_model


_client: OpenRouterClient | None = None


def client() -> OpenRouterClient:
    """Get or create the LLM client."""
    global _client
    if _client is None:
        _client = get_client()
    return _client
