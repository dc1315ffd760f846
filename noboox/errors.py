"""Typed failures of the research pipeline.

Every error carries an HTTP-style status, a fixed user-facing message and an
internal ``detail`` that is logged but never returned to the caller.
"""
from __future__ import annotations

import math
from enum import Enum
from typing import Any


class FailureReason(str, Enum):
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    QUOTA_EXCEEDED = "quota_exceeded"
    MALFORMED_RESPONSE = "malformed_response"
    EMPTY_RESPONSE = "empty_response"
    TOO_SHORT = "too_short"
    UNAVAILABLE = "unavailable"
    INVALID_REQUEST = "invalid_request"


class LLMError(Exception):
    """Failure reported by the LLM client, tagged with a reason."""

    def __init__(self, reason: FailureReason, message: str = ""):
        super().__init__(message or reason.value)
        self.reason = reason

    @property
    def retryable(self) -> bool:
        return self.reason in (
            FailureReason.TIMEOUT,
            FailureReason.RATE_LIMITED,
            FailureReason.MALFORMED_RESPONSE,
            FailureReason.EMPTY_RESPONSE,
            FailureReason.UNAVAILABLE,
        )


class ResearchError(Exception):
    code: str = "research_error"
    status_code: int = 500
    user_message: str = "An unexpected error occurred. Please try again later."

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.user_message)
        self.detail = detail

    def public_fields(self) -> dict[str, Any]:
        return {}

    def to_response(self) -> dict[str, Any]:
        return {"error": self.user_message, "code": self.code, **self.public_fields()}


class InvalidRequest(ResearchError):
    code = "invalid_request"
    status_code = 400
    user_message = "Invalid request. Please check your input and try again."


class RateLimitExceeded(ResearchError):
    code = "rate_limited"
    status_code = 429

    def __init__(self, retry_after_ms: int):
        self.retry_after_ms = max(int(retry_after_ms), 0)
        super().__init__(f"search rate limit reached, retry after {self.retry_after_ms}ms")

    @property
    def retry_after_seconds(self) -> int:
        return math.ceil(self.retry_after_ms / 1000)

    @property
    def user_message(self) -> str:  # type: ignore[override]
        return (
            f"Rate limit exceeded. Please wait {self.retry_after_seconds} seconds "
            "before trying again."
        )

    def public_fields(self) -> dict[str, Any]:
        return {"retry_after_ms": self.retry_after_ms}


class SearchUnavailable(ResearchError):
    code = "search_unavailable"
    user_message = (
        "No relevant sources found. Try more specific keywords, check for typos, "
        "or broaden your search terms."
    )


class GenerationFailed(ResearchError):
    code = "generation_failed"
    user_message = "Failed to generate the report. Please try again."

    def __init__(self, reason: FailureReason, detail: str = ""):
        self.reason = reason
        super().__init__(detail or reason.value)

    @property
    def status_code(self) -> int:  # type: ignore[override]
        if self.reason in (FailureReason.RATE_LIMITED, FailureReason.QUOTA_EXCEEDED):
            return 429
        if self.reason == FailureReason.TIMEOUT:
            return 504
        return 500

    @property
    def user_message(self) -> str:  # type: ignore[override]
        if self.reason == FailureReason.RATE_LIMITED:
            return "AI model rate limit exceeded. Please try again in a few moments."
        if self.reason == FailureReason.QUOTA_EXCEEDED:
            return "AI model quota exceeded. Please try again later."
        if self.reason == FailureReason.TIMEOUT:
            return "The AI model timed out. Please try again."
        return "Failed to generate the report. Please try again."

    def public_fields(self) -> dict[str, Any]:
        return {"reason": self.reason.value}


class ContentTooShort(GenerationFailed):
    code = "content_too_short"

    def __init__(self, actual: int, minimum: int):
        self.actual = actual
        self.minimum = minimum
        super().__init__(
            FailureReason.TOO_SHORT,
            f"generated content too short ({actual} words, minimum {minimum})",
        )


class InvalidCitation(ResearchError):
    code = "invalid_citation"
    status_code = 400

    def __init__(self, ids: list[str]):
        self.ids = list(ids)
        super().__init__(f"unknown citation ids: {', '.join(self.ids)}")

    @property
    def user_message(self) -> str:  # type: ignore[override]
        return f"Invalid citations used: [{', '.join(self.ids)}]"

    def public_fields(self) -> dict[str, Any]:
        return {"ids": self.ids}


class RenderingFailed(ResearchError):
    code = "rendering_failed"
    user_message = "Failed to generate the report. Please try again."


class UpstreamTimeout(ResearchError):
    code = "upstream_timeout"
    status_code = 504
    user_message = "Request timed out. Please try again."

    def __init__(self, service: str, detail: str = ""):
        self.service = service
        super().__init__(detail or f"{service} call exceeded its deadline")


class InternalError(ResearchError):
    code = "internal_error"
