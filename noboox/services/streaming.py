from __future__ import annotations

from typing import Any

from noboox.errors import ResearchError
from noboox.models.events import EventType, ResearchState, SSEEvent
from noboox.models.research import ResearchResult


def state_changed(previous: ResearchState, current: ResearchState, **kwargs: Any) -> SSEEvent:
    return SSEEvent(
        event=EventType.STATE_CHANGED,
        data={"from": previous.value, "to": current.value, **kwargs},
    )


def search_result(
    tier: str,
    results_count: int,
    *,
    provider: str | None = None,
    fallback_from: str | None = None,
    fallback_reason: str | None = None,
) -> SSEEvent:
    data: dict[str, Any] = {"tier": tier, "results_count": results_count}
    if provider:
        data["provider"] = provider
    if fallback_from:
        data["fallback_from"] = fallback_from
    if fallback_reason:
        data["fallback_reason"] = fallback_reason
    return SSEEvent(event=EventType.SEARCH_RESULT, data=data)


def section_generated(section: str, word_count: int, attempts: int) -> SSEEvent:
    return SSEEvent(
        event=EventType.SECTION_GENERATED,
        data={"section": section, "word_count": word_count, "attempts": attempts},
    )


def research_complete(result: ResearchResult, runtime_ms: int | None = None) -> SSEEvent:
    data: dict[str, Any] = result.to_dict()
    if runtime_ms is not None:
        data["runtime_ms"] = runtime_ms
    return SSEEvent(event=EventType.RESEARCH_COMPLETE, data=data)


def error(exc: ResearchError, state: ResearchState | None = None) -> SSEEvent:
    data: dict[str, Any] = {"message": exc.user_message, "status": exc.status_code, **exc.to_response()}
    if state is not None:
        data["state"] = state.value
    return SSEEvent(event=EventType.ERROR, data=data)
