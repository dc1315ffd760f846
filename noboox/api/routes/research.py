from __future__ import annotations

import json as _json

from fastapi import APIRouter, Query
from sse_starlette.sse import EventSourceResponse

from noboox.agents.orchestrator import ResearchOrchestrator
from noboox.errors import InternalError
from noboox.models.research import Depth
from noboox.models.schemas import (
    ErrorResponse,
    ResearchRequest,
    ResearchResponse,
    ReviseRequest,
    ReviseResponse,
)
from noboox.services import logger as log_service
from noboox.services import streaming
from noboox.services.editor import ReportEditor

router = APIRouter(prefix="/api/research", tags=["research"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    504: {"model": ErrorResponse},
}


@router.post("", response_model=ResearchResponse, responses=ERROR_RESPONSES)
async def run_research(request: ResearchRequest):
    """Run the full pipeline and return the finished report."""
    orchestrator = ResearchOrchestrator()
    log_service.log_event(
        event_type="research_started",
        message="Research started",
        session_id=orchestrator.session_id,
        depth=request.depth.value,
        query=request.query[:100],
    )
    result = await orchestrator.run(request.query, request.depth)
    return result.to_dict()


@router.get("/stream")
async def stream_research(
    query: str = Query(min_length=1, max_length=1000),
    depth: Depth = Depth.QUICK,
):
    """SSE endpoint that streams pipeline state changes and the final result."""
    orchestrator = ResearchOrchestrator()

    async def event_generator():
        log_service.log_event(
            event_type="research_started",
            message="Research stream started",
            session_id=orchestrator.session_id,
            depth=depth.value,
            query=query[:100],
        )
        try:
            async for event in orchestrator.research(query, depth):
                yield {
                    "event": event.event.value,
                    "data": _json.dumps(event.data),
                }
        except Exception as e:
            log_service.log_event(
                event_type="stream_error",
                message="Unhandled error in research stream",
                error=str(e),
                session_id=orchestrator.session_id,
            )
            error_event = streaming.error(InternalError(str(e)))
            yield {
                "event": error_event.event.value,
                "data": _json.dumps(error_event.data),
            }

    return EventSourceResponse(event_generator())


@router.post("/revise", response_model=ReviseResponse, responses=ERROR_RESPONSES)
async def revise_report(request: ReviseRequest):
    """Apply a natural-language edit; citations outside the known sources are rejected."""
    editor = ReportEditor()
    result = await editor.revise(
        request.instruction,
        request.content,
        [s.to_source() for s in request.sources],
    )
    return {
        "content": result.html,
        "markdown": result.markdown,
        "metadata": {
            "citationsUsed": result.usage.total_citations,
            "distinctCitations": result.usage.distinct_citations,
            "sourceUsagePercent": result.usage.source_usage_percent,
            "wordCount": result.word_count,
        },
    }
