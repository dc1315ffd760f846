from __future__ import annotations

import time
import uuid
from typing import AsyncGenerator

from noboox.config import settings
from noboox.errors import (
    FailureReason,
    GenerationFailed,
    InvalidRequest,
    RenderingFailed,
    ResearchError,
    SearchUnavailable,
)
from noboox.models.events import ResearchState, SSEEvent
from noboox.models.research import (
    Depth,
    GeneratedReport,
    ResearchMetadata,
    ResearchResult,
    SearchQueryPlan,
)
from noboox.services import html_renderer, streaming
from noboox.services.citations import CitationPolicy, CitationResolver
from noboox.services.content_generator import ContentGenerator
from noboox.services.logger import log_research_step, logger
from noboox.services.search_aggregator import SearchAggregator
from noboox.services.source_formatter import format_sources

MAX_QUERY_LENGTH = 1000


def min_sources_for(depth: Depth) -> int:
    if depth == Depth.DEEP:
        return settings.deep_min_sources
    return settings.quick_min_sources


def build_plan(query: str, depth: Depth | str = Depth.QUICK) -> SearchQueryPlan:
    cleaned = " ".join((query or "").split())
    if not cleaned:
        raise InvalidRequest("empty query")
    if len(cleaned) > MAX_QUERY_LENGTH:
        raise InvalidRequest(f"query longer than {MAX_QUERY_LENGTH} characters")
    try:
        depth = Depth(depth)
    except ValueError as e:
        raise InvalidRequest(f"unknown depth: {depth}") from e
    return SearchQueryPlan(query=cleaned, min_sources=min_sources_for(depth), depth=depth)


class ResearchOrchestrator:
    """Runs one research query through the pipeline.

    Flow:
      idle -> searching -> formatting -> generating -> resolving -> rendering -> done

    Any step may end in ``failed``. Every transition is yielded as an SSE event,
    followed by exactly one ``research_complete`` or ``error`` event. Components
    retry internally; the orchestrator itself never retries a step.
    """

    def __init__(
        self,
        *,
        aggregator: SearchAggregator | None = None,
        generator: ContentGenerator | None = None,
        resolver: CitationResolver | None = None,
        session_id: str | None = None,
    ):
        self.aggregator = aggregator or SearchAggregator()
        self.generator = generator or ContentGenerator()
        self.resolver = resolver or CitationResolver(CitationPolicy.LENIENT)
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.state = ResearchState.IDLE
        self.result: ResearchResult | None = None
        self.error: ResearchError | None = None

    def _transition(self, new_state: ResearchState, **data) -> SSEEvent:
        previous = self.state
        self.state = new_state
        status = "failed" if new_state == ResearchState.FAILED else "entered"
        log_research_step(self.session_id, new_state.value, status, data or None)
        return streaming.state_changed(previous, new_state, **data)

    def _as_research_error(self, exc: Exception) -> ResearchError:
        """Typed failure for an unexpected exception, chosen by the failing step."""
        detail = f"{type(exc).__name__}: {exc}"
        if self.state == ResearchState.SEARCHING:
            return SearchUnavailable(detail)
        if self.state == ResearchState.RENDERING:
            return RenderingFailed(detail)
        return GenerationFailed(FailureReason.UNAVAILABLE, detail)

    async def _generate(
        self, plan: SearchQueryPlan, sources
    ) -> AsyncGenerator[SSEEvent | GeneratedReport, None]:
        if plan.depth == Depth.DEEP:
            drafts = []
            async for draft in self.generator.iter_deep_sections(plan.query, sources):
                drafts.append(draft)
                yield streaming.section_generated(draft.key, draft.word_count, draft.attempts)
            yield self.generator.assemble_deep(drafts)
            return

        report = await self.generator.generate(plan.query, sources, plan.depth)
        yield streaming.section_generated("report", report.word_count, report.attempts)
        yield report

    async def research(
        self, query: str, depth: Depth | str = Depth.QUICK
    ) -> AsyncGenerator[SSEEvent, None]:
        """Execute the pipeline, yielding SSE events throughout."""
        self.state = ResearchState.IDLE
        self.result = None
        self.error = None
        started_at = time.monotonic()

        try:
            plan = build_plan(query, depth)

            yield self._transition(
                ResearchState.SEARCHING,
                query=plan.query,
                depth=plan.depth.value,
                min_sources=plan.min_sources,
            )
            aggregation = await self.aggregator.search(plan.query, plan.min_sources, plan.depth)
            for outcome in aggregation.tiers:
                yield streaming.search_result(
                    outcome.tier,
                    outcome.results,
                    provider=outcome.provider,
                    fallback_from=outcome.fallback_from,
                    fallback_reason=outcome.fallback_reason,
                )

            yield self._transition(ResearchState.FORMATTING, results=len(aggregation))
            sources = format_sources(aggregation.hits)
            if not sources:
                raise SearchUnavailable("no search result had both a title and a URL")

            yield self._transition(ResearchState.GENERATING, sources=len(sources))
            report: GeneratedReport | None = None
            async for item in self._generate(plan, sources):
                if isinstance(item, GeneratedReport):
                    report = item
                else:
                    yield item
            assert report is not None

            yield self._transition(ResearchState.RESOLVING, word_count=report.word_count)
            _, usage = self.resolver.resolve(report.body, sources)

            yield self._transition(
                ResearchState.RENDERING,
                citations_used=usage.total_citations,
                distinct_citations=usage.distinct_citations,
            )
            content = html_renderer.render(report.body, sources)

            self.result = ResearchResult(
                content=content,
                markdown=report.body,
                sources=tuple(sources),
                metadata=ResearchMetadata(
                    source_count=len(sources),
                    citations_used=usage.total_citations,
                    distinct_citations=usage.distinct_citations,
                    source_usage_percent=usage.source_usage_percent,
                    word_count=report.word_count,
                    model=report.model,
                    depth=plan.depth,
                    section_word_counts=report.section_word_counts,
                ),
            )
            runtime_ms = int((time.monotonic() - started_at) * 1000)
            yield self._transition(ResearchState.DONE, runtime_ms=runtime_ms)
            yield streaming.research_complete(self.result, runtime_ms=runtime_ms)

        except ResearchError as e:
            async for event in self._fail(e):
                yield event
        except Exception as e:
            logger.exception(f"Unexpected failure while {self.state.value}: {e}")
            async for event in self._fail(self._as_research_error(e)):
                yield event

    async def _fail(self, exc: ResearchError) -> AsyncGenerator[SSEEvent, None]:
        failed_in = self.state
        self.error = exc
        logger.warning(f"Research failed while {failed_in.value}: {exc.code} ({exc.detail or exc})")
        yield self._transition(ResearchState.FAILED, reason=exc.code, failed_in=failed_in.value)
        yield streaming.error(exc, state=failed_in)

    async def run(self, query: str, depth: Depth | str = Depth.QUICK) -> ResearchResult:
        """Drain ``research`` and return the result, or raise its typed failure."""
        async for _ in self.research(query, depth):
            pass
        if self.error is not None:
            raise self.error
        assert self.result is not None
        return self.result
