"""Tiered source search: academic domains, then general web, then a broadened fallback."""
from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable

import httpx

from noboox.config import settings
from noboox.errors import RateLimitExceeded, SearchUnavailable, UpstreamTimeout
from noboox.models.research import Depth, SearchHit, TierQuery
from noboox.services.logger import log_event, log_search_call, logger
from noboox.services.rate_limiter import RateLimiter, get_search_rate_limiter
from noboox.services.retry import retrying
from noboox.tools import search_provider, web_utils
from noboox.tools.search_provider import SearchResponse

ACADEMIC_DOMAINS = (
    "scholar.google.com",
    "arxiv.org",
    "researchgate.net",
    "sciencedirect.com",
    "springer.com",
    "nature.com",
    "science.org",
    "ieee.org",
    "acm.org",
    "jstor.org",
    "pubmed.ncbi.nlm.nih.gov",
    "academia.edu",
    ".edu",
)

LOW_SIGNAL_DOMAINS = ("reddit.com", "quora.com", "medium.com")

FALLBACK_QUALIFIER = "research paper"
LOOKUP_QUALIFIER = "research paper pdf"
DEEP_MAX_RESULTS_PER_TIER = 30

ACADEMIC_MENTION_PATTERN = re.compile(
    r"\b([A-Z][A-Za-z'-]+(?:\s+(?:&|and)\s+[A-Z][A-Za-z'-]+)?(?:\s+et\s+al\.?)?),?\s+\(?((?:19|20)\d{2})\)?"
)
MENTION_STOPWORDS = {
    "in", "on", "since", "by", "from", "the", "of", "for", "at", "during", "until",
    "after", "before", "as", "between", "and", "to", "published", "updated", "copyright",
    "january", "february", "march", "april", "may", "june", "july", "august",
    "september", "october", "november", "december",
    "jan", "feb", "mar", "apr", "jun", "jul", "aug", "sep", "sept", "oct", "nov", "dec",
}

SearchFn = Callable[..., Awaitable[SearchResponse]]


def build_tiers(query: str) -> list[TierQuery]:
    """Search tiers in fixed priority order."""
    cleaned = " ".join(query.split())
    return [
        TierQuery(tier="academic", query=cleaned, include_domains=ACADEMIC_DOMAINS),
        TierQuery(tier="general", query=cleaned, exclude_domains=LOW_SIGNAL_DOMAINS),
        TierQuery(tier="fallback", query=cleaned, suffix=FALLBACK_QUALIFIER),
    ]


def extract_academic_mentions(hits: list[SearchHit], *, limit: int) -> list[str]:
    """Author-year mentions (``Smith et al. 2020``) found in hit snippets, first seen first."""
    mentions: list[str] = []
    seen: set[str] = set()
    for hit in hits:
        for match in ACADEMIC_MENTION_PATTERN.finditer(hit.snippet or ""):
            names, year = match.group(1).strip(), match.group(2)
            if names.split()[0].lower() in MENTION_STOPWORDS:
                continue
            mention = f"{names} {year}"
            key = mention.lower()
            if key in seen:
                continue
            seen.add(key)
            mentions.append(mention)
            if len(mentions) >= limit:
                return mentions
    return mentions


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, (UpstreamTimeout, httpx.TransportError))


@dataclass(slots=True)
class TierOutcome:
    tier: str
    query: str
    provider: str | None = None
    results: int = 0
    new_results: int = 0
    error: str | None = None
    fallback_from: str | None = None
    fallback_reason: str | None = None


@dataclass(slots=True)
class AggregationResult:
    hits: list[SearchHit]
    tiers: list[TierOutcome] = field(default_factory=list)
    academic_lookups: int = 0

    def __len__(self) -> int:
        return len(self.hits)


class SearchAggregator:
    """Runs the search tiers sequentially until the minimum source count is met.

    Every outbound request passes through the shared rate limiter. A failing
    tier counts as zero results; the aggregation fails only when every
    attempted tier failed or nothing usable came back.
    """

    def __init__(
        self,
        *,
        rate_limiter: RateLimiter | None = None,
        search_fn: SearchFn | None = None,
        results_per_tier: int | None = None,
        max_attempts: int | None = None,
        retry_base_delay: float | None = None,
        academic_lookup_enabled: bool | None = None,
        academic_lookup_max: int | None = None,
    ):
        self.rate_limiter = rate_limiter or get_search_rate_limiter()
        self._search_fn = search_fn
        self.results_per_tier = max(int(results_per_tier or settings.search_results_per_tier), 1)
        self.max_attempts = max(int(max_attempts or settings.search_max_attempts), 1)
        self.retry_base_delay = (
            settings.retry_backoff_seconds if retry_base_delay is None else retry_base_delay
        )
        self.academic_lookup_enabled = (
            settings.academic_lookup_enabled
            if academic_lookup_enabled is None
            else academic_lookup_enabled
        )
        self.academic_lookup_max = max(
            int(settings.academic_lookup_max if academic_lookup_max is None else academic_lookup_max),
            0,
        )

    def _results_for(self, depth: Depth, min_sources: int) -> int:
        if depth == Depth.DEEP:
            return min(max(self.results_per_tier, min_sources), DEEP_MAX_RESULTS_PER_TIER)
        return self.results_per_tier

    async def _run_query(self, tier: TierQuery, max_results: int) -> SearchResponse:
        search_fn = self._search_fn or search_provider.search
        async for attempt in retrying(
            f"search.{tier.tier}",
            max_attempts=self.max_attempts,
            retry_on=_is_transient,
            base_delay=self.retry_base_delay,
            max_delay=settings.retry_backoff_max_seconds,
        ):
            with attempt:
                await self.rate_limiter.acquire()
                return await search_fn(tier, max_results=max_results)
        raise AssertionError("unreachable")

    @staticmethod
    def _merge(accumulator: dict[str, SearchHit], hits: list[SearchHit]) -> int:
        added = 0
        for hit in hits:
            if not hit.url:
                continue
            key = web_utils.normalize_url(hit.url)
            if key in accumulator:
                continue
            accumulator[key] = hit
            added += 1
        return added

    async def search(
        self,
        query: str,
        min_sources: int,
        depth: Depth = Depth.QUICK,
    ) -> AggregationResult:
        accumulator: dict[str, SearchHit] = {}
        outcomes: list[TierOutcome] = []
        max_results = self._results_for(depth, min_sources)

        for index, tier in enumerate(build_tiers(query)):
            if index > 0 and len(accumulator) >= min_sources:
                break
            outcome = TierOutcome(tier=tier.tier, query=tier.render())
            t0 = time.monotonic()
            try:
                response = await self._run_query(tier, max_results)
            except RateLimitExceeded:
                raise
            except Exception as e:
                outcome.error = f"{type(e).__name__}: {e}"
                log_search_call(
                    provider=settings.search_provider,
                    tier=tier.tier,
                    query=outcome.query,
                    duration_ms=int((time.monotonic() - t0) * 1000),
                    error=outcome.error,
                )
                outcomes.append(outcome)
                continue

            outcome.provider = response.provider
            outcome.results = len(response.hits)
            outcome.fallback_from = response.fallback_from
            outcome.fallback_reason = response.fallback_reason
            outcome.new_results = self._merge(accumulator, response.hits)
            log_search_call(
                provider=response.provider,
                tier=tier.tier,
                query=outcome.query,
                results=outcome.results,
                duration_ms=int((time.monotonic() - t0) * 1000),
            )
            outcomes.append(outcome)

        if all(o.error for o in outcomes):
            causes = "; ".join(f"{o.tier}: {o.error}" for o in outcomes)
            raise SearchUnavailable(f"all search tiers failed ({causes})")

        lookups = 0
        if depth == Depth.QUICK and self.academic_lookup_enabled and self.academic_lookup_max:
            lookups = await self._discover_academic_sources(accumulator)

        if not accumulator:
            raise SearchUnavailable(f"no usable results for query: {query[:100]}")

        hits = list(accumulator.values())
        log_event(
            event_type="search_aggregated",
            message="Search aggregation complete",
            unique_results=len(hits),
            min_sources=min_sources,
            tiers=[o.tier for o in outcomes],
            academic_lookups=lookups,
        )
        return AggregationResult(hits=hits, tiers=outcomes, academic_lookups=lookups)

    async def _discover_academic_sources(self, accumulator: dict[str, SearchHit]) -> int:
        """Look up papers cited by author-year in snippets; failures are skipped."""
        mentions = extract_academic_mentions(
            list(accumulator.values()), limit=self.academic_lookup_max
        )
        performed = 0
        for mention in mentions:
            lookup = TierQuery(tier="academic_lookup", query=mention, suffix=LOOKUP_QUALIFIER)
            try:
                response = await self._run_query(lookup, 1)
            except RateLimitExceeded as e:
                logger.warning(
                    f"Academic lookups stopped by rate limit (retry after {e.retry_after_ms}ms)"
                )
                break
            except Exception as e:
                logger.warning(f"Academic lookup failed for {mention!r}: {e}")
                continue
            performed += 1
            self._merge(accumulator, response.hits)
        return performed
