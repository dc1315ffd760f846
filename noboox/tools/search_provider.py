from __future__ import annotations

from dataclasses import dataclass

from noboox.config import settings
from noboox.models.research import SearchHit, TierQuery
from noboox.tools import brave_search, google_search, serper_search, tavily_search

OPERATOR_PROVIDERS = {
    "google": google_search,
    "serper": serper_search,
    "brave": brave_search,
}


@dataclass
class SearchResponse:
    hits: list[SearchHit]
    provider: str
    fallback_from: str | None = None
    fallback_reason: str | None = None


async def _search_tavily(tier: TierQuery, max_results: int) -> list[SearchHit]:
    # Tavily takes domain filters as parameters rather than query operators.
    return await tavily_search.search(
        tier.text,
        max_results=max_results,
        include_domains=[d.lstrip(".") for d in tier.include_domains] or None,
        exclude_domains=[d.lstrip(".") for d in tier.exclude_domains] or None,
    )


async def search(tier: TierQuery, *, max_results: int = 10) -> SearchResponse:
    provider = settings.search_provider.lower().strip()
    use_fallback = settings.search_fallback_to_tavily

    if provider == "tavily":
        hits = await _search_tavily(tier, max_results)
        return SearchResponse(hits=hits, provider="tavily")

    provider_module = OPERATOR_PROVIDERS.get(provider)
    if provider_module is None:
        raise ValueError(f"Unsupported SEARCH_PROVIDER: {settings.search_provider}")

    try:
        hits = await provider_module.search(tier.render(), max_results=max_results)
    except Exception as e:
        if not use_fallback:
            raise
        fallback_hits = await _search_tavily(tier, max_results)
        return SearchResponse(
            hits=fallback_hits,
            provider="tavily",
            fallback_from=provider,
            fallback_reason=str(e),
        )

    if hits or not use_fallback:
        return SearchResponse(hits=hits, provider=provider)

    fallback_hits = await _search_tavily(tier, max_results)
    return SearchResponse(
        hits=fallback_hits,
        provider="tavily",
        fallback_from=provider,
        fallback_reason=f"{provider} returned zero results",
    )
