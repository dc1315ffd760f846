from __future__ import annotations

import asyncio
from typing import Any

from tavily import AsyncTavilyClient

from noboox.config import settings
from noboox.errors import UpstreamTimeout
from noboox.models.research import SearchHit


async def search(
    query: str,
    *,
    max_results: int = 10,
    search_depth: str = "advanced",
    include_domains: list[str] | None = None,
    exclude_domains: list[str] | None = None,
) -> list[SearchHit]:
    """Execute a Tavily web search and return structured results."""
    if not settings.tavily_api_key:
        raise RuntimeError("TAVILY_API_KEY is not configured")
    client = AsyncTavilyClient(api_key=settings.tavily_api_key)

    kwargs: dict[str, Any] = {
        "query": query,
        "search_depth": search_depth,
        "max_results": max_results,
        "include_images": False,
    }
    if include_domains:
        kwargs["include_domains"] = include_domains
    if exclude_domains:
        kwargs["exclude_domains"] = exclude_domains

    try:
        response = await asyncio.wait_for(
            client.search(**kwargs), timeout=settings.search_timeout_seconds
        )
    except asyncio.TimeoutError as exc:
        raise UpstreamTimeout("tavily", "tavily search timed out") from exc

    return [
        SearchHit(
            title=r.get("title", "") or "",
            url=r.get("url", "") or "",
            snippet=r.get("content", "") or "",
            metadata={"score": r.get("score", 0.0)},
        )
        for r in response.get("results", [])
    ]
