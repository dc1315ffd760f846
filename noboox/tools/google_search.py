from __future__ import annotations

from typing import Any

import httpx

from noboox.config import settings
from noboox.errors import UpstreamTimeout
from noboox.models.research import SearchHit

GOOGLE_CSE_URL = "https://customsearch.googleapis.com/customsearch/v1"
PAGE_SIZE = 10
MAX_RESULTS = 100


def _to_hit(item: dict[str, Any]) -> SearchHit:
    metadata: dict[str, Any] = {}
    pagemap = item.get("pagemap")
    if isinstance(pagemap, dict):
        metadata["pagemap"] = pagemap
    return SearchHit(
        title=item.get("title", "") or "",
        url=item.get("link", "") or "",
        snippet=item.get("snippet", "") or "",
        metadata=metadata,
    )


async def search(query: str, *, max_results: int = 10) -> list[SearchHit]:
    """Execute a Google Custom Search, paging 10 results at a time."""
    if not settings.google_api_key or not settings.google_cse_id:
        raise RuntimeError("GOOGLE_API_KEY / GOOGLE_CSE_ID are not configured")

    desired = max(1, min(max_results, MAX_RESULTS))
    hits: list[SearchHit] = []
    async with httpx.AsyncClient(timeout=settings.search_timeout_seconds) as client:
        start = 1
        while len(hits) < desired:
            params = {
                "key": settings.google_api_key,
                "cx": settings.google_cse_id,
                "q": query,
                "num": PAGE_SIZE,
                "start": start,
            }
            try:
                response = await client.get(GOOGLE_CSE_URL, params=params)
            except httpx.TimeoutException as exc:
                raise UpstreamTimeout("google", str(exc)) from exc
            response.raise_for_status()
            items = response.json().get("items", []) or []
            hits.extend(_to_hit(item) for item in items)
            # A short page means the result set is exhausted.
            if len(items) < PAGE_SIZE:
                break
            start += PAGE_SIZE

    return hits[:desired]
