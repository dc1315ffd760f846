from __future__ import annotations

from typing import Any

import httpx

from noboox.config import settings
from noboox.errors import UpstreamTimeout
from noboox.models.research import SearchHit

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
# Brave caps `count` at 20 per request.
BRAVE_MAX_COUNT = 20


async def search(query: str, *, max_results: int = 10) -> list[SearchHit]:
    """Execute a Brave web search and normalize results."""
    if not settings.brave_api_key:
        raise RuntimeError("BRAVE_API_KEY is not configured")

    params: dict[str, Any] = {
        "q": query,
        "count": min(max_results, BRAVE_MAX_COUNT),
    }

    async with httpx.AsyncClient(timeout=settings.search_timeout_seconds) as client:
        try:
            response = await client.get(
                BRAVE_SEARCH_URL,
                params=params,
                headers={
                    "Accept": "application/json",
                    "X-Subscription-Token": settings.brave_api_key,
                },
            )
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout("brave", str(exc)) from exc
        response.raise_for_status()
        payload = response.json()

    hits: list[SearchHit] = []
    for item in payload.get("web", {}).get("results", []):
        snippets = item.get("extra_snippets", []) or []
        description = item.get("description", "") or ""
        metadata: dict[str, Any] = {}
        favicon = (item.get("meta_url") or {}).get("favicon")
        if favicon:
            metadata["favicon"] = favicon
        hits.append(
            SearchHit(
                title=item.get("title", "") or "",
                url=item.get("url", "") or "",
                snippet=description.strip() or " ".join(snippets).strip(),
                metadata=metadata,
            )
        )
    return hits
