from __future__ import annotations

import httpx

from noboox.config import settings
from noboox.errors import UpstreamTimeout
from noboox.models.research import SearchHit

SERPER_SEARCH_URL = "https://google.serper.dev/search"


async def search(query: str, *, max_results: int = 10) -> list[SearchHit]:
    """Web search via Serper (Google results)."""
    if not settings.serper_api_key:
        raise RuntimeError("SERPER_API_KEY is not configured")

    async with httpx.AsyncClient(timeout=settings.search_timeout_seconds) as client:
        try:
            response = await client.post(
                SERPER_SEARCH_URL,
                json={"q": query, "num": max_results},
                headers={
                    "X-API-KEY": settings.serper_api_key,
                    "Content-Type": "application/json",
                },
            )
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout("serper", str(exc)) from exc
        response.raise_for_status()
        payload = response.json()

    organic = sorted(
        payload.get("organic", []) or [],
        key=lambda item: item.get("position") or 0,
    )
    hits: list[SearchHit] = []
    for item in organic:
        metadata = {}
        if item.get("date"):
            metadata["date"] = item["date"]
        if item.get("imageUrl"):
            metadata["image"] = item["imageUrl"]
        hits.append(
            SearchHit(
                title=item.get("title", "") or "",
                url=item.get("link", "") or "",
                snippet=item.get("snippet", "") or "",
                metadata=metadata,
            )
        )
    return hits[:max_results]
