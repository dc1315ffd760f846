from __future__ import annotations

from typing import Any, Iterable

from noboox.models.research import SearchHit, Source
from noboox.tools import web_utils


def _first_image(metadata: dict[str, Any]) -> str | None:
    """Provider-supplied icon or preview image, if any."""
    direct = metadata.get("favicon") or metadata.get("image")
    if isinstance(direct, str) and web_utils.is_valid_url(direct):
        return direct

    pagemap = metadata.get("pagemap")
    if not isinstance(pagemap, dict):
        return None
    for metatag in pagemap.get("metatags") or []:
        image = metatag.get("og:image") if isinstance(metatag, dict) else None
        if isinstance(image, str) and web_utils.is_valid_url(image):
            return image
    for cse_image in pagemap.get("cse_image") or []:
        src = cse_image.get("src") if isinstance(cse_image, dict) else None
        if isinstance(src, str) and web_utils.is_valid_url(src):
            return src
    return None


def resolve_favicon(hit: SearchHit) -> str | None:
    """Embedded metadata first, then the icon service keyed by hostname."""
    return _first_image(hit.metadata) or web_utils.favicon_url(hit.url)


def format_sources(hits: Iterable[SearchHit]) -> list[Source]:
    """Turn raw hits into numbered sources.

    Hits without a title or URL are dropped first; ids are then assigned
    ``1..n`` in input order so every id maps to a kept source.
    """
    kept = [h for h in hits if h.title.strip() and h.url.strip()]
    return [
        Source(
            id=str(index),
            title=hit.title.strip(),
            url=hit.url.strip(),
            snippet=(hit.snippet or "").strip(),
            favicon=resolve_favicon(hit),
        )
        for index, hit in enumerate(kept, start=1)
    ]
