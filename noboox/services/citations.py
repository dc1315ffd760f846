"""Citation markers: ``[n]``, ``[n, m, ...]`` and ``[n-m]``."""
from __future__ import annotations

import re
from enum import Enum
from typing import Iterable, Sequence

from noboox.errors import InvalidCitation
from noboox.models.research import CitationIndex, CitationMarker, CitationUsage, Source
from noboox.services.logger import logger

MAX_RANGE_SPAN = 50

CITATION_PATTERN = re.compile(
    r"\[\s*(?:(?P<start>\d+)\s*[-–]\s*(?P<end>\d+)|(?P<list>\d+(?:\s*,\s*\d+)*))\s*\]"
)


class CitationPolicy(str, Enum):
    # Unknown ids are left as literal text.
    LENIENT = "lenient"
    # Unknown ids reject the whole text.
    STRICT = "strict"


def expand_marker(match: re.Match[str]) -> tuple[str, ...] | None:
    if match.group("list") is not None:
        return tuple(str(int(part)) for part in match.group("list").split(","))
    low, high = int(match.group("start")), int(match.group("end"))
    if low > high:
        low, high = high, low
    if high - low + 1 > MAX_RANGE_SPAN:
        return None
    return tuple(str(n) for n in range(low, high + 1))


def parse_markers(text: str) -> list[CitationMarker]:
    """All citation markers in ``text``, in order, with lists and ranges expanded."""
    markers: list[CitationMarker] = []
    for match in CITATION_PATTERN.finditer(text or ""):
        ids = expand_marker(match)
        if ids is None:
            continue
        markers.append(
            CitationMarker(start=match.start(), end=match.end(), raw=match.group(0), ids=ids)
        )
    return markers


def oversized_ranges(text: str) -> list[str]:
    """Ranges too wide to expand, as ``"start-end"`` strings."""
    return [
        f"{match.group('start')}-{match.group('end')}"
        for match in CITATION_PATTERN.finditer(text or "")
        if match.group("list") is None and expand_marker(match) is None
    ]


def _ordered_unique(ids: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    unique: list[str] = []
    for citation_id in ids:
        if citation_id not in seen:
            seen.add(citation_id)
            unique.append(citation_id)
    return unique


def cited_ids(text: str) -> list[str]:
    """Distinct ids cited in ``text``, first occurrence first."""
    return _ordered_unique(i for marker in parse_markers(text) for i in marker.ids)


def usage_percent(distinct: int, source_count: int) -> int:
    if source_count <= 0:
        return 0
    # Half-up rounding; round() would round 62.5 down to 62.
    return int(distinct * 100 / source_count + 0.5)


def build_index(text: str, sources: Sequence[Source]) -> CitationIndex:
    by_id = {s.id: s for s in sources}
    markers = tuple(parse_markers(text))
    ids = _ordered_unique(i for marker in markers for i in marker.ids)
    return CitationIndex(
        resolved={i: by_id[i] for i in ids if i in by_id},
        markers=markers,
        unresolved_ids=tuple(i for i in ids if i not in by_id),
    )


def compute_usage(index: CitationIndex, source_count: int) -> CitationUsage:
    total = sum(1 for marker in index.markers for i in marker.ids if i in index.resolved)
    distinct = len(index.resolved)
    return CitationUsage(
        total_citations=total,
        distinct_citations=distinct,
        source_count=source_count,
        source_usage_percent=usage_percent(distinct, source_count),
        unresolved_ids=index.unresolved_ids,
    )


class CitationResolver:
    """Maps citation markers in report text back to numbered sources."""

    def __init__(self, policy: CitationPolicy = CitationPolicy.LENIENT):
        self.policy = policy

    def resolve(
        self, text: str, sources: Sequence[Source]
    ) -> tuple[CitationIndex, CitationUsage]:
        index = build_index(text, sources)
        if self.policy == CitationPolicy.STRICT:
            invalid = list(index.unresolved_ids) + oversized_ranges(text)
            if invalid:
                raise InvalidCitation(invalid)
        elif index.unresolved_ids:
            logger.warning(
                f"Leaving {len(index.unresolved_ids)} unknown citation id(s) as text: "
                f"{', '.join(index.unresolved_ids)}"
            )
        return index, compute_usage(index, len(sources))

    def check_ids(self, text: str, known_ids: Sequence[str]) -> CitationUsage:
        """Like ``resolve`` when only the known ids are available, not full sources."""
        known = set(known_ids)
        markers = parse_markers(text)
        ids = _ordered_unique(i for marker in markers for i in marker.ids)
        unknown = [i for i in ids if i not in known]
        if self.policy == CitationPolicy.STRICT:
            invalid = unknown + oversized_ranges(text)
            if invalid:
                raise InvalidCitation(invalid)
        distinct = len(ids) - len(unknown)
        return CitationUsage(
            total_citations=sum(1 for marker in markers for i in marker.ids if i in known),
            distinct_citations=distinct,
            source_count=len(known),
            source_usage_percent=usage_percent(distinct, len(known)),
            unresolved_ids=tuple(unknown),
        )


def resolve(
    text: str, sources: Sequence[Source], *, strict: bool = False
) -> tuple[CitationIndex, CitationUsage]:
    policy = CitationPolicy.STRICT if strict else CitationPolicy.LENIENT
    return CitationResolver(policy).resolve(text, sources)
