from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Depth(str, Enum):
    QUICK = "quick"
    DEEP = "deep"


@dataclass(frozen=True, slots=True)
class SearchHit:
    """One raw result as returned by a search provider."""

    title: str
    url: str
    snippet: str = ""
    metadata: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)


@dataclass(frozen=True, slots=True)
class Source:
    id: str
    title: str
    url: str
    snippet: str = ""
    favicon: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "snippet": self.snippet,
        }
        if self.favicon:
            data["favicon"] = self.favicon
        return data


@dataclass(frozen=True, slots=True)
class SearchQueryPlan:
    query: str
    min_sources: int
    depth: Depth = Depth.QUICK


@dataclass(slots=True)
class GeneratedReport:
    body: str
    word_count: int
    section_word_counts: dict[str, int] = field(default_factory=dict)
    model: str = ""
    attempts: int = 1


@dataclass(frozen=True, slots=True)
class CitationMarker:
    """A bracketed marker found in report text, expanded to individual ids."""

    start: int
    end: int
    raw: str
    ids: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class CitationUsage:
    total_citations: int
    distinct_citations: int
    source_count: int
    source_usage_percent: int
    unresolved_ids: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class CitationIndex:
    """Citation ids found in a text, mapped to the sources they reference."""

    resolved: dict[str, Source]
    markers: tuple[CitationMarker, ...]
    unresolved_ids: tuple[str, ...] = ()

    def get(self, citation_id: str) -> Source | None:
        return self.resolved.get(citation_id)


@dataclass(frozen=True, slots=True)
class ResearchMetadata:
    source_count: int
    citations_used: int
    distinct_citations: int
    source_usage_percent: int
    word_count: int
    model: str
    depth: Depth
    section_word_counts: dict[str, int] = field(default_factory=dict, hash=False)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "sourceCount": self.source_count,
            "citationsUsed": self.citations_used,
            "distinctCitations": self.distinct_citations,
            "sourceUsagePercent": self.source_usage_percent,
            "wordCount": self.word_count,
            "model": self.model,
            "depth": self.depth.value,
        }
        if self.section_word_counts:
            data["sectionWordCounts"] = dict(self.section_word_counts)
        return data


@dataclass(frozen=True, slots=True)
class ResearchResult:
    content: str
    markdown: str
    sources: tuple[Source, ...]
    metadata: ResearchMetadata

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "markdown": self.markdown,
            "sources": [s.to_dict() for s in self.sources],
            "metadata": self.metadata.to_dict(),
        }


def count_words(text: str) -> int:
    return len(text.split())


@dataclass(frozen=True, slots=True)
class TierQuery:
    """One search tier: base query plus domain restrictions and a qualifier."""

    tier: str
    query: str
    include_domains: tuple[str, ...] = ()
    exclude_domains: tuple[str, ...] = ()
    suffix: str = ""

    @property
    def text(self) -> str:
        return " ".join(part for part in (self.query.strip(), self.suffix.strip()) if part)

    def render(self) -> str:
        """Render with ``site:`` operators for providers that take a single query string."""
        parts = [self.text]
        if self.include_domains:
            parts.append("(" + " OR ".join(f"site:{d}" for d in self.include_domains) + ")")
        parts.extend(f"-site:{d}" for d in self.exclude_domains)
        return " ".join(parts)
