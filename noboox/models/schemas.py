from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from noboox.models.research import Depth, Source


# --- Requests ---


class ResearchRequest(BaseModel):
    query: str = Field(min_length=1, max_length=1000)
    depth: Depth = Depth.QUICK


class SourceModel(BaseModel):
    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    url: str = Field(min_length=1)
    snippet: str = ""
    favicon: str | None = None

    def to_source(self) -> Source:
        return Source(
            id=self.id,
            title=self.title,
            url=self.url,
            snippet=self.snippet,
            favicon=self.favicon,
        )


class ReviseRequest(BaseModel):
    instruction: str = Field(min_length=1, max_length=2000)
    content: str = Field(min_length=1)
    sources: list[SourceModel] = Field(default_factory=list)


# --- Responses ---


class ResearchMetadataModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source_count: int = Field(alias="sourceCount")
    citations_used: int = Field(alias="citationsUsed")
    distinct_citations: int = Field(alias="distinctCitations")
    source_usage_percent: int = Field(alias="sourceUsagePercent")
    word_count: int = Field(alias="wordCount")
    model: str
    depth: Depth
    section_word_counts: dict[str, int] | None = Field(default=None, alias="sectionWordCounts")


class ResearchResponse(BaseModel):
    content: str
    markdown: str
    sources: list[SourceModel]
    metadata: ResearchMetadataModel


class ReviseMetadataModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    citations_used: int = Field(alias="citationsUsed")
    distinct_citations: int = Field(alias="distinctCitations")
    source_usage_percent: int = Field(alias="sourceUsagePercent")
    word_count: int = Field(alias="wordCount")


class ReviseResponse(BaseModel):
    content: str
    markdown: str
    metadata: ReviseMetadataModel


class ErrorResponse(BaseModel):
    error: str
    code: str
