from __future__ import annotations

from noboox.models.research import SearchHit
from noboox.services.source_formatter import format_sources, resolve_favicon


def test_ids_are_sequential_after_dropping_incomplete_hits():
    hits = [
        SearchHit(title="First", url="https://a.com/1", snippet="  one  "),
        SearchHit(title="", url="https://b.com/no-title"),
        SearchHit(title="No url", url="   "),
        SearchHit(title=" Second ", url=" https://c.com/2 "),
    ]

    sources = format_sources(hits)

    assert [s.id for s in sources] == ["1", "2"]
    assert sources[0].snippet == "one"
    assert sources[1].title == "Second"
    assert sources[1].url == "https://c.com/2"


def test_formatting_is_idempotent():
    hits = [
        SearchHit(title=f"Title {i}", url=f"https://site{i}.org/x", snippet=f"s{i}")
        for i in range(5)
    ]

    assert format_sources(hits) == format_sources(hits)
    assert [s.id for s in format_sources(hits)] == ["1", "2", "3", "4", "5"]


def test_favicon_prefers_provider_metadata():
    hit = SearchHit(
        title="t",
        url="https://example.com/a",
        metadata={"favicon": "https://cdn.example.com/icon.png"},
    )
    assert resolve_favicon(hit) == "https://cdn.example.com/icon.png"


def test_favicon_reads_pagemap_images():
    og = SearchHit(
        title="t",
        url="https://example.com/a",
        metadata={"pagemap": {"metatags": [{"og:image": "https://example.com/og.png"}]}},
    )
    cse = SearchHit(
        title="t",
        url="https://example.com/a",
        metadata={"pagemap": {"metatags": [{}], "cse_image": [{"src": "https://example.com/cse.png"}]}},
    )

    assert resolve_favicon(og) == "https://example.com/og.png"
    assert resolve_favicon(cse) == "https://example.com/cse.png"


def test_favicon_falls_back_to_icon_service_by_hostname():
    hit = SearchHit(title="t", url="https://www.Nature.com/articles/1", metadata={"image": "not a url"})
    assert resolve_favicon(hit) == "https://icons.duckduckgo.com/ip3/nature.com.ico"


def test_favicon_absent_without_hostname():
    sources = format_sources([SearchHit(title="t", url="not-a-url")])
    assert sources[0].favicon is None
