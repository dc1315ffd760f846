from __future__ import annotations

import pytest

from noboox.errors import ContentTooShort, FailureReason, GenerationFailed, InvalidRequest, LLMError
from noboox.models.research import Depth, Source
from noboox.services.content_generator import (
    DEEP_SECTIONS,
    STOP_SEQUENCES,
    ContentGenerator,
    group_sources,
    strip_trailing_references,
)
from tests.fakes import FakeLLM, make_sources, words


def make_generator(llm, **kwargs) -> ContentGenerator:
    return ContentGenerator(llm, retry_base_delay=0, **kwargs)


@pytest.mark.asyncio
async def test_quick_report_is_generated_in_one_call():
    llm = FakeLLM([f"Reefs are changing [1]. {words(600)}"])

    report = await make_generator(llm).generate("coral reefs", make_sources(3))

    assert report.word_count == 604
    assert report.model == "test/model"
    assert report.attempts == 1
    assert len(llm.calls) == 1
    call = llm.calls[0]
    assert '"coral reefs"' in call.prompt
    assert "[2] Source 2\nKey Points: Snippet 2\nURL: https://www.example2.org/paper" in call.prompt
    assert call.options.stop == STOP_SEQUENCES
    assert call.options.temperature == 0.6
    assert call.options.top_p == 0.8


@pytest.mark.asyncio
async def test_short_report_is_retried_then_fails_with_content_too_short():
    llm = FakeLLM([words(480)])

    with pytest.raises(ContentTooShort) as exc_info:
        await make_generator(llm).generate("coral reefs", make_sources(3))

    assert exc_info.value.actual == 480
    assert exc_info.value.minimum == 500
    assert exc_info.value.reason == FailureReason.TOO_SHORT
    assert len(llm.calls) == 3
    assert "480 words" in llm.calls[1].prompt
    assert [c.options.max_tokens for c in llm.calls] == [8192, 10240, 12288]


@pytest.mark.asyncio
async def test_retry_recovers_when_a_later_attempt_is_long_enough():
    llm = FakeLLM([words(480), words(650)])

    report = await make_generator(llm).generate("coral reefs", make_sources(3))

    assert report.word_count == 650
    assert report.attempts == 2


@pytest.mark.asyncio
async def test_trailing_references_are_stripped_before_counting():
    body = words(520)
    llm = FakeLLM([f"{body}\n\n## References\n[1] Source 1 https://example1.org\n" + words(100)])

    report = await make_generator(llm).generate("coral reefs", make_sources(3))

    assert report.body == body
    assert report.word_count == 520


@pytest.mark.asyncio
async def test_quota_errors_are_not_retried():
    llm = FakeLLM([LLMError(FailureReason.QUOTA_EXCEEDED, "quota exhausted")])

    with pytest.raises(GenerationFailed) as exc_info:
        await make_generator(llm).generate("coral reefs", make_sources(3))

    assert exc_info.value.reason == FailureReason.QUOTA_EXCEEDED
    assert exc_info.value.status_code == 429
    assert len(llm.calls) == 1


@pytest.mark.asyncio
async def test_timeouts_are_retried_up_to_the_cap():
    llm = FakeLLM([LLMError(FailureReason.TIMEOUT, "deadline exceeded")])

    with pytest.raises(GenerationFailed) as exc_info:
        await make_generator(llm).generate("coral reefs", make_sources(3))

    assert exc_info.value.reason == FailureReason.TIMEOUT
    assert exc_info.value.status_code == 504
    assert len(llm.calls) == 3


@pytest.mark.asyncio
async def test_empty_sources_are_rejected():
    with pytest.raises(InvalidRequest):
        await make_generator(FakeLLM(["x"])).generate("coral reefs", [])


def deep_responses() -> list[str]:
    return [
        "# Introduction\n" + words(250, "intro"),
        words(1250, "lit"),
        words(350, "method"),
        words(250, "data"),
        words(150, "end"),
    ]


@pytest.mark.asyncio
async def test_deep_report_chains_sections_in_order():
    llm = FakeLLM(deep_responses())

    report = await make_generator(llm).generate("coral reefs", make_sources(5), Depth.DEEP)

    assert [c.caller for c in llm.calls] == [
        f"content_generator.{section.key}" for section in DEEP_SECTIONS
    ]
    # Each prompt carries the previous section's text.
    assert words(250, "intro") in llm.calls[1].prompt
    assert words(1250, "lit") in llm.calls[2].prompt
    assert report.section_word_counts == {
        "introduction": 250,
        "literature": 1250,
        "methodology": 350,
        "analysis": 250,
        "conclusion": 150,
    }
    assert report.body.count("# Introduction") == 1
    headers = [line for line in report.body.splitlines() if line.startswith("# ")]
    assert headers == [
        "# Introduction",
        "# Literature Review",
        "# Research Methodology",
        "# Data Analysis",
        "# Conclusion",
    ]
    assert report.word_count == 2250 + 13


@pytest.mark.asyncio
async def test_deep_report_fails_when_one_section_stays_short():
    responses = deep_responses()
    responses[2:] = [words(100, "method")] * 3
    llm = FakeLLM(responses)

    with pytest.raises(ContentTooShort) as exc_info:
        await make_generator(llm).generate("coral reefs", make_sources(5), Depth.DEEP)

    assert exc_info.value.minimum == 300
    # Two sections succeed, the third is tried three times.
    assert len(llm.calls) == 5


@pytest.mark.asyncio
async def test_deep_report_enforces_combined_minimum():
    llm = FakeLLM(deep_responses())

    with pytest.raises(ContentTooShort) as exc_info:
        await make_generator(llm, deep_min_words=5000).generate(
            "coral reefs", make_sources(5), Depth.DEEP
        )

    assert exc_info.value.minimum == 5000
    assert exc_info.value.actual == 2263


def test_sources_are_grouped_by_section_keywords():
    sources = [
        Source(id="1", title="Introduction to reef ecology", url="https://a.org"),
        Source(id="2", title="Bleaching methods compared", url="https://b.org"),
        Source(id="3", title="Reef photos", url="https://c.org"),
        Source(id="4", title="Policy implications", url="https://d.org", snippet="future work"),
    ]

    groups = group_sources(sources)

    assert [s.id for s in groups["introduction"]] == ["1"]
    assert [s.id for s in groups["methodology"]] == ["2"]
    assert [s.id for s in groups["conclusion"]] == ["4"]
    # Unmatched sources join the literature review.
    assert [s.id for s in groups["literature"]] == ["3"]
    # A section without matches gets every source.
    assert [s.id for s in groups["analysis"]] == ["1", "2", "3", "4"]


def test_strip_trailing_references_variants():
    assert strip_trailing_references("Body text.\n\nReferences:\n[1] x") == "Body text."
    assert strip_trailing_references("Body.\n**Sources**\n- a") == "Body."
    assert strip_trailing_references("Body.\n### Bibliography\n- a") == "Body."
    assert strip_trailing_references("Sources of funding vary [1].") == "Sources of funding vary [1]."
    assert strip_trailing_references("References to prior work [2] show: gains.") == (
        "References to prior work [2] show: gains."
    )
