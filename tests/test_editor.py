from __future__ import annotations

import json

import pytest

from noboox.errors import FailureReason, GenerationFailed, InvalidCitation, InvalidRequest, LLMError
from noboox.services.editor import ReportEditor, decode_edit_response
from tests.fakes import FakeLLM, make_sources, words

ORIGINAL = f"Reefs are bleaching [1]. Recovery is slow [2]. {words(30)}"


def edit_response(content: str) -> str:
    return json.dumps({"editedContent": content})


def make_editor(llm) -> ReportEditor:
    return ReportEditor(llm, timeout_seconds=15, max_attempts=3, retry_base_delay=0)


@pytest.mark.asyncio
async def test_revision_renders_and_counts_citations():
    edited = f"Reefs are bleaching fast [1]. Recovery is slow [2, 1]. {words(30)}"
    llm = FakeLLM([edit_response(edited)])

    result = await make_editor(llm).revise("Make it punchier", ORIGINAL, make_sources(3))

    assert result.markdown == edited
    assert 'class="citation"' in result.html
    assert result.usage.total_citations == 3
    assert result.usage.distinct_citations == 2
    assert result.usage.source_usage_percent == 67
    assert result.word_count == 39
    call = llm.calls[0]
    assert call.caller == "editor"
    assert "Make it punchier" in call.prompt
    assert "1, 2, 3" in call.prompt
    assert call.options.temperature == 0.1
    assert call.options.top_p == 0.1
    assert call.options.timeout == 15


@pytest.mark.asyncio
async def test_revision_rejects_new_citation_ids():
    llm = FakeLLM([edit_response(f"Now citing [7]. {words(30)}")])

    with pytest.raises(InvalidCitation) as exc_info:
        await make_editor(llm).revise("Add a source", ORIGINAL, make_sources(3))

    assert exc_info.value.ids == ["7"]


@pytest.mark.asyncio
async def test_known_ids_come_from_content_without_sources():
    llm = FakeLLM([edit_response(f"Only the second claim remains [2]. {words(30)}")])

    result = await make_editor(llm).revise("Drop the first claim", ORIGINAL)

    assert "1, 2" in llm.calls[0].prompt
    assert result.usage.distinct_citations == 1
    assert result.usage.source_usage_percent == 50
    assert 'class="citation"' not in result.html


@pytest.mark.asyncio
async def test_fenced_json_response_is_accepted():
    edited = f"Shorter text [1]. {words(30)}"
    llm = FakeLLM([f"```json\n{edit_response(edited)}\n```"])

    result = await make_editor(llm).revise("Shorten", ORIGINAL, make_sources(2))

    assert result.markdown == edited


@pytest.mark.asyncio
async def test_malformed_response_fails_without_retry():
    llm = FakeLLM(["Sure! Here is your edited report."])

    with pytest.raises(GenerationFailed) as exc_info:
        await make_editor(llm).revise("Shorten", ORIGINAL, make_sources(2))

    assert exc_info.value.reason == FailureReason.MALFORMED_RESPONSE
    assert len(llm.calls) == 1


@pytest.mark.asyncio
async def test_timeouts_are_retried_with_growing_deadline():
    timeout = LLMError(FailureReason.TIMEOUT, "slow")
    llm = FakeLLM([timeout, timeout, edit_response(f"Edited [1]. {words(30)}")])

    result = await make_editor(llm).revise("Shorten", ORIGINAL, make_sources(2))

    assert result.usage.distinct_citations == 1
    assert [c.options.timeout for c in llm.calls] == [15, 22.5, 33.75]


@pytest.mark.asyncio
async def test_exhausted_timeouts_raise_generation_failed():
    llm = FakeLLM([LLMError(FailureReason.TIMEOUT, "slow")])

    with pytest.raises(GenerationFailed) as exc_info:
        await make_editor(llm).revise("Shorten", ORIGINAL, make_sources(2))

    assert exc_info.value.status_code == 504
    assert len(llm.calls) == 3


@pytest.mark.asyncio
async def test_empty_instruction_or_content_is_rejected():
    editor = make_editor(FakeLLM(["unused"]))

    with pytest.raises(InvalidRequest):
        await editor.revise("   ", ORIGINAL)
    with pytest.raises(InvalidRequest):
        await editor.revise("Shorten", "")


def test_decode_edit_response_outcomes():
    assert decode_edit_response("").reason == FailureReason.EMPTY_RESPONSE
    assert decode_edit_response('{"editedContent": "  "}').reason == FailureReason.EMPTY_RESPONSE
    assert decode_edit_response('{"other": 1}').reason == FailureReason.MALFORMED_RESPONSE
    assert decode_edit_response("no json here").reason == FailureReason.MALFORMED_RESPONSE

    raw_newlines = decode_edit_response('{"editedContent": "line one\nline two\x01"}')
    assert raw_newlines.ok
    assert raw_newlines.payload.edited_content == "line one\nline two "


def test_outer_fence_is_removed_but_inner_code_blocks_survive():
    raw = '```json\n{"editedContent": "Intro [1].\\n```python\\nprint(1)\\n```\\nEnd [2]."}\n```'

    decoded = decode_edit_response(raw)

    assert decoded.ok
    assert decoded.payload.edited_content == "Intro [1].\n```python\nprint(1)\n```\nEnd [2]."


@pytest.mark.asyncio
async def test_revision_rejects_ranges_too_wide_to_expand():
    llm = FakeLLM([edit_response(f"Broad claim [11-60]. {words(30)}")])

    with pytest.raises(InvalidCitation) as exc_info:
        await make_editor(llm).revise("Cite everything", ORIGINAL, make_sources(10))

    assert exc_info.value.ids == ["11-60"]
