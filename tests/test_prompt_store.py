from __future__ import annotations

import pytest

from noboox.services.prompt_store import render_prompt


def test_render_prompt_substitutes_template_values():
    prompt = render_prompt(
        "generator.quick",
        query="soil carbon",
        sources="[1] Soil study",
        target_words=1000,
        min_words=500,
        rules="- no references",
    )
    assert 'about "soil carbon"' in prompt
    assert "[1] Soil study" in prompt
    assert "target 1000 words" in prompt
    assert "fewer than 500 words" in prompt


def test_line_list_prompts_are_joined_with_newlines():
    rules = render_prompt("generator.rules")
    assert rules.splitlines()[0] == "Requirements:"
    assert "- DO NOT include a references section" in rules.splitlines()


def test_every_deep_section_has_a_prompt():
    for key in ("introduction", "literature", "methodology", "analysis", "conclusion"):
        prompt = render_prompt(
            f"generator.deep.{key}",
            query="q",
            sources="[1] s",
            previous="earlier text",
            min_words=100,
            rules="rules",
        )
        assert "minimum 100 words" in prompt


def test_render_prompt_raises_for_unknown_key():
    with pytest.raises(KeyError):
        render_prompt("missing.prompt.key")


def test_render_prompt_reports_missing_values():
    with pytest.raises(KeyError, match="available_ids"):
        render_prompt("editor.revise", content="c", instruction="i")


def test_render_prompt_rejects_non_text_nodes():
    with pytest.raises(TypeError):
        render_prompt("generator.deep")
