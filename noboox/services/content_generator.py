"""Report generation: one prompt for quick research, a chain of section prompts for deep research."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import AsyncIterator, Protocol, Sequence

from noboox.config import settings
from noboox.errors import (
    ContentTooShort,
    FailureReason,
    GenerationFailed,
    InvalidRequest,
    LLMError,
)
from noboox.llm_client import Completion, GenerationOptions
from noboox.models.research import Depth, GeneratedReport, Source, count_words
from noboox.services.logger import log_event, logger
from noboox.services.prompt_store import render_prompt
from noboox.services.retry import retrying

STOP_SEQUENCES = ("</div>", "Sources:", "References:", "Bibliography:")
TRAILING_SECTION_TITLES = {"references", "sources", "bibliography", "works cited"}
WIDEN_STEP = 0.25

_CODE_FENCE_OPEN = re.compile(r"^\s*```[A-Za-z]*[ \t]*\n")
_CODE_FENCE_CLOSE = re.compile(r"\n?[ \t]*```\s*$")


class TextGenerator(Protocol):
    model: str

    async def generate(
        self, prompt: str, options: GenerationOptions | None = None, *, caller: str = "llm"
    ) -> Completion: ...


@dataclass(frozen=True, slots=True)
class SectionSpec:
    key: str
    header: str
    min_words: int
    title_keywords: tuple[str, ...]
    snippet_keywords: tuple[str, ...]

    def matches(self, source: Source) -> bool:
        title = source.title.lower()
        snippet = (source.snippet or "").lower()
        return any(k in title for k in self.title_keywords) or any(
            k in snippet for k in self.snippet_keywords
        )


DEEP_SECTIONS: tuple[SectionSpec, ...] = (
    SectionSpec("introduction", "Introduction", 200, ("introduction", "overview"), ("background", "context")),
    SectionSpec("literature", "Literature Review", 1200, ("review", "study", "research"), ("findings", "analysis")),
    SectionSpec("methodology", "Research Methodology", 300, ("method", "approach"), ("methodology", "procedure")),
    SectionSpec("analysis", "Data Analysis", 200, ("result", "analysis", "finding"), ("data", "outcome")),
    SectionSpec("conclusion", "Conclusion", 100, ("conclusion", "implication"), ("future", "recommend")),
)
CATCH_ALL_SECTION = "literature"


@dataclass(frozen=True, slots=True)
class SectionDraft:
    """A generated section that passed validation."""

    key: str
    text: str
    word_count: int
    model: str = ""
    attempts: int = 1


@dataclass(frozen=True, slots=True)
class DraftRejected:
    reason: FailureReason
    word_count: int
    minimum: int
    detail: str = ""

    def to_error(self) -> Exception:
        if self.reason == FailureReason.TOO_SHORT:
            return ContentTooShort(self.word_count, self.minimum)
        return LLMError(self.reason, self.detail or self.reason.value)


def strip_trailing_references(text: str) -> str:
    """Drop everything from a References/Sources/Bibliography heading onwards."""
    lines = text.splitlines()
    for index, line in enumerate(lines):
        bare = line.strip().strip("#*_ \t").lower()
        head = bare.split(":", 1)[0].strip()
        if head in TRAILING_SECTION_TITLES and (bare == head or bare.startswith(head + ":")):
            return "\n".join(lines[:index]).strip()
    return text.strip()


def _strip_code_fence(text: str) -> str:
    if not _CODE_FENCE_OPEN.match(text):
        return text
    return _CODE_FENCE_CLOSE.sub("", _CODE_FENCE_OPEN.sub("", text, count=1))


def _strip_leading_heading(text: str, header: str) -> str:
    first, _, rest = text.partition("\n")
    if first.strip().lstrip("#").strip().rstrip(":").lower() == header.lower():
        return rest.strip()
    return text


def clean_report_text(text: str, header: str | None = None) -> str:
    cleaned = strip_trailing_references(_strip_code_fence(text.strip()))
    if header:
        cleaned = _strip_leading_heading(cleaned, header)
    return cleaned


def validate_draft(
    key: str,
    completion: Completion,
    min_words: int,
    *,
    header: str | None = None,
) -> SectionDraft | DraftRejected:
    """Clean one LLM response and check it against the word floor."""
    text = clean_report_text(completion.text, header)
    if not text:
        return DraftRejected(
            FailureReason.EMPTY_RESPONSE, 0, min_words, "response was empty after cleanup"
        )
    words = count_words(text)
    if words < min_words:
        return DraftRejected(FailureReason.TOO_SHORT, words, min_words)
    return SectionDraft(key=key, text=text, word_count=words, model=completion.model)


def group_sources(sources: Sequence[Source]) -> dict[str, list[Source]]:
    """Assign sources to deep-mode sections by keyword.

    Sources that match no section go to the literature review; a section
    left without sources is given the full list.
    """
    groups = {section.key: [s for s in sources if section.matches(s)] for section in DEEP_SECTIONS}
    assigned = {s.id for group in groups.values() for s in group}
    groups[CATCH_ALL_SECTION].extend(s for s in sources if s.id not in assigned)
    for key, group in groups.items():
        if not group:
            groups[key] = list(sources)
    return groups


def format_source_block(sources: Sequence[Source]) -> str:
    return "\n".join(
        render_prompt(
            "generator.source_entry",
            id=s.id,
            title=s.title,
            snippet=s.snippet or "(no excerpt)",
            url=s.url,
        )
        for s in sources
    )


def _should_retry(exc: BaseException) -> bool:
    if isinstance(exc, ContentTooShort):
        return True
    if isinstance(exc, LLMError):
        return exc.retryable
    return False


class ContentGenerator:
    """Drives the LLM under word-count and citation-format constraints."""

    def __init__(
        self,
        llm: TextGenerator | None = None,
        *,
        max_attempts: int | None = None,
        retry_base_delay: float | None = None,
        quick_min_words: int | None = None,
        quick_target_words: int | None = None,
        deep_min_words: int | None = None,
    ):
        self._llm = llm
        self.max_attempts = max(int(max_attempts or settings.generation_max_attempts), 1)
        self.retry_base_delay = (
            settings.retry_backoff_seconds if retry_base_delay is None else retry_base_delay
        )
        self.quick_min_words = quick_min_words or settings.quick_min_words
        self.quick_target_words = quick_target_words or settings.quick_target_words
        self.deep_min_words = deep_min_words or settings.deep_min_words

    @property
    def llm(self) -> TextGenerator:
        if self._llm is None:
            from noboox.llm_client import client

            self._llm = client()
        return self._llm

    @staticmethod
    def base_options() -> GenerationOptions:
        return GenerationOptions(
            temperature=0.6,
            max_tokens=8192,
            top_p=0.8,
            stop=STOP_SEQUENCES,
            timeout=settings.llm_timeout_seconds,
        )

    async def _generate_section(
        self,
        key: str,
        prompt: str,
        min_words: int,
        *,
        header: str | None = None,
    ) -> SectionDraft:
        base = self.base_options()
        last_short: int | None = None
        try:
            async for attempt in retrying(
                f"generate.{key}",
                max_attempts=self.max_attempts,
                retry_on=_should_retry,
                base_delay=self.retry_base_delay,
                max_delay=settings.retry_backoff_max_seconds,
            ):
                with attempt:
                    number = attempt.retry_state.attempt_number
                    call_prompt = prompt
                    if last_short is not None:
                        call_prompt += "\n\n" + render_prompt(
                            "generator.retry_note", actual=last_short, min_words=min_words
                        )
                    options = base if number == 1 else base.widened(1 + WIDEN_STEP * (number - 1))
                    completion = await self.llm.generate(
                        call_prompt, options, caller=f"content_generator.{key}"
                    )
                    result = validate_draft(key, completion, min_words, header=header)
                    if isinstance(result, DraftRejected):
                        if result.reason == FailureReason.TOO_SHORT:
                            last_short = result.word_count
                        logger.warning(
                            f"Discarded {key} draft on attempt {number}: "
                            f"{result.reason.value} ({result.word_count}/{min_words} words)"
                        )
                        raise result.to_error()
                    return SectionDraft(
                        key=key,
                        text=result.text,
                        word_count=result.word_count,
                        model=result.model,
                        attempts=number,
                    )
        except LLMError as e:
            raise GenerationFailed(e.reason, f"{key}: {e}") from e
        raise AssertionError("unreachable")

    async def generate_quick(self, query: str, sources: Sequence[Source]) -> GeneratedReport:
        prompt = render_prompt(
            "generator.quick",
            query=query,
            sources=format_source_block(sources),
            target_words=self.quick_target_words,
            min_words=self.quick_min_words,
            rules=render_prompt("generator.rules"),
        )
        draft = await self._generate_section("report", prompt, self.quick_min_words)
        log_event(
            event_type="report_generated",
            message="Quick report generated",
            word_count=draft.word_count,
            attempts=draft.attempts,
        )
        return GeneratedReport(
            body=draft.text,
            word_count=draft.word_count,
            model=draft.model or self.llm.model,
            attempts=draft.attempts,
        )

    async def iter_deep_sections(
        self, query: str, sources: Sequence[Source]
    ) -> AsyncIterator[SectionDraft]:
        """Generate the deep-mode sections in narrative order.

        Each prompt carries the previous section's text; a section that never
        clears its floor aborts the whole chain.
        """
        groups = group_sources(sources)
        rules = render_prompt("generator.rules")
        previous = ""
        for section in DEEP_SECTIONS:
            prompt = render_prompt(
                f"generator.deep.{section.key}",
                query=query,
                sources=format_source_block(groups[section.key]),
                previous=previous,
                min_words=section.min_words,
                rules=rules,
            )
            draft = await self._generate_section(
                section.key, prompt, section.min_words, header=section.header
            )
            log_event(
                event_type="section_generated",
                message=f"Generated {section.header}",
                section=section.key,
                word_count=draft.word_count,
                attempts=draft.attempts,
            )
            previous = draft.text
            yield draft

    def assemble_deep(self, drafts: Sequence[SectionDraft]) -> GeneratedReport:
        by_key = {d.key: d for d in drafts}
        missing = [section.key for section in DEEP_SECTIONS if section.key not in by_key]
        if missing:
            raise GenerationFailed(
                FailureReason.MALFORMED_RESPONSE, f"missing sections: {', '.join(missing)}"
            )

        body = "\n\n".join(
            f"# {section.header}\n\n{by_key[section.key].text}" for section in DEEP_SECTIONS
        )
        total = count_words(body)
        if total < self.deep_min_words:
            raise ContentTooShort(total, self.deep_min_words)
        return GeneratedReport(
            body=body,
            word_count=total,
            section_word_counts={section.key: by_key[section.key].word_count for section in DEEP_SECTIONS},
            model=drafts[-1].model or self.llm.model,
            attempts=sum(d.attempts for d in drafts),
        )

    async def generate(
        self, query: str, sources: Sequence[Source], depth: Depth = Depth.QUICK
    ) -> GeneratedReport:
        if not query.strip():
            raise InvalidRequest("empty query")
        if not sources:
            raise InvalidRequest("cannot generate a report without sources")

        if depth == Depth.QUICK:
            return await self.generate_quick(query, sources)

        drafts = [draft async for draft in self.iter_deep_sections(query, sources)]
        report = self.assemble_deep(drafts)
        log_event(
            event_type="report_generated",
            message="Deep report assembled",
            word_count=report.word_count,
            sections=report.section_word_counts,
        )
        return report
