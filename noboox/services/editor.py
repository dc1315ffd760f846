"""Natural-language revision of an existing report."""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from noboox.config import settings
from noboox.errors import FailureReason, GenerationFailed, InvalidRequest, LLMError
from noboox.llm_client import GenerationOptions
from noboox.models.research import CitationUsage, Source, count_words
from noboox.services import html_renderer
from noboox.services.citations import CitationPolicy, CitationResolver, cited_ids
from noboox.services.content_generator import TextGenerator
from noboox.services.logger import log_event
from noboox.services.prompt_store import render_prompt
from noboox.services.retry import retrying

TIMEOUT_GROWTH = 1.5

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")
_OUTER_FENCE_OPEN = re.compile(r"^```(?:json)?[ \t]*\n?", re.IGNORECASE)
_OUTER_FENCE_CLOSE = re.compile(r"\n?[ \t]*```$")


class EditPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    edited_content: str = Field(alias="editedContent")


@dataclass(frozen=True, slots=True)
class DecodeResult:
    """Outcome of decoding an edit response: a payload or a failure reason."""

    payload: EditPayload | None = None
    reason: FailureReason | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.payload is not None


@dataclass(frozen=True, slots=True)
class EditResult:
    html: str
    markdown: str
    usage: CitationUsage

    @property
    def word_count(self) -> int:
        return count_words(self.markdown)


def _extract_json_object(raw_text: str) -> str:
    # Only the outer fence is removed; the edited content may hold fenced blocks.
    text = _OUTER_FENCE_OPEN.sub("", raw_text.strip())
    text = _OUTER_FENCE_CLOSE.sub("", text)
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        raise json.JSONDecodeError("object not found", text, 0)
    return text[start : end + 1]


def decode_edit_response(raw_text: str) -> DecodeResult:
    """Parse then validate; never raises on a bad shape."""
    if not raw_text or not raw_text.strip():
        return DecodeResult(reason=FailureReason.EMPTY_RESPONSE, detail="empty edit response")
    try:
        # strict=False lets raw newlines and tabs through inside strings.
        parsed = json.loads(_CONTROL_CHARS.sub(" ", _extract_json_object(raw_text)), strict=False)
    except json.JSONDecodeError as e:
        return DecodeResult(reason=FailureReason.MALFORMED_RESPONSE, detail=f"invalid JSON: {e}")
    try:
        payload = EditPayload.model_validate(parsed)
    except ValidationError as e:
        return DecodeResult(
            reason=FailureReason.MALFORMED_RESPONSE,
            detail=f"unexpected edit response shape: {e.error_count()} error(s)",
        )
    if not payload.edited_content.strip():
        return DecodeResult(reason=FailureReason.EMPTY_RESPONSE, detail="editedContent is empty")
    return DecodeResult(payload=payload)


def _is_timeout(exc: BaseException) -> bool:
    return isinstance(exc, LLMError) and exc.reason == FailureReason.TIMEOUT


class ReportEditor:
    """Applies a user instruction to a report; new citations must already exist."""

    def __init__(
        self,
        llm: TextGenerator | None = None,
        *,
        timeout_seconds: float | None = None,
        max_attempts: int | None = None,
        retry_base_delay: float | None = None,
    ):
        self._llm = llm
        self.timeout_seconds = timeout_seconds or settings.edit_timeout_seconds
        self.max_attempts = max(int(max_attempts or settings.edit_max_attempts), 1)
        self.retry_base_delay = (
            settings.retry_backoff_seconds if retry_base_delay is None else retry_base_delay
        )
        self.citations = CitationResolver(CitationPolicy.STRICT)

    @property
    def llm(self) -> TextGenerator:
        if self._llm is None:
            from noboox.llm_client import client

            self._llm = client()
        return self._llm

    async def _request_edit(self, prompt: str) -> str:
        try:
            async for attempt in retrying(
                "edit",
                max_attempts=self.max_attempts,
                retry_on=_is_timeout,
                base_delay=self.retry_base_delay,
                max_delay=settings.retry_backoff_max_seconds,
            ):
                with attempt:
                    number = attempt.retry_state.attempt_number
                    options = GenerationOptions(
                        temperature=0.1,
                        max_tokens=4096,
                        top_p=0.1,
                        timeout=self.timeout_seconds * TIMEOUT_GROWTH ** (number - 1),
                    )
                    completion = await self.llm.generate(prompt, options, caller="editor")
                    return completion.text
        except LLMError as e:
            raise GenerationFailed(e.reason, f"edit: {e}") from e
        raise AssertionError("unreachable")

    async def revise(
        self,
        instruction: str,
        content: str,
        sources: Sequence[Source] | None = None,
    ) -> EditResult:
        if not instruction or not instruction.strip():
            raise InvalidRequest("empty edit instruction")
        if not content or not content.strip():
            raise InvalidRequest("no content provided to edit")

        known_ids = [s.id for s in sources] if sources else cited_ids(content)
        prompt = render_prompt(
            "editor.revise",
            content=content,
            available_ids=", ".join(known_ids),
            instruction=instruction.strip(),
        )

        decoded = decode_edit_response(await self._request_edit(prompt))
        if not decoded.ok:
            raise GenerationFailed(decoded.reason or FailureReason.MALFORMED_RESPONSE, decoded.detail)

        edited = decoded.payload.edited_content.strip()
        if sources:
            _, usage = self.citations.resolve(edited, sources)
        else:
            usage = self.citations.check_ids(edited, known_ids)

        rendered = html_renderer.render(edited, sources or [])
        log_event(
            event_type="report_revised",
            message="Report revision applied",
            word_count=count_words(edited),
            citations=usage.total_citations,
        )
        return EditResult(html=rendered, markdown=edited, usage=usage)
