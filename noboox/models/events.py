from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(str, Enum):
    STATE_CHANGED = "state_changed"
    SEARCH_RESULT = "search_result"
    SECTION_GENERATED = "section_generated"
    RESEARCH_COMPLETE = "research_complete"
    ERROR = "error"


class ResearchState(str, Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    FORMATTING = "formatting"
    GENERATING = "generating"
    RESOLVING = "resolving"
    RENDERING = "rendering"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SSEEvent:
    event: EventType
    data: dict[str, Any] = field(default_factory=dict)
