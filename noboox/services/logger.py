"""loguru setup and the structured log lines emitted by the pipeline.

Each helper writes one line of the form ``KIND: {...}`` so runs can be grepped
by call type (``LLM_CALL``, ``SEARCH_CALL``, ``RESEARCH_STEP``, ``EVENT``).
"""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from noboox.config import settings

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"

QUIET_LOGGERS = (
    "uvicorn.access",
    "sse_starlette.sse",
    "httpx",
    "httpcore",
    "openai._base_client",
)


def configure_logging() -> None:
    logger.remove()
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=settings.app_log_level.upper(), colorize=True)
    if settings.log_dir:
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_dir / "noboox_{time:YYYY-MM-DD}.log",
            format=FILE_FORMAT,
            level="DEBUG",
            rotation="00:00",
            retention="7 days",
            compression="zip",
        )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(settings.noisy_log_level.upper())


configure_logging()


def _emit(kind: str, fields: dict[str, Any], *, level: str = "INFO") -> None:
    record = {"timestamp": datetime.now(timezone.utc).isoformat(), **fields}
    logger.log(level, f"{kind}: {record}")


def log_llm_call(
    model: str,
    caller: str,
    input_tokens: int = 0,
    output_tokens: int = 0,
    duration_ms: int = 0,
    status: str = "success",
    error: Optional[str] = None,
) -> None:
    fields = {
        "model": model,
        "caller": caller,
        "tokens": {"input": input_tokens, "output": output_tokens, "total": input_tokens + output_tokens},
        "duration_ms": duration_ms,
        "status": status,
    }
    if error:
        _emit("LLM_CALL_FAILED", {**fields, "error": error}, level="ERROR")
    else:
        _emit("LLM_CALL", fields)


def log_research_step(
    session_id: str,
    step_type: str,
    status: str,
    data: Optional[dict] = None,
) -> None:
    """One orchestrator state transition."""
    _emit(
        "RESEARCH_STEP",
        {"session_id": session_id, "state": step_type, "status": status, "data": data},
        level="WARNING" if status == "failed" else "INFO",
    )


def log_search_call(
    provider: str,
    tier: str,
    query: str,
    results: int = 0,
    duration_ms: int = 0,
    error: Optional[str] = None,
) -> None:
    fields = {
        "provider": provider,
        "tier": tier,
        "query": query[:120],
        "results": results,
        "duration_ms": duration_ms,
    }
    if error:
        _emit("SEARCH_CALL_FAILED", {**fields, "error": error}, level="WARNING")
    else:
        _emit("SEARCH_CALL", fields)


def log_event(event_type: str, message: str, **kwargs: Any) -> None:
    _emit("EVENT", {"event_type": event_type, "message": message, **kwargs})
