"""Prompt templates loaded from ``prompts/prompts.json``.

Keys are dotted paths into the JSON object (``generator.deep.introduction``).
A leaf is either a string or a list of lines; values are filled in with
``string.Template`` so literal braces in prompts need no escaping.
"""
from __future__ import annotations

import json
from pathlib import Path
from string import Template
from typing import Any

PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"


class PromptCatalog:
    """JSON prompt file, re-read when its mtime changes."""

    def __init__(self, path: Path = PROMPTS_PATH):
        self.path = path
        self._data: dict[str, Any] | None = None
        self._mtime_ns: int | None = None

    def data(self) -> dict[str, Any]:
        mtime_ns = self.path.stat().st_mtime_ns
        if self._data is None or self._mtime_ns != mtime_ns:
            loaded = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(loaded, dict):
                raise ValueError(f"{self.path.name} must hold a JSON object")
            self._data, self._mtime_ns = loaded, mtime_ns
        return self._data

    def template(self, key: str) -> Template:
        node: Any = self.data()
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                raise KeyError(f"Prompt key not found: {key}")
            node = node[part]
        if isinstance(node, list) and all(isinstance(line, str) for line in node):
            node = "\n".join(node)
        if not isinstance(node, str):
            raise TypeError(f"Prompt '{key}' is not a string or a list of lines")
        return Template(node)


_catalog = PromptCatalog()


def render_prompt(key: str, **values: Any) -> str:
    template = _catalog.template(key)
    try:
        return template.substitute(**values)
    except KeyError as exc:
        raise KeyError(f"Missing template value '{exc.args[0]}' for prompt '{key}'") from exc
