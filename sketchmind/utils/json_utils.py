"""
Robust JSON extraction utilities for LLM responses.
"""

from __future__ import annotations

import json
import re
from typing import Any

_FENCED = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


def _loads(candidate: str) -> Any | None:
    for text in (candidate, _TRAILING_COMMA.sub(r"\1", candidate)):
        try:
            return json.loads(text)
        except (ValueError, RecursionError):
            continue
    return None


def balanced_object_span(text: str, start: int = 0) -> str | None:
    """Return the first balanced ``{...}`` span at or after ``start``.

    Braces inside JSON string literals are ignored.
    """
    begin = text.find("{", start)
    if begin == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for i in range(begin, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[begin:i + 1]
    return None


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Extract a JSON object from arbitrary text.

    Tried in order:
    - the whole text as JSON
    - fenced code blocks ```json { ... } ```
    - the first balanced object embedded in prose
    Trailing commas before closing braces/brackets are tolerated.
    """
    if not isinstance(text, str) or not text.strip():
        return None

    direct = _loads(text.strip())
    if isinstance(direct, dict):
        return direct

    for match in _FENCED.finditer(text):
        obj = _loads(match.group(1))
        if isinstance(obj, dict):
            return obj

    pos = 0
    while True:
        span = balanced_object_span(text, pos)
        if span is None:
            return None
        obj = _loads(span)
        if isinstance(obj, dict):
            return obj
        pos = text.find("{", pos) + 1
