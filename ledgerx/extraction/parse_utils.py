"""Lenient decoding of oracle text that is meant to be a JSON object."""

from __future__ import annotations

import ast
import json
import re
from typing import Any, Iterator

_FENCED = re.compile(r"```[\w-]*\s*\n?(.*?)```", re.DOTALL)


def iter_json_candidates(raw: str) -> Iterator[str]:
    """Yield progressively looser substrings of *raw* worth decoding.

    Order: the whole text, the body of each fenced block, then the span from
    the first ``{`` to the last ``}``.
    """
    text = (raw or "").strip()
    if not text:
        return
    seen: set[str] = set()

    def fresh(candidate: str) -> bool:
        candidate = candidate.strip()
        if not candidate or candidate in seen:
            return False
        seen.add(candidate)
        return True

    if fresh(text):
        yield text
    for match in _FENCED.finditer(text):
        body = match.group(1).strip()
        if fresh(body):
            yield body
    start, end = text.find("{"), text.rfind("}")
    if 0 <= start < end:
        span = text[start:end + 1].strip()
        if fresh(span):
            yield span


def _decode(candidate: str) -> Any | None:
    try:
        return json.loads(candidate)
    except ValueError:
        pass
    # Python-literal dicts: single quotes, True/False/None.
    try:
        return ast.literal_eval(candidate)
    except (SyntaxError, ValueError, TypeError, MemoryError, RecursionError):
        return None


def parse_json_like(raw: str) -> Any | None:
    """Decode the first candidate in *raw* that parses; ``None`` if none does."""
    for candidate in iter_json_candidates(raw):
        value = _decode(candidate)
        if value is not None:
            return value
    return None
