"""Turn raw model output into validated memories without ever raising."""

from __future__ import annotations

import json
import math
import re
from typing import Any

from pydantic import ValidationError

from recollect.config.logging import logger
from recollect.errors import ExtractionParseFailure
from recollect.memory.models import DEFAULT_IMPORTANCE, ExtractedMemory, MemoryType

_FENCE_OPEN = re.compile(r"^```(?:json)?\n?")
_FENCE_CLOSE = re.compile(r"\n?```$")
_GREEDY_ARRAY = re.compile(r"\[[\s\S]*\]")
_DECODER = json.JSONDecoder()


def strip_code_fence(text: str) -> str:
    """Remove a leading and trailing markdown fence around the response."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_OPEN.sub("", cleaned, count=1)
        cleaned = _FENCE_CLOSE.sub("", cleaned, count=1)
    return cleaned


def find_json_array(text: str) -> list[Any]:
    """Return the first JSON array embedded in ``text``.

    The widest ``[...]`` span is tried first; when it does not decode, every
    ``[`` is tried in order with a raw decode so prose around or between
    brackets does not hide a valid array.
    """
    match = _GREEDY_ARRAY.search(text)
    if match is None:
        raise ExtractionParseFailure("no_json_array")
    try:
        value = json.loads(match.group(0))
    except json.JSONDecodeError:
        value = None
    if isinstance(value, list):
        return value

    for index, char in enumerate(text):
        if char != "[":
            continue
        try:
            value, _ = _DECODER.raw_decode(text, index)
        except json.JSONDecodeError:
            continue
        if isinstance(value, list):
            return value
    raise ExtractionParseFailure("json_array_unparseable")


def _coerce_importance(value: Any) -> float | None:
    """Parse a model-provided importance, clamped to [0, 1]; ``None`` when unusable."""
    if value is None:
        return DEFAULT_IMPORTANCE
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        parsed = float(value)
    elif isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(parsed) or math.isinf(parsed):
        return None
    return min(1.0, max(0.0, parsed))


def coerce_memory(candidate: Any) -> ExtractedMemory | None:
    """Validate one array element; malformed elements are dropped, not repaired."""
    if not isinstance(candidate, dict):
        return None
    content = candidate.get("content")
    if not isinstance(content, str) or not content.strip():
        return None
    importance = _coerce_importance(candidate.get("importance"))
    if importance is None:
        return None
    raw_tags = candidate.get("tags")
    tags = [tag for tag in raw_tags if isinstance(tag, str)] if isinstance(raw_tags, list) else []
    try:
        return ExtractedMemory(
            content=content,
            type=MemoryType.parse(candidate.get("type")),
            importance=importance,
            tags=tags,
        )
    except ValidationError:
        return None


def parse_extraction_response(raw: str | None) -> list[ExtractedMemory]:
    """Parse model output into memories; any parsing failure yields ``[]``."""
    if not raw or not raw.strip():
        return []
    try:
        candidates = find_json_array(strip_code_fence(raw))
    except ExtractionParseFailure as exc:
        logger.debug(f"Extraction response not usable: {exc}")
        return []

    memories: list[ExtractedMemory] = []
    for candidate in candidates:
        memory = coerce_memory(candidate)
        if memory is None:
            logger.debug(f"Dropping malformed memory candidate: {candidate!r}")
            continue
        memories.append(memory)
    return memories
