"""Normalise generative-provider output.

Providers answer in different shapes (lists of generations, Gemini candidate
trees, bare objects, plain strings). Each extractor below is a pure function
returning ``None`` when it does not recognise the shape; the first hit wins
and a fixed message closes the chain.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from typing import Any

ANSWER_MARKER = "Answer:"
FALLBACK_ANSWER = (
    "I'm sorry, I couldn't generate a proper answer to your question. "
    "Please try rephrasing it."
)

_TEXT_FIELDS = ("generated_text", "text", "answer")
_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)

TextExtractor = Callable[[Any], str | None]
JsonExtractor = Callable[[str], dict[str, Any] | None]


def _text_field(item: Any) -> str | None:
    if not isinstance(item, dict):
        return None
    for field in _TEXT_FIELDS:
        value = item.get(field)
        if isinstance(value, str):
            return value
    return None


def strip_echoed_prompt(text: str, marker: str = ANSWER_MARKER) -> str:
    if marker in text:
        return text.rpartition(marker)[2].strip()
    return text.strip()


def from_generation_list(raw: Any) -> str | None:
    if not isinstance(raw, list) or not raw:
        return None
    text = _text_field(raw[0])
    if text is None:
        return None
    return strip_echoed_prompt(text)


def from_string_list(raw: Any) -> str | None:
    if isinstance(raw, list) and raw and isinstance(raw[0], str):
        return raw[0]
    return None


def from_gemini_candidates(raw: Any) -> str | None:
    if not isinstance(raw, dict):
        return None
    candidates = raw.get("candidates") or []
    if not candidates or not isinstance(candidates[0], dict):
        return None
    parts = (candidates[0].get("content") or {}).get("parts") or []
    texts = [part["text"] for part in parts if isinstance(part, dict) and part.get("text")]
    if not texts:
        return None
    return "".join(texts)


def from_text_object(raw: Any) -> str | None:
    text = _text_field(raw)
    return text.strip() if text is not None else None


def from_plain_string(raw: Any) -> str | None:
    return raw if isinstance(raw, str) else None


TEXT_EXTRACTORS: tuple[TextExtractor, ...] = (
    from_generation_list,
    from_string_list,
    from_gemini_candidates,
    from_text_object,
    from_plain_string,
)


def extract_text(raw: Any) -> str | None:
    for extractor in TEXT_EXTRACTORS:
        text = extractor(raw)
        if text is not None:
            return text
    return None


def extract_answer(raw: Any) -> str:
    text = extract_text(raw)
    if text is None or not text.strip():
        return FALLBACK_ANSWER
    return text


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        value = json.loads(text)
    except (TypeError, ValueError):
        return None
    return value if isinstance(value, dict) else None


def parse_direct(text: str) -> dict[str, Any] | None:
    return _loads_object(text.strip())


def parse_fenced_block(text: str) -> dict[str, Any] | None:
    match = _FENCED_BLOCK.search(text)
    if not match:
        return None
    return _loads_object(match.group(1))


def first_balanced_object(text: str) -> str | None:
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start : index + 1]
        start = text.find("{", start + 1)
    return None


def parse_balanced_region(text: str) -> dict[str, Any] | None:
    region = first_balanced_object(text)
    if region is None:
        return None
    return _loads_object(region)


JSON_EXTRACTORS: tuple[JsonExtractor, ...] = (
    parse_direct,
    parse_fenced_block,
    parse_balanced_region,
)


def extract_json(raw: Any) -> dict[str, Any]:
    """Parse a structured result, degrading to ``{"rawResponse": text}``."""
    text = extract_text(raw)
    if text is None:
        # No model text at all (safety block, usage-only body): nothing to parse.
        return {"rawResponse": raw if isinstance(raw, str) else json.dumps(raw, default=str)}
    for extractor in JSON_EXTRACTORS:
        parsed = extractor(text)
        if parsed is not None:
            return parsed
    return {"rawResponse": text}
