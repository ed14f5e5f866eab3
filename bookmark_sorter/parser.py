from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict

from bookmark_sorter.errors import ParseFailure


logger = logging.getLogger(__name__)


_QUOTE_CHARS = "\"'“”‘’"
_TRAILING_STOPS = ".。"
_FENCED_BLOCK = re.compile(r"^\s*```(?:[\w-]+\n)?\s*(.*?)\s*(?:```\s*)?$", re.DOTALL)


@dataclass(frozen=True)
class ClassificationResult:
    category: str
    title: str | None = None


def _unfenced(text: str) -> str:
    """Drop a surrounding markdown code block, keeping what it wraps."""

    match = _FENCED_BLOCK.match(text)
    return match.group(1) if match else text.strip()


def _first_balanced_object(text: str) -> str | None:
    """Return the first ``{...}`` region whose braces balance, ignoring braces in strings."""

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


def _load_object(raw_text: str) -> Dict[str, Any]:
    segment = _first_balanced_object(raw_text)
    if segment is None:
        raise ParseFailure("no JSON object in model output")
    try:
        payload = json.loads(segment)
    except json.JSONDecodeError as exc:
        raise ParseFailure(f"invalid JSON in model output: {exc}") from exc
    if not isinstance(payload, dict):
        raise ParseFailure("model output JSON is not an object")
    return payload


def clean_label(text: str) -> str:
    value = "".join(char for char in text if char not in _QUOTE_CHARS).strip()
    return value.rstrip(_TRAILING_STOPS).strip()


def parse(
    raw_text: Any,
    original_title: str,
    rename_enabled: bool,
    default_category: str = "",
) -> ClassificationResult:
    """Turn free-form model output into a category and an optional new title.

    A JSON object anywhere in the text wins; otherwise the whole text is the
    category label. Renames only survive when ``rename_enabled`` is set, and an
    empty category is replaced by ``default_category``.
    """

    text = raw_text if isinstance(raw_text, str) else str(raw_text or "")
    category = ""
    title: str | None = None
    try:
        payload = _load_object(text)
    except ParseFailure as exc:
        logger.debug("Falling back to raw model text: %s", exc)
        category = clean_label(_unfenced(text))
    else:
        raw_category = payload.get("category")
        if isinstance(raw_category, str):
            category = clean_label(raw_category)
        raw_title = payload.get("title")
        if isinstance(raw_title, str) and raw_title.strip():
            title = raw_title.strip()

    if not rename_enabled or not title:
        title = original_title
    if not category:
        category = default_category
    return ClassificationResult(category=category, title=title)
