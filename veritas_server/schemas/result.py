"""
Schemas - Structured Output Results

Typed parsing of JSON-shaped model responses. Callers branch on
`Ok` / `ParseError` instead of catching exceptions.
"""

import json
import re
from dataclasses import dataclass
from typing import Generic, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError


T = TypeVar("T", bound=BaseModel)

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_JSON_BLOCK = re.compile(r"(\{.*\}|\[.*\])", re.DOTALL)


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successfully parsed value."""
    value: T


@dataclass(frozen=True)
class ParseError:
    """Raw model output that did not match the expected schema."""
    raw: str
    reason: str


ParseResult = Union[Ok[T], ParseError]


def _extract_json_text(raw: str) -> str:
    """Strip markdown fences and pull out the first JSON block."""
    text = _FENCE_PATTERN.sub("", raw.strip()).strip()
    try:
        json.loads(text)
        return text
    except json.JSONDecodeError:
        match = _JSON_BLOCK.search(text)
        return match.group(1) if match else text


def parse_structured(raw: str, model: Type[T]) -> "ParseResult[T]":
    """
    Parse a model response into `model`.

    Args:
        raw: Raw LLM output (may be fenced or surrounded by prose)
        model: Pydantic model describing the expected shape

    Returns:
        Ok(value) on success, ParseError(raw, reason) otherwise
    """
    if not raw or not raw.strip():
        return ParseError(raw=raw or "", reason="empty response")

    text = _extract_json_text(raw)
    try:
        return Ok(model.model_validate_json(text))
    except ValidationError as e:
        return ParseError(raw=raw, reason=str(e.errors()[0]["msg"]) if e.errors() else str(e))
