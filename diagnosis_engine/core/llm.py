"""Turning free-form model output into validated insights.

Two independent stages: ``strip_llm_fences`` removes wrapper markers, then
``parse_insight_json`` strict-parses and validates. Neither substitutes a
default object for bad output.
"""

import json
import re
from typing import Any

from pydantic import ValidationError

from diagnosis_engine.core.exceptions import InvalidExtractionError, ParseError
from diagnosis_engine.core.schemas_diagnosis import DimensionInsight

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)```", re.DOTALL)


def strip_llm_fences(raw_output: str) -> str:
    """Strip markdown code fences from LLM output.

    Handles: ```json ... ```, ``` ... ```, an unterminated opening fence,
    and leading/trailing whitespace.
    """
    cleaned = raw_output.strip()

    fence_match = _FENCE_RE.search(cleaned)
    if fence_match:
        return fence_match.group(1).strip()

    # Fallback: strip a dangling fence on either end
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_llm_json_dict(raw_output: str) -> dict[str, Any]:
    """
    Parse LLM output as a JSON object.

    Raises:
        ParseError: If the cleaned text is not JSON or not an object
    """
    cleaned = strip_llm_fences(raw_output)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        preview = cleaned[:120].replace("\n", " ")
        raise ParseError(f"Model output is not JSON ({e.msg}): {preview!r}") from e

    if not isinstance(parsed, dict):
        raise ParseError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def parse_insight_json(raw_output: str) -> DimensionInsight:
    """
    Parse and validate extraction output as a DimensionInsight.

    Raises:
        ParseError: If the output is not a JSON object
        InvalidExtractionError: If the object fails insight validation
    """
    data = parse_llm_json_dict(raw_output)
    try:
        return DimensionInsight.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) or "root" for err in e.errors())
        raise InvalidExtractionError(f"Extraction failed validation on: {fields}") from e
