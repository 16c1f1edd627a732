"""
Structured output parsing and validation.

Turns raw model text into a validated pydantic model and classifies
failures into exactly two kinds:

- parse_failure: the text does not contain decodable JSON
- schema_violation: JSON was decoded but does not match the declared shape

Accepted input forms:
- a bare JSON object
- a JSON object inside a Markdown code fence
- a JSON object embedded in surrounding prose
"""

from __future__ import annotations

import json
import re
from typing import Any, List, Type, TypeVar

from pydantic import BaseModel, ValidationError

from analyzer.app.schemas.stage import StageErrorKind

SchemaT = TypeVar("SchemaT", bound=BaseModel)

_CODE_FENCE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)


class StructuredOutputError(Exception):
    kind: StageErrorKind = StageErrorKind.PARSE_FAILURE


class OutputParseError(StructuredOutputError):
    kind = StageErrorKind.PARSE_FAILURE


class OutputSchemaError(StructuredOutputError):
    kind = StageErrorKind.SCHEMA_VIOLATION

    def __init__(self, message: str, locations: List[str]) -> None:
        super().__init__(message)
        self.locations = locations


def _candidate_payloads(raw_text: str) -> List[str]:
    text = raw_text.strip()
    candidates = [text]

    for match in _CODE_FENCE.finditer(text):
        candidates.append(match.group(1).strip())

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    return candidates


def extract_json_object(raw_text: str) -> Any:
    """
    Decode the first JSON object found in `raw_text`.

    Raises OutputParseError when no candidate decodes to a JSON object.
    """
    if not raw_text or not raw_text.strip():
        raise OutputParseError("Model returned empty output")

    last_error: str = "no JSON object found"

    for candidate in _candidate_payloads(raw_text):
        try:
            decoded = json.loads(candidate)
        except json.JSONDecodeError as exc:
            last_error = str(exc)
            continue

        if isinstance(decoded, dict):
            return decoded

        last_error = f"expected a JSON object, got {type(decoded).__name__}"

    raise OutputParseError(f"Model output is not valid JSON: {last_error}")


def _location(error: Any) -> str:
    loc = ".".join(str(part) for part in error.get("loc", ())) or "<root>"
    return f"{loc}: {error.get('msg', 'invalid')}"


def parse_structured_output(raw_text: str, schema: Type[SchemaT]) -> SchemaT:
    """
    Parse `raw_text` and validate it against `schema`.

    Raises:
        OutputParseError: the text does not contain a JSON object
        OutputSchemaError: the object does not match `schema`
    """
    payload = extract_json_object(raw_text)

    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        locations = [_location(error) for error in exc.errors()]
        raise OutputSchemaError(
            f"Model output does not match {schema.__name__} "
            f"({len(locations)} error(s))",
            locations=locations,
        ) from exc
