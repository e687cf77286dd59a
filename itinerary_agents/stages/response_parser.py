"""
Response parser for LLM-backed stages.

Handles extraction of the JSON payload from LLM responses (raw JSON,
markdown code blocks, surrounding chatter) and validation against the
stage's output contract.
"""

import json
import re
from typing import Type, TypeVar

from pydantic import BaseModel, ValidationError


ModelT = TypeVar("ModelT", bound=BaseModel)


class ParseError(Exception):
    """Raised when response parsing fails."""

    pass


def extract_json_from_response(raw_response: str) -> str:
    """
    Extract JSON content from LLM response.

    Handles multiple formats:
    - Raw JSON
    - JSON in markdown code blocks (```json ... ```)
    - JSON preceded by prose

    Args:
        raw_response: Raw LLM response string

    Returns:
        Cleaned JSON string ready for parsing
    """
    content = raw_response.strip()

    match = re.search(r"```(?:json)?\s*([\s\S]*?)```", content)
    if match:
        content = match.group(1).strip()

    start = content.find("{")
    if start == -1:
        return content

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(content)):
        char = content[i]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return content[start : i + 1]

    # No balanced object found; let the JSON parser report it
    return content[start:]


def parse_model_response(raw_response: str, model: Type[ModelT]) -> ModelT:
    """
    Parse an LLM response into a contract model.

    Raises:
        ParseError: If the response is not JSON or does not match `model`.
    """
    json_str = extract_json_from_response(raw_response)
    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        raise ParseError(f"Failed to parse response JSON: {e}")

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ParseError(
            f"Response does not match {model.__name__}: {e.error_count()} validation error(s)"
        )
