"""
Locate and interpret the JSON object in a model response.

A response is classified into exactly one outcome: it carries a template,
it requests tool calls, or it carries neither (prose or unparsable JSON).
"""
from enum import Enum
from typing import Any, Dict, List, Optional
import json
import logging
import re

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from api.schemas.mcp import ToolCall

# Configure logger
logger = logging.getLogger(__name__)

FENCED_BLOCK_PATTERN = re.compile(r"```(?:json|JSON)?\s*(.*?)\s*```", re.DOTALL)


class IterationOutcome(str, Enum):
    TEMPLATE = "template"
    TOOL_CALLS = "tool_calls"
    NEITHER = "neither"


class ParsedResponse(BaseModel):
    raw_text: str = ""
    data: Optional[Dict[str, Any]] = None
    template: Optional[Dict[str, Any]] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)
    invalid_tool_calls: List[str] = Field(default_factory=list)

    @property
    def outcome(self) -> IterationOutcome:
        # A template takes priority over further tool iteration
        if self.template is not None:
            return IterationOutcome.TEMPLATE
        if self.tool_calls:
            return IterationOutcome.TOOL_CALLS
        return IterationOutcome.NEITHER


def find_balanced_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` span, ignoring braces inside strings."""
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
                    return text[start:index + 1]
        # Unbalanced from this brace; try the next one
        start = text.find("{", start + 1)
    return None


def _load_object(candidate: Optional[str]) -> Optional[Dict[str, Any]]:
    if not candidate:
        return None
    try:
        value = json.loads(candidate)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def extract_json(text: str) -> Optional[Dict[str, Any]]:
    """
    Find the JSON object in a model response.

    Fenced code blocks are tried first, then the first balanced object in the
    raw text. Returns None when nothing parses.
    """
    if not text:
        return None

    for match in FENCED_BLOCK_PATTERN.finditer(text):
        body = match.group(1)
        data = _load_object(body) or _load_object(find_balanced_object(body))
        if data is not None:
            return data

    return _load_object(find_balanced_object(text))


def parse_response(text: str) -> ParsedResponse:
    data = extract_json(text)
    if data is None:
        logger.info("No JSON object found in model response")
        return ParsedResponse(raw_text=text or "")

    template = data.get("template")
    if not isinstance(template, dict):
        template = None

    tool_calls: List[ToolCall] = []
    invalid: List[str] = []
    raw_calls = data.get("tool_calls")
    if isinstance(raw_calls, list):
        for position, raw_call in enumerate(raw_calls):
            try:
                tool_calls.append(ToolCall.model_validate(raw_call))
            except PydanticValidationError as e:
                logger.warning(f"Ignoring malformed tool call at position {position}: {str(e)}")
                invalid.append(f"tool_calls.{position}: {e.errors()[0]['msg']}")

    return ParsedResponse(
        raw_text=text,
        data=data,
        template=template,
        tool_calls=tool_calls,
        invalid_tool_calls=invalid,
    )
