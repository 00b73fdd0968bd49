"""Lenient parsing of JSON objects out of free-form model output."""
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from dyor_research.exceptions import LLMResponseError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_FENCE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)


def strip_fences(text: str) -> str:
    """Return the body of the first fenced block, or the text unchanged."""
    match = _FENCE.search(text)
    return match.group(1) if match else text


def first_balanced_object(text: str) -> Optional[str]:
    """Locate the first balanced ``{...}`` span, ignoring braces inside strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # Unbalanced from this brace; try the next one
        start = text.find("{", start + 1)
    return None


def extract_json_object(text: str) -> Dict[str, Any]:
    if not text or not text.strip():
        raise LLMResponseError("Empty model response", raw=text or "")
    candidate = first_balanced_object(strip_fences(text))
    if candidate is None:
        raise LLMResponseError("No JSON object found in model response", raw=text)
    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise LLMResponseError(f"Invalid JSON in model response: {e}", raw=text) from e
    if not isinstance(payload, dict):
        raise LLMResponseError("Model response JSON is not an object", raw=text)
    return payload


def lenient_validate(model_cls: Type[M], payload: Dict[str, Any]) -> M:
    """Validate ``payload``, replacing malformed top-level fields with their defaults.

    Raises pydantic.ValidationError only when a required field is unusable.
    """
    data = dict(payload)
    while True:
        try:
            return model_cls.model_validate(data)
        except ValidationError as e:
            bad = {err["loc"][0] for err in e.errors() if err.get("loc")}
            bad &= set(data)
            if not bad:
                raise
            logger.debug(f"Defaulting malformed fields for {model_cls.__name__}: {sorted(bad)}")
            for key in bad:
                data.pop(key)


@dataclass(frozen=True)
class ParseOutcome(Generic[M]):
    """Tagged parse result: ``ok`` with a value, or a fallback reason."""
    ok: bool
    value: Optional[M] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: M) -> "ParseOutcome[M]":
        return cls(ok=True, value=value)

    @classmethod
    def fallback(cls, error: str) -> "ParseOutcome[M]":
        return cls(ok=False, error=error)


def parse_model_response(text: str, model_cls: Type[M]) -> ParseOutcome[M]:
    try:
        payload = extract_json_object(text)
        return ParseOutcome.success(lenient_validate(model_cls, payload))
    except (LLMResponseError, ValidationError) as e:
        return ParseOutcome.fallback(str(e))
