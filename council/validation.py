"""Validation of reasoning-service payloads.

Nothing the service returns is trusted until it passes through here. Results
are tagged (Valid / Invalid) rather than raised, so every caller has to
branch on the malformed case explicitly.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar, Union

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class Valid(Generic[T]):
    data: T


@dataclass(frozen=True)
class Invalid:
    reason: str


ValidationResult = Union[Valid[T], Invalid]


def _describe(exc: ValidationError, limit: int = 5) -> str:
    parts = []
    for err in exc.errors()[:limit]:
        loc = " → ".join(str(p) for p in err["loc"]) or "(root)"
        parts.append(f"{loc}: {err['msg']}")
    extra = exc.error_count() - limit
    if extra > 0:
        parts.append(f"+{extra} more")
    return "; ".join(parts)


def _decode(payload: Any) -> tuple[Any, Optional[str]]:
    if isinstance(payload, (str, bytes)):
        try:
            return json.loads(payload), None
        except json.JSONDecodeError as exc:
            return None, f"malformed JSON: {exc.msg} at position {exc.pos}"
    return payload, None


def validate_payload(model: type[M], payload: Any) -> ValidationResult[M]:
    """Validate a single JSON object against a payload model."""
    data, error = _decode(payload)
    if error:
        return Invalid(error)
    if not isinstance(data, dict):
        return Invalid(f"expected a JSON object, got {type(data).__name__}")
    try:
        return Valid(model.model_validate(data))
    except ValidationError as exc:
        reason = _describe(exc)
        logger.warning("Schema validation failed for %s: %s", model.__name__, reason)
        return Invalid(reason)


def validate_payload_list(
    model: type[M],
    payload: Any,
    *,
    expected_count: int | None = None,
    unique_field: str | None = None,
) -> ValidationResult[list[M]]:
    """Validate a JSON array element by element.

    Any invalid element invalidates the whole array; elements are never
    dropped, so positions stay meaningful to the caller.
    """
    data, error = _decode(payload)
    if error:
        return Invalid(error)
    if not isinstance(data, list):
        return Invalid(f"expected a JSON array, got {type(data).__name__}")
    if expected_count is not None and len(data) != expected_count:
        return Invalid(f"expected {expected_count} item(s), got {len(data)}")

    items: list[M] = []
    for index, element in enumerate(data):
        result = validate_payload(model, element)
        if isinstance(result, Invalid):
            return Invalid(f"item {index}: {result.reason}")
        items.append(result.data)

    if unique_field:
        seen: set[Any] = set()
        for item in items:
            key = getattr(item, unique_field)
            if key in seen:
                return Invalid(f"duplicate {unique_field} '{key}'")
            seen.add(key)

    return Valid(items)
