import logging
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, Mapping, TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class ResponseShape(str, Enum):
    """How a list endpoint wrapped its array this time."""

    ARRAY = "array"
    WRAPPED = "wrapped"
    DOUBLE_WRAPPED = "double_wrapped"
    UNKNOWN = "unknown"


def classify(payload: Any) -> ResponseShape:
    if isinstance(payload, list):
        return ResponseShape.ARRAY
    if isinstance(payload, dict):
        inner = payload.get("data")
        if isinstance(inner, list):
            return ResponseShape.WRAPPED
        if isinstance(inner, dict) and isinstance(inner.get("data"), list):
            return ResponseShape.DOUBLE_WRAPPED
    return ResponseShape.UNKNOWN


def unwrap_list(payload: Any, *, source: str = "") -> list:
    shape = classify(payload)
    if shape == ResponseShape.ARRAY:
        return payload
    if shape == ResponseShape.WRAPPED:
        return payload["data"]
    if shape == ResponseShape.DOUBLE_WRAPPED:
        return payload["data"]["data"]
    logger.warning(f"Unexpected list response shape{f' from {source}' if source else ''}: {type(payload).__name__}")
    return []


def unwrap_item(payload: Any) -> Any:
    """Strip up to two `{data: {...}}` envelopes around a single record."""
    for _ in range(2):
        if isinstance(payload, dict) and isinstance(payload.get("data"), dict) and "id" not in payload:
            payload = payload["data"]
        else:
            break
    return payload


def parse_items(model: type[T], items: Iterable[Any], *, source: str = "") -> list[T]:
    """Validate list items one by one; malformed items are dropped, not fatal."""
    parsed = []
    for raw in items:
        try:
            parsed.append(model.model_validate(raw))
        except ValidationError as e:
            logger.warning(f"Skipping malformed {model.__name__}{f' from {source}' if source else ''}: {e.error_count()} errors")
    return parsed


def decode_list(model: type[T], payload: Any, *, source: str = "") -> list[T]:
    return parse_items(model, unwrap_list(payload, source=source), source=source)


def _param_value(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def build_params(filters: BaseModel | Mapping[str, Any] | None, renames: Mapping[str, str] | None = None) -> dict[str, str]:
    """
    Serialize a filter object into query params. Only fields that are set and
    not None are sent.
    """
    if filters is None:
        return {}
    if isinstance(filters, BaseModel):
        items = filters.model_dump(exclude_none=True).items()
    else:
        items = ((k, v) for k, v in filters.items() if v is not None)

    renames = renames or {}
    return {renames.get(k, k): _param_value(v) for k, v in items}
