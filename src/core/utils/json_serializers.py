"""JSON serialization helpers for log records and diagnostic output."""

from datetime import date, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel


def _serialize_known_type(obj: Any) -> tuple[bool, Any]:
    """Try to serialize by known type. Returns (handled, result)."""
    if isinstance(obj, (datetime, date)):
        return True, obj.isoformat()
    if isinstance(obj, timedelta):
        return True, obj.total_seconds()
    if isinstance(obj, Enum):
        return True, obj.value
    if isinstance(obj, (set, frozenset)):
        return True, sorted(str(item) for item in obj)
    if isinstance(obj, Path):
        return True, str(obj)
    return False, None


def json_serializer(obj: Any) -> Any:
    """
    Serializer for json.dumps(default=...).

    - datetime/date -> ISO 8601 string
    - timedelta -> seconds as float
    - Enum -> value
    - set/frozenset (scopes) -> sorted list
    - pydantic models -> dict, excluding access/refresh token fields
    - Everything else -> str()

    Objects are never expanded through __dict__, so a Credential that ends up
    in a log record is rendered by its repr, which omits the token value.
    """
    handled, result = _serialize_known_type(obj)
    if handled:
        return result
    if isinstance(obj, BaseModel):
        return obj.model_dump(exclude={"access_token", "refresh_token"}, mode="json")
    return str(obj)


__all__ = ["json_serializer"]
