"""
Shared helpers for Agent-SAFE data models.

Models are plain dataclasses. Frozen models cannot inherit mutable base
behaviour, so serialization lives in standalone functions that every model
calls from its own ``to_dict``.
"""

import time
import uuid
from dataclasses import asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def generate_uuid() -> str:
    """Generate a new UUID4 string."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def now_ms() -> int:
    """Return the current time as integer milliseconds since the epoch."""
    return int(time.time() * 1000)


def serialize_value(value: Any, exclude_none: bool = False) -> Any:
    """
    Serialize a single value to a JSON-compatible type.

    Args:
        value: Value to serialize.
        exclude_none: If True, drop None values inside nested dicts.

    Returns:
        JSON-compatible representation of the value.
    """
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {
            k: serialize_value(v, exclude_none)
            for k, v in value.items()
            if not (exclude_none and v is None)
        }
    if isinstance(value, (list, tuple, set, frozenset)):
        items = sorted(value) if isinstance(value, (set, frozenset)) else value
        return [serialize_value(item, exclude_none) for item in items]
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


def model_to_dict(instance: Any, exclude_none: bool = False) -> dict[str, Any]:
    """
    Convert a dataclass instance to a dictionary of JSON-compatible values.

    Args:
        instance: A dataclass instance to convert.
        exclude_none: If True, exclude keys with None values from the output.

    Returns:
        Dictionary representation of the instance.
    """
    result = asdict(instance)
    return {
        k: serialize_value(v, exclude_none)
        for k, v in result.items()
        if not (exclude_none and v is None)
    }
