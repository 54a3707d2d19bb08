"""
Request helpers shared by the handlers.
"""

import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from aiohttp import web

from agentsafe.exceptions import ValidationError
from agentsafe.services import Services


def get_services(request: "web.Request") -> Services:
    return request.app["services"]


async def read_json(request: "web.Request") -> dict[str, Any]:
    """
    Read a JSON object body.

    Raises:
        ValidationError: If the body is not a JSON object.
    """
    try:
        data = await request.json()
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON body: {e.msg}") from e
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def query_int(request: "web.Request", name: str, default: int | None) -> int | None:
    """
    Read a non-negative integer query parameter.

    Raises:
        ValidationError: If the value is not a non-negative integer.
    """
    raw = request.query.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValidationError(f"'{name}' must be an integer") from e
    if value < 0:
        raise ValidationError(f"'{name}' must be non-negative")
    return value
