"""
Enforcement and chat turn handlers.
"""

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from aiohttp import web

from agentsafe.exceptions import ValidationError
from agentsafe.models.messages import ChatMessage
from agentsafe.server.handlers.common import get_services, read_json

logger = logging.getLogger("agentsafe.server.handlers.chat")


def _message(data: dict[str, Any]) -> str:
    message = data.get("message")
    if not isinstance(message, str):
        raise ValidationError("'message' must be a string")
    return message


def _context(data: dict[str, Any]) -> dict[str, Any]:
    context = data.get("context") or {}
    if not isinstance(context, dict):
        raise ValidationError("'context' must be an object")
    return context


def _history(data: dict[str, Any]) -> list[ChatMessage]:
    raw = data.get("history") or []
    if not isinstance(raw, list):
        raise ValidationError("'history' must be a list")
    history = []
    for position, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValidationError(f"history[{position}] must be an object")
        try:
            history.append(ChatMessage.from_dict(item))
        except (TypeError, ValueError) as e:
            raise ValidationError(f"history[{position}] is invalid: {e}") from e
    return history


async def enforce(request: "web.Request") -> "web.Response":
    """
    Dry-run the prompt checks of a turn.

    Nothing is written to the ledger or the audit log. A block is reported
    in the body (``allowed: false``), not as an error status.

    Request body:
        {
            "message": "email me at a@b.com",
            "provider": "gemini",
            "user": "user_1",
            "context": {"role": "admin", "country": "US"}
        }
    """
    from aiohttp import web

    tenant_id = request.match_info["tenant_id"]
    data = await read_json(request)
    result = get_services(request).gateway.check(
        tenant_id,
        _message(data),
        provider=data.get("provider"),
        context=_context(data),
        user=str(data.get("user", "")),
    )
    return web.json_response(result.to_dict())


async def chat(request: "web.Request") -> "web.Response":
    """
    Run one chat turn through enforcement, the model, metering and audit.

    Request body:
        {
            "message": "Summarize this contract",
            "provider": "gemini",
            "user": "user_1",
            "history": [{"role": "user", "content": "..."}],
            "context": {"role": "admin", "country": "US"},
            "systemInstruction": "..."
        }

    Returns:
        200 with the signed user and model messages and the updated
        metering counters. A policy block answers 403 and an upstream
        failure 502 (504 on timeout), both with the error body.
    """
    from aiohttp import web

    tenant_id = request.match_info["tenant_id"]
    data = await read_json(request)
    provider = data.get("provider")
    if not isinstance(provider, str) or not provider:
        raise ValidationError("'provider' is required")
    system_instruction = data.get("systemInstruction")
    if system_instruction is not None and not isinstance(system_instruction, str):
        raise ValidationError("'systemInstruction' must be a string")

    result = await get_services(request).gateway.process_turn(
        tenant_id,
        user=str(data.get("user", "anonymous")),
        message=_message(data),
        provider=provider,
        history=_history(data),
        context=_context(data),
        system_instruction=system_instruction,
    )
    return web.json_response(result.to_dict())
