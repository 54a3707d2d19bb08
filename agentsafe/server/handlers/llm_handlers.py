"""
Provider connectivity handler.
"""

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aiohttp import web

from agentsafe.server.handlers.common import read_json

logger = logging.getLogger("agentsafe.server.handlers.llm")


async def test_connection(request: "web.Request") -> "web.Response":
    """
    Test an LLM provider configuration before it is saved.

    Request body:
        {
            "provider": "openai",
            "apiKey": "sk-...",
            "baseUrl": "https://api.openai.com/v1",
            "endpoint": "/chat/completions",
            "selectedModel": "gpt-4-turbo"
        }

    Returns:
        200 with ``{success, message, latency}`` when the provider answered,
        400 with ``{success, message, error}`` otherwise.
    """
    from aiohttp import web

    data = await read_json(request)
    provider = data.get("provider")
    if not provider:
        return web.json_response(
            {"success": False, "error": "Provider type is required"}, status=400
        )

    base_url = data.get("baseUrl")
    logger.info(f"Connection test for provider {provider}" + (f" at {base_url}" if base_url else ""))

    tester = request.app["connection_tester"]
    result = await tester.test_connection(
        str(provider),
        api_key=data.get("apiKey"),
        base_url=base_url,
        endpoint=data.get("endpoint"),
        selected_model=data.get("selectedModel"),
    )
    if result.success:
        logger.info(f"Connection test passed for {provider} ({result.latency}ms)")
    else:
        logger.warning(f"Connection test failed for {provider}: {result.error}")
    return web.json_response(result.to_dict(), status=200 if result.success else 400)
