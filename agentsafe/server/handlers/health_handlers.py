"""
Health check handler.
"""

import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aiohttp import web

from agentsafe.server.handlers.common import get_services
from agentsafe.version import __version__


async def health_check(request: "web.Request") -> "web.Response":
    """
    Health check endpoint.

    Returns 200 with status "healthy" when the database answers, 503
    otherwise. Suitable for load balancer health checks.
    """
    from aiohttp import web

    database_ok = get_services(request).database.health_check()
    return web.json_response(
        {
            "status": "healthy" if database_ok else "degraded",
            "version": __version__,
            "checks": {"database": "ready" if database_ok else "error"},
            "timestamp": time.time(),
        },
        status=200 if database_ok else 503,
    )
