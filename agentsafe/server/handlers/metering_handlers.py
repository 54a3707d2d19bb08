"""
Metering handlers.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aiohttp import web

from agentsafe.server.handlers.common import get_services


async def get_metering(request: "web.Request") -> "web.Response":
    """Get a tenant's usage counters and budget utilization."""
    from aiohttp import web

    tenant_id = request.match_info["tenant_id"]
    services = get_services(request)
    policy = services.policies.load(tenant_id)
    stats = services.ledger.open(tenant_id, policy.max_budget)
    return web.json_response(
        {
            "tenant_id": tenant_id,
            "stats": stats.to_dict(),
            "max_budget": policy.max_budget,
            "utilization": round(stats.utilization(policy.max_budget), 4),
        }
    )


async def reset_metering(request: "web.Request") -> "web.Response":
    """Start a new budget period for a tenant."""
    from aiohttp import web

    tenant_id = request.match_info["tenant_id"]
    services = get_services(request)
    policy = services.policies.load(tenant_id)
    stats = services.ledger.reset(tenant_id, policy.max_budget)
    return web.json_response({"tenant_id": tenant_id, "stats": stats.to_dict()})
