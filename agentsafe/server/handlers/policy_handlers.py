"""
Tenant policy handlers.
"""

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aiohttp import web

from agentsafe.engine.catalog import RULE_CATALOG
from agentsafe.exceptions import ValidationError
from agentsafe.server.handlers.common import get_services, read_json

logger = logging.getLogger("agentsafe.server.handlers.policy")


async def get_policy(request: "web.Request") -> "web.Response":
    """
    Get a tenant's policy.

    Query parameters:
        format: ``document`` (default) or ``dsl`` for the policy DSL export.
    """
    from aiohttp import web

    tenant_id = request.match_info["tenant_id"]
    policy = get_services(request).policies.load(tenant_id)
    output = request.query.get("format", "document")
    if output == "dsl":
        return web.json_response(policy.export_dsl())
    if output != "document":
        raise ValidationError(f"Unknown format: {output}", details={"valid": ["document", "dsl"]})
    return web.json_response({"tenant_id": tenant_id, "policy": policy.to_dict()})


async def put_policy(request: "web.Request") -> "web.Response":
    """
    Replace a tenant's policy.

    The body is a policy document. It is validated, its legacy flags are
    recomputed from the advanced rules, and it is stored. Validation errors
    answer 400 and store nothing.
    """
    from aiohttp import web

    tenant_id = request.match_info["tenant_id"]
    document = await read_json(request)
    stored, result = get_services(request).policies.save(tenant_id, document)
    return web.json_response(
        {
            "tenant_id": tenant_id,
            "policy": stored.to_dict(),
            "validation": result.to_dict(),
        }
    )


async def validate_policy(request: "web.Request") -> "web.Response":
    """Validate a policy document without storing it."""
    from aiohttp import web

    document = await read_json(request)
    result = get_services(request).policies.validate(document)
    return web.json_response(result.to_dict(), status=200 if result.valid else 400)


async def list_rule_types(request: "web.Request") -> "web.Response":
    """List the rule catalog with default parameters."""
    from aiohttp import web

    return web.json_response({"rules": [d.to_dict() for d in RULE_CATALOG.values()]})
