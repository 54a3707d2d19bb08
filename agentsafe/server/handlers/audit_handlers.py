"""
Audit log handlers.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aiohttp import web

from agentsafe.audit.export import export_csv
from agentsafe.exceptions import ValidationError
from agentsafe.server.handlers.common import get_services, query_int


async def get_audit_log(request: "web.Request") -> "web.Response":
    """
    Get a tenant's audit log in insertion order.

    Query parameters:
        format: ``json`` (default) or ``csv``.
        limit: Maximum entries (default: 100, JSON only).
        offset: Entries to skip (JSON only).
    """
    from aiohttp import web

    tenant_id = request.match_info["tenant_id"]
    recorder = get_services(request).recorder
    output = request.query.get("format", "json")

    if output == "csv":
        document = export_csv(recorder.entries(tenant_id))
        return web.Response(
            text=document,
            content_type="text/csv",
            headers={
                "Content-Disposition": f'attachment; filename="audit-log-{tenant_id}.csv"'
            },
        )
    if output != "json":
        raise ValidationError(f"Unknown format: {output}", details={"valid": ["json", "csv"]})

    limit = query_int(request, "limit", 100)
    offset = query_int(request, "offset", 0) or 0
    entries = recorder.entries(tenant_id, limit=limit, offset=offset)
    return web.json_response(
        {
            "tenant_id": tenant_id,
            "entries": [e.to_dict() for e in entries],
            "total": recorder.count(tenant_id),
            "limit": limit,
            "offset": offset,
        }
    )


async def verify_audit_log(request: "web.Request") -> "web.Response":
    """Check the hash-chain linkage of a tenant's log."""
    from aiohttp import web

    tenant_id = request.match_info["tenant_id"]
    services = get_services(request)
    entries = services.recorder.entries(tenant_id)
    issues = services.verifier.verify_chain(entries)
    return web.json_response(
        {
            "tenant_id": tenant_id,
            "total_entries": len(entries),
            "chained": any(e.previous_hash is not None for e in entries),
            "is_valid": not issues,
            "chain_issues": issues,
        }
    )
