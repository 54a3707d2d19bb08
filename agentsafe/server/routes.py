"""
API route definitions for the Agent-SAFE Grid server.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aiohttp import web


def setup_routes(app: "web.Application") -> None:
    """
    Set up all API routes on the application.

    Args:
        app: The aiohttp application instance.
    """
    from agentsafe.server.handlers import (
        audit_handlers,
        chat_handlers,
        health_handlers,
        llm_handlers,
        metering_handlers,
        policy_handlers,
    )

    app.router.add_get("/v1/health", health_handlers.health_check, name="health")

    app.router.add_post(
        "/api/llm/test-connection", llm_handlers.test_connection, name="llm_test_connection"
    )

    app.router.add_get("/v1/rules", policy_handlers.list_rule_types, name="rules_list")
    app.router.add_post(
        "/v1/policies/validate", policy_handlers.validate_policy, name="policies_validate"
    )

    tenant = "/v1/tenants/{tenant_id}"
    app.router.add_get(f"{tenant}/policy", policy_handlers.get_policy, name="policy_get")
    app.router.add_put(f"{tenant}/policy", policy_handlers.put_policy, name="policy_put")
    app.router.add_post(f"{tenant}/enforce", chat_handlers.enforce, name="enforce")
    app.router.add_post(f"{tenant}/chat", chat_handlers.chat, name="chat")
    app.router.add_get(f"{tenant}/metering", metering_handlers.get_metering, name="metering_get")
    app.router.add_post(
        f"{tenant}/metering/reset", metering_handlers.reset_metering, name="metering_reset"
    )
    app.router.add_get(f"{tenant}/audit", audit_handlers.get_audit_log, name="audit_get")
    app.router.add_get(
        f"{tenant}/audit/verify", audit_handlers.verify_audit_log, name="audit_verify"
    )
