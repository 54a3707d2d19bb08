"""
Agent-SAFE Grid HTTP server application.

Example:
    Running the server::

        from agentsafe.config import load_config
        from agentsafe.server import create_app, run_server

        config = load_config("agentsafe.yaml")
        run_server(create_app(config), config)
"""

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aiohttp import web

from agentsafe.adapters.base import ModelAdapter
from agentsafe.adapters.connectivity import ConnectionTester
from agentsafe.config.schema import AgentSafeConfig
from agentsafe.services import Services

logger = logging.getLogger("agentsafe.server")


def create_app(
    config: AgentSafeConfig | None = None,
    adapter: ModelAdapter | None = None,
    connection_tester: ConnectionTester | None = None,
) -> "web.Application":
    """
    Create the Agent-SAFE Grid HTTP application.

    Services are built when the application starts and closed when it
    shuts down.

    Args:
        config: Configuration. Defaults to the built-in defaults.
        adapter: Model adapter for chat turns. Defaults to EchoAdapter.
        connection_tester: Provider connectivity tester.

    Returns:
        Configured aiohttp Application.
    """
    from aiohttp import web

    from agentsafe.server.middleware import (
        create_api_key_middleware,
        create_error_handler_middleware,
        create_request_id_middleware,
        create_request_logging_middleware,
    )
    from agentsafe.server.routes import setup_routes

    config = config or AgentSafeConfig()
    middlewares = [
        create_request_id_middleware(),
        create_request_logging_middleware(),
        create_error_handler_middleware(),
        create_api_key_middleware(
            config.server.api_keys,
            header_name=config.server.api_key_header,
        ),
    ]

    app = web.Application(middlewares=middlewares)
    app["config"] = config
    app["connection_tester"] = connection_tester or ConnectionTester()
    setup_routes(app)

    async def on_startup(app: "web.Application") -> None:
        logger.info("Starting Agent-SAFE Grid server...")
        app["services"] = Services.from_config(config, adapter)
        logger.info("Agent-SAFE Grid server started")

    async def on_cleanup(app: "web.Application") -> None:
        services = app.get("services")
        if services is not None:
            services.close()
        logger.info("Agent-SAFE Grid server shut down")

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)
    return app


def run_server(app: "web.Application", config: AgentSafeConfig | None = None) -> None:
    """Run the HTTP server (blocking)."""
    from aiohttp import web

    config = config or app["config"]
    logger.info(f"Starting server on http://{config.server.host}:{config.server.port}")
    web.run_app(
        app,
        host=config.server.host,
        port=config.server.port,
        print=lambda msg: logger.info(msg),
    )
