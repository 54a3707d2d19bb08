"""
Serve command for the Agent-SAFE Grid CLI.

Usage:
    agentsafe serve [--host HOST] [--port PORT]
"""

import argparse
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agentsafe.cli.main import CLIContext


def register(subparsers: argparse._SubParsersAction) -> None:  # type: ignore[type-arg]
    """Register the serve command with the parser."""
    parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP API server",
        description="Run the Agent-SAFE Grid HTTP API.",
    )
    parser.add_argument("--host", help="Host to bind (overrides config)")
    parser.add_argument("--port", type=int, help="Port to listen on (overrides config)")
    parser.set_defaults(func=run_serve)


def run_serve(args: argparse.Namespace, ctx: "CLIContext") -> int:
    """Execute the serve command."""
    from agentsafe.cli.main import EXIT_SUCCESS
    from agentsafe.server.app import create_app, run_server

    config = ctx.config
    if args.host:
        config.server.host = args.host
    if args.port:
        config.server.port = args.port
    run_server(create_app(config), config)
    return EXIT_SUCCESS
