"""
HTTP API for Agent-SAFE Grid, built on aiohttp.
"""

from agentsafe.server.app import create_app, run_server

__all__ = ["create_app", "run_server"]
