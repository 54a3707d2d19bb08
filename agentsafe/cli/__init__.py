"""
Command-line interface for Agent-SAFE Grid.
"""

from agentsafe.cli.main import main

__all__ = ["main"]
