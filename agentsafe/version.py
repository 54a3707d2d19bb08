"""Version information for Agent-SAFE Grid."""

__version__ = "0.4.0"
