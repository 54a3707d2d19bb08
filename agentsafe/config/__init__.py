"""
Configuration system for Agent-SAFE Grid.

Configuration is loaded from environment profiles, YAML files and
AGENTSAFE_ environment variables.
"""

from agentsafe.config.loader import ConfigLoader, load_config
from agentsafe.config.logging_setup import configure_logging
from agentsafe.config.schema import (
    AgentSafeConfig,
    AuditConfig,
    DatabaseConfig,
    EnforcementConfig,
    LoggingConfig,
    ServerConfig,
)

__all__ = [
    "ConfigLoader",
    "load_config",
    "configure_logging",
    "AgentSafeConfig",
    "DatabaseConfig",
    "EnforcementConfig",
    "AuditConfig",
    "LoggingConfig",
    "ServerConfig",
]
