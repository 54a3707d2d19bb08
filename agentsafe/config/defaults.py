"""
Default configuration profiles for Agent-SAFE Grid.

These defaults can be overridden by YAML configuration files and/or
environment variables.
"""

from agentsafe.config.schema import AgentSafeConfig


def get_default_config() -> AgentSafeConfig:
    """Return the baseline configuration."""
    return AgentSafeConfig()


def get_development_config() -> AgentSafeConfig:
    """Development profile: verbose logging, a local database file."""
    config = get_default_config()
    config.environment = "development"
    config.logging.level = "DEBUG"
    config.database.path = "agentsafe_dev.db"
    return config


def get_staging_config() -> AgentSafeConfig:
    """Staging profile: production settings with INFO logging."""
    config = get_production_config()
    config.environment = "staging"
    config.logging.level = "INFO"
    return config


def get_production_config() -> AgentSafeConfig:
    """Production profile: quieter logging and a chained audit log."""
    config = get_default_config()
    config.environment = "production"
    config.logging.level = "WARNING"
    config.audit.chain_hashes = True
    return config


def get_test_config() -> AgentSafeConfig:
    """Test profile: in-memory database and short upstream timeout."""
    config = get_default_config()
    config.environment = "test"
    config.database.path = ":memory:"
    config.logging.level = "DEBUG"
    config.enforcement.upstream_timeout_seconds = 2.0
    return config


PROFILES = {
    "development": get_development_config,
    "staging": get_staging_config,
    "production": get_production_config,
    "test": get_test_config,
}
