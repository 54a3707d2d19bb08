"""
Unit tests for configuration loading and logging setup.
"""

import logging
from pathlib import Path

import pytest

from agentsafe.config.defaults import get_test_config
from agentsafe.config.loader import ConfigLoader, parse_bool, parse_list
from agentsafe.config.logging_setup import configure_logging
from agentsafe.config.schema import (
    AgentSafeConfig,
    DatabaseConfig,
    EnforcementConfig,
    LoggingConfig,
    ServerConfig,
)
from agentsafe.exceptions import ConfigurationError


def write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "agentsafe.yaml"
    path.write_text(content, encoding="utf-8")
    return path


# =============================================================================
# Schema Tests
# =============================================================================


class TestSchema:
    """Tests for configuration dataclass validation."""

    def test_defaults(self) -> None:
        config = AgentSafeConfig()
        assert config.enforcement.upstream_timeout_seconds == 10.0
        assert config.audit.salt == "SECRET_KEY_SALT"
        assert not config.audit.chain_hashes
        assert config.server.api_keys == []

    @pytest.mark.parametrize(
        "factory",
        [
            lambda: DatabaseConfig(pool_size=0),
            lambda: EnforcementConfig(upstream_timeout_seconds=0),
            lambda: EnforcementConfig(chars_per_token=0),
            lambda: LoggingConfig(level="LOUD"),
            lambda: ServerConfig(port=70000),
            lambda: AgentSafeConfig(environment="moon"),
        ],
    )
    def test_invalid_values(self, factory) -> None:
        with pytest.raises(ValueError):
            factory()

    def test_to_dict_masks_secrets(self) -> None:
        config = AgentSafeConfig(providers=[{"id": "x", "api_key": "sk-1"}])
        config.server.api_keys = ["k1", "k2"]
        data = config.to_dict()
        assert data["server"]["api_keys"] == ["***", "***"]
        assert data["audit"]["salt"] == "***"
        assert data["providers"][0]["api_key"] == "***"
        assert config.providers[0]["api_key"] == "sk-1"


# =============================================================================
# Loader Tests
# =============================================================================


class TestConfigLoader:
    """Tests for ConfigLoader."""

    def test_defaults_without_sources(self) -> None:
        config = ConfigLoader(environ={}).load()
        assert config.environment == "development"
        assert config.database.path == "agentsafe.db"

    @pytest.mark.parametrize(
        ("environment", "level", "chained"),
        [("development", "DEBUG", False), ("production", "WARNING", True), ("staging", "INFO", True)],
    )
    def test_profiles(self, environment: str, level: str, chained: bool) -> None:
        config = ConfigLoader(environ={}).load(environment=environment)
        assert config.environment == environment
        assert config.logging.level == level
        assert config.audit.chain_hashes is chained

    def test_profile_from_environment(self) -> None:
        config = ConfigLoader(environ={"AGENTSAFE_ENVIRONMENT": "test"}).load()
        assert config.database.path == ":memory:"

    def test_unknown_profile(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown environment"):
            ConfigLoader(environ={}).load(environment="moon")

    def test_yaml_file(self, tmp_path: Path) -> None:
        path = write(
            tmp_path,
            """
database:
  path: /tmp/grid.db
enforcement:
  upstream_timeout_seconds: 5
  parallel_prescreen: true
providers:
  - id: local
    provider: ollama
""",
        )
        config = ConfigLoader(environ={}).load(path)
        assert config.database.path == "/tmp/grid.db"
        assert config.database.pool_size == 5
        assert config.enforcement.upstream_timeout_seconds == 5
        assert config.enforcement.parallel_prescreen
        assert config.providers == [{"id": "local", "provider": "ollama"}]

    def test_env_overrides_file(self, tmp_path: Path) -> None:
        path = write(tmp_path, "server:\n  port: 9000\n")
        environ = {
            "AGENTSAFE_SERVER_PORT": "9100",
            "AGENTSAFE_SERVER_API_KEYS": "k1, k2,",
            "AGENTSAFE_AUDIT_CHAIN_HASHES": "yes",
            "AGENTSAFE_ENFORCEMENT_DEFAULT_COST_PER_1K": "0.5",
        }
        config = ConfigLoader(environ=environ).load(path)
        assert config.server.port == 9100
        assert config.server.api_keys == ["k1", "k2"]
        assert config.audit.chain_hashes
        assert config.enforcement.default_cost_per_1k == 0.5

    def test_invalid_env_value(self) -> None:
        with pytest.raises(ConfigurationError, match="AGENTSAFE_SERVER_PORT"):
            ConfigLoader(environ={"AGENTSAFE_SERVER_PORT": "eighty"}).load()

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            ConfigLoader(environ={}).load(tmp_path / "missing.yaml")

    @pytest.mark.parametrize(
        "content",
        ["- a\n- b\n", "database: [1, 2]\n", "unknown_section:\n  x: 1\n", "database:\n  path: [unclosed\n"],
    )
    def test_malformed_file(self, tmp_path: Path, content: str) -> None:
        with pytest.raises(ConfigurationError):
            ConfigLoader(environ={}).load(write(tmp_path, content))

    def test_validation_errors_collected(self, tmp_path: Path) -> None:
        path = write(tmp_path, "database:\n  pool_size: 0\nserver:\n  port: 0\n")
        with pytest.raises(ConfigurationError) as exc_info:
            ConfigLoader(environ={}).load(path)
        assert len(exc_info.value.details["errors"]) == 2

    def test_unknown_option(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError):
            ConfigLoader(environ={}).load(write(tmp_path, "server:\n  color: blue\n"))

    def test_config_property(self) -> None:
        loader = ConfigLoader(environ={})
        with pytest.raises(ConfigurationError):
            loader.config
        assert loader.load() is loader.config

    def test_parsers(self) -> None:
        assert parse_bool("ON") is True
        assert parse_bool("0") is False
        with pytest.raises(ValueError):
            parse_bool("maybe")
        assert parse_list(" a, ,b ") == ["a", "b"]


# =============================================================================
# Logging Tests
# =============================================================================


class TestConfigureLogging:
    """Tests for configure_logging."""

    @pytest.fixture(autouse=True)
    def restore_logger(self):
        logger = logging.getLogger("agentsafe")
        handlers, level = list(logger.handlers), logger.level
        yield
        for handler in list(logger.handlers):
            if handler not in handlers:
                logger.removeHandler(handler)
                handler.close()
        logger.setLevel(level)

    def test_single_handler(self) -> None:
        configure_logging(get_test_config().logging)
        logger = configure_logging(LoggingConfig(level="WARNING"))
        named = [h for h in logger.handlers if h.get_name() == "agentsafe"]
        assert len(named) == 1
        assert logger.level == logging.WARNING

    def test_verbose(self) -> None:
        assert configure_logging(verbose=True).level == logging.DEBUG

    def test_file_output(self, tmp_path: Path) -> None:
        path = tmp_path / "grid.log"
        logger = configure_logging(LoggingConfig(output_path=str(path), format="%(message)s"))
        logging.getLogger("agentsafe.engine").info("hello from the engine")
        for handler in logger.handlers:
            handler.flush()
        assert "hello from the engine" in path.read_text(encoding="utf-8")
