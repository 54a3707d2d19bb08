"""
Configuration loader for Agent-SAFE Grid.

This module provides the ConfigLoader class for loading configuration
from YAML files with environment variable overrides.
"""

import dataclasses
import os
from pathlib import Path
from typing import Any, Callable, Mapping

import yaml

from agentsafe.config.defaults import PROFILES, get_default_config
from agentsafe.config.schema import (
    AgentSafeConfig,
    AuditConfig,
    DatabaseConfig,
    EnforcementConfig,
    LoggingConfig,
    ServerConfig,
)
from agentsafe.exceptions import ConfigurationError

SECTIONS: dict[str, type] = {
    "database": DatabaseConfig,
    "enforcement": EnforcementConfig,
    "audit": AuditConfig,
    "logging": LoggingConfig,
    "server": ServerConfig,
}


def parse_bool(value: str) -> bool:
    """Parse a string to boolean."""
    if value.lower() in ("true", "1", "yes", "on"):
        return True
    if value.lower() in ("false", "0", "no", "off"):
        return False
    raise ValueError(f"Cannot parse '{value}' as boolean")


def parse_list(value: str) -> list[str]:
    """Parse a comma separated string to a list, dropping empty items."""
    return [item.strip() for item in value.split(",") if item.strip()]


class ConfigLoader:
    """
    Loads and validates Agent-SAFE Grid configuration.

    Configuration sources are applied in order, with later sources
    overriding earlier ones:

    1. Environment profile defaults
    2. A YAML configuration file
    3. Environment variables (AGENTSAFE_<SECTION>_<OPTION>)

    Example:
        Loading configuration::

            loader = ConfigLoader()
            config = loader.load("config/agentsafe.yaml", environment="production")
    """

    ENV_PREFIX = "AGENTSAFE_"

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        """
        Initialize the configuration loader.

        Args:
            environ: Environment variables to read. Defaults to os.environ.
        """
        self._environ = environ
        self._config: AgentSafeConfig | None = None

    def load(
        self,
        config_path: str | Path | None = None,
        environment: str | None = None,
    ) -> AgentSafeConfig:
        """
        Load configuration from defaults, file and environment.

        Args:
            config_path: Path to a YAML configuration file. If None, only
                defaults and environment variables are used.
            environment: Environment profile to start from.

        Returns:
            A validated AgentSafeConfig object.

        Raises:
            ConfigurationError: If the environment is unknown, the file is
                missing or malformed, or a value is invalid.
        """
        environ = os.environ if self._environ is None else self._environ
        environment = environment or environ.get(f"{self.ENV_PREFIX}ENVIRONMENT")
        data = self._to_data(self._profile(environment))

        if config_path:
            file_data = self._load_yaml(config_path)
            self._merge(data, file_data, str(config_path))
            if environment:
                data["environment"] = environment

        self._apply_env_overrides(data, environ)
        config = self._build(data)
        self._config = config
        return config

    def _profile(self, environment: str | None) -> AgentSafeConfig:
        if not environment:
            return get_default_config()
        factory = PROFILES.get(environment.lower())
        if factory is None:
            raise ConfigurationError(
                f"Unknown environment: {environment}",
                details={"environment": environment, "valid": list(PROFILES)},
            )
        return factory()

    def _to_data(self, config: AgentSafeConfig) -> dict[str, Any]:
        return dataclasses.asdict(config)

    def _load_yaml(self, path: str | Path) -> dict[str, Any]:
        """
        Load configuration from a YAML file.

        Raises:
            ConfigurationError: If the file is missing or not a YAML mapping.
        """
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {path}", details={"path": str(path)}
            )
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in configuration file: {e}", details={"path": str(path)}
            ) from e
        except OSError as e:
            raise ConfigurationError(
                f"Failed to read configuration file: {e}", details={"path": str(path)}
            ) from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                "Configuration file must contain a mapping", details={"path": str(path)}
            )
        return data

    def _merge(self, base: dict[str, Any], override: dict[str, Any], source: str) -> None:
        """Merge file values into the base data, section by section."""
        for key, value in override.items():
            if key in SECTIONS:
                if not isinstance(value, dict):
                    raise ConfigurationError(
                        f"Section '{key}' must be a mapping", details={"path": source}
                    )
                base[key].update(value)
            elif key in ("environment", "providers"):
                base[key] = value
            else:
                raise ConfigurationError(
                    f"Unknown configuration section: {key}", details={"path": source}
                )

    def _env_mapping(self) -> dict[str, tuple[str, str, Callable[[str], Any]]]:
        """Map AGENTSAFE_<SECTION>_<OPTION> names to (section, option, converter)."""
        mapping = {}
        for section, cls in SECTIONS.items():
            for f in dataclasses.fields(cls):
                default = (
                    f.default_factory()  # type: ignore[misc]
                    if f.default is dataclasses.MISSING
                    else f.default
                )
                converter: Callable[[str], Any]
                if isinstance(default, bool):
                    converter = parse_bool
                elif isinstance(default, int):
                    converter = int
                elif isinstance(default, float):
                    converter = float
                elif isinstance(default, list):
                    converter = parse_list
                else:
                    converter = str
                name = f"{self.ENV_PREFIX}{section.upper()}_{f.name.upper()}"
                mapping[name] = (section, f.name, converter)
        return mapping

    def _apply_env_overrides(self, data: dict[str, Any], environ: Mapping[str, str]) -> None:
        """
        Apply environment variable overrides, e.g.

        - AGENTSAFE_DATABASE_PATH=/var/lib/agentsafe.db
        - AGENTSAFE_ENFORCEMENT_UPSTREAM_TIMEOUT_SECONDS=5
        - AGENTSAFE_AUDIT_CHAIN_HASHES=true
        - AGENTSAFE_SERVER_API_KEYS=key-1,key-2
        """
        for env_var, (section, option, converter) in self._env_mapping().items():
            value = environ.get(env_var)
            if value is None:
                continue
            try:
                data[section][option] = converter(value)
            except (ValueError, TypeError) as e:
                raise ConfigurationError(
                    f"Invalid value for {env_var}: {e}",
                    details={"env_var": env_var},
                ) from e

    def _build(self, data: dict[str, Any]) -> AgentSafeConfig:
        """Construct and validate the configuration tree."""
        errors: list[str] = []
        sections: dict[str, Any] = {}
        for name, cls in SECTIONS.items():
            try:
                sections[name] = cls(**data[name])
            except (ValueError, TypeError) as e:
                errors.append(f"{name}: {e}")
        providers = data.get("providers") or []
        if not isinstance(providers, list) or not all(isinstance(p, dict) for p in providers):
            errors.append("providers: must be a list of mappings")
        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                details={"errors": errors},
            )
        try:
            return AgentSafeConfig(
                environment=str(data.get("environment") or "development"),
                providers=list(providers),
                **sections,
            )
        except ValueError as e:
            raise ConfigurationError(
                f"Configuration validation failed: {e}", details={"errors": [str(e)]}
            ) from e

    @property
    def config(self) -> AgentSafeConfig:
        """Get the currently loaded configuration."""
        if self._config is None:
            raise ConfigurationError("Configuration not loaded. Call load() first.")
        return self._config


def load_config(
    config_path: str | Path | None = None,
    environment: str | None = None,
) -> AgentSafeConfig:
    """Convenience function to load configuration."""
    return ConfigLoader().load(config_path, environment)
