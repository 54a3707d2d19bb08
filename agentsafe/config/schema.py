"""
Configuration schema definitions for Agent-SAFE Grid.

This module defines the configuration structure using dataclasses. Each
section validates itself in ``__post_init__``.
"""

from dataclasses import asdict, dataclass, field
from typing import Any

ENVIRONMENTS = ("development", "staging", "production", "test")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class DatabaseConfig:
    """
    Database configuration options.

    Attributes:
        path: Path to the SQLite database file. Use ":memory:" for an
            in-memory database (useful for testing).
        pool_size: Maximum number of connections in the connection pool.
        timeout_seconds: Timeout in seconds for acquiring a database lock.
    """

    path: str = "agentsafe.db"
    pool_size: int = 5
    timeout_seconds: float = 30.0

    def __post_init__(self) -> None:
        if self.pool_size < 1:
            raise ValueError("pool_size must be at least 1")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")


@dataclass
class EnforcementConfig:
    """
    Turn pipeline configuration options.

    Attributes:
        upstream_timeout_seconds: Timeout for one model call.
        default_cost_per_1k: Price per thousand tokens of providers that
            do not set their own.
        chars_per_token: Characters per token when projecting the cost of
            a prompt before the call.
        parallel_prescreen: Evaluate leading non-transforming rules
            concurrently.
        max_message_length: Longest accepted prompt in characters.
    """

    upstream_timeout_seconds: float = 10.0
    default_cost_per_1k: float = 0.0001
    chars_per_token: int = 4
    parallel_prescreen: bool = False
    max_message_length: int = 32000

    def __post_init__(self) -> None:
        if self.upstream_timeout_seconds <= 0:
            raise ValueError("upstream_timeout_seconds must be positive")
        if self.default_cost_per_1k < 0:
            raise ValueError("default_cost_per_1k must be non-negative")
        if self.chars_per_token < 1:
            raise ValueError("chars_per_token must be at least 1")
        if self.max_message_length < 1:
            raise ValueError("max_message_length must be at least 1")


@dataclass
class AuditConfig:
    """
    Audit log configuration options.

    Attributes:
        salt: Fixed salt mixed into every signature.
        chain_hashes: Link each entry's hash to its predecessor.
    """

    salt: str = "SECRET_KEY_SALT"
    chain_hashes: bool = False

    def __post_init__(self) -> None:
        if not self.salt:
            raise ValueError("salt must not be empty")


@dataclass
class LoggingConfig:
    """
    Logging configuration options.

    Attributes:
        level: Minimum log level to output.
        format: Log message format string.
        output_path: Path to a log file. Empty means stderr.
    """

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    output_path: str = ""

    def __post_init__(self) -> None:
        if self.level.upper() not in LOG_LEVELS:
            raise ValueError(f"level must be one of: {list(LOG_LEVELS)}")


@dataclass
class ServerConfig:
    """
    HTTP server configuration options.

    Attributes:
        host: Host address to bind the server to.
        port: Port number to listen on.
        api_key_header: HTTP header carrying the API key.
        api_keys: Accepted API keys. Empty disables authentication.
    """

    host: str = "127.0.0.1"
    port: int = 8080
    api_key_header: str = "X-API-Key"
    api_keys: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.port < 1 or self.port > 65535:
            raise ValueError("port must be between 1 and 65535")
        if not self.api_key_header:
            raise ValueError("api_key_header must not be empty")


@dataclass
class AgentSafeConfig:
    """
    Root configuration object for Agent-SAFE Grid.

    Attributes:
        environment: Environment profile name.
        database: Database configuration options.
        enforcement: Turn pipeline configuration options.
        audit: Audit log configuration options.
        logging: Logging configuration options.
        server: HTTP server configuration options.
        providers: Upstream provider definitions (see ProviderConfig).
    """

    environment: str = "development"
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    enforcement: EnforcementConfig = field(default_factory=EnforcementConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    providers: list[dict[str, Any]] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.environment.lower() not in ENVIRONMENTS:
            raise ValueError(f"environment must be one of: {list(ENVIRONMENTS)}")

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to a dictionary, without secrets."""
        data = asdict(self)
        data["server"]["api_keys"] = ["***"] * len(self.server.api_keys)
        data["audit"]["salt"] = "***"
        for provider in data["providers"]:
            for key in ("api_key", "apiKey"):
                if key in provider:
                    provider[key] = "***"
        return data
