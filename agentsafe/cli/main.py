"""
Main entry point for the Agent-SAFE Grid CLI.

Exit Codes:
    0: Success
    1: General error
    2: Validation error or policy block
    3: Configuration error
"""

import argparse
import logging
import sys
from typing import Any

from agentsafe.exceptions import (
    AgentSafeError,
    ConfigurationError,
    PolicyViolation,
    ValidationError,
)
from agentsafe.version import __version__

EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_VALIDATION_ERROR = 2
EXIT_CONFIG_ERROR = 3

logger = logging.getLogger("agentsafe.cli")


class CLIContext:
    """
    Context object that holds CLI state and configuration.

    Attributes:
        config_path: Path to the configuration file.
        database_path: Path to the database file.
        verbose: Enable verbose output.
        quiet: Suppress non-essential output.
        output_format: Output format (table, json, yaml).
    """

    def __init__(
        self,
        config_path: str | None = None,
        database_path: str | None = None,
        verbose: bool = False,
        quiet: bool = False,
        output_format: str = "table",
    ) -> None:
        self.config_path = config_path
        self.database_path = database_path
        self.verbose = verbose
        self.quiet = quiet
        self.output_format = output_format
        self._config: Any = None
        self._services: Any = None

    @property
    def config(self) -> Any:
        """
        Load and return configuration, configuring logging on first use.

        Raises:
            ConfigurationError: If configuration cannot be loaded.
        """
        if self._config is None:
            from agentsafe.config.loader import ConfigLoader
            from agentsafe.config.logging_setup import configure_logging

            config = ConfigLoader().load(self.config_path)
            if self.database_path:
                config.database.path = self.database_path
            if self.quiet and not self.verbose:
                config.logging.level = "WARNING"
            configure_logging(config.logging, verbose=self.verbose)
            self._config = config
        return self._config

    @property
    def services(self) -> Any:
        """
        Build the database-backed services.

        Raises:
            StorageError: If the database cannot be opened.
        """
        if self._services is None:
            from agentsafe.services import Services

            self._services = Services.from_config(self.config)
        return self._services

    def print(self, message: str, error: bool = False) -> None:
        """Print a message to stdout, or stderr when ``error`` is set."""
        if self.quiet and not error:
            return
        print(message, file=sys.stderr if error else sys.stdout)

    def print_error(self, message: str) -> None:
        print(f"Error: {message}", file=sys.stderr)

    def output(self, data: Any, title: str | None = None) -> None:
        """Print structured data in the selected output format."""
        from agentsafe.cli.formatters import format_output

        print(format_output(data, self.output_format, title=title))

    def cleanup(self) -> None:
        if self._services is not None:
            self._services.close()


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="agentsafe",
        description="Agent-SAFE Grid: policy enforcement and metered audit for LLM traffic",
        epilog="Use 'agentsafe <command> --help' for more information on a command.",
    )
    parser.add_argument(
        "-V", "--version", action="version", version=f"agentsafe {__version__}"
    )
    parser.add_argument("-c", "--config", metavar="PATH", help="Path to configuration file")
    parser.add_argument(
        "-d", "--database", metavar="PATH", help="Path to database file (overrides config)"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument(
        "-q", "--quiet", action="store_true", help="Suppress non-essential output"
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=["table", "json", "yaml"],
        default="table",
        help="Output format (default: table)",
    )

    subparsers = parser.add_subparsers(title="commands", dest="command", metavar="<command>")

    from agentsafe.cli.commands import audit as audit_cmd
    from agentsafe.cli.commands import policy as policy_cmd
    from agentsafe.cli.commands import serve as serve_cmd

    policy_cmd.register(subparsers)
    audit_cmd.register(subparsers)
    serve_cmd.register(subparsers)
    return parser


def run_command(args: argparse.Namespace, ctx: CLIContext) -> int:
    """
    Execute the selected command, mapping errors to exit codes.

    Returns:
        Exit code.
    """
    if not hasattr(args, "func"):
        return EXIT_ERROR

    try:
        return args.func(args, ctx)
    except ConfigurationError as e:
        ctx.print_error(str(e) if ctx.verbose else e.message)
        return EXIT_CONFIG_ERROR
    except (PolicyViolation, ValidationError) as e:
        ctx.print_error(str(e) if ctx.verbose else e.message)
        return EXIT_VALIDATION_ERROR
    except AgentSafeError as e:
        ctx.print_error(str(e) if ctx.verbose else e.message)
        return EXIT_ERROR
    except KeyboardInterrupt:
        ctx.print("\nOperation cancelled.", error=True)
        return EXIT_ERROR


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:]).

    Returns:
        Exit code.
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_SUCCESS

    ctx = CLIContext(
        config_path=args.config,
        database_path=args.database,
        verbose=args.verbose,
        quiet=args.quiet,
        output_format=args.format,
    )
    try:
        return run_command(args, ctx)
    finally:
        ctx.cleanup()


if __name__ == "__main__":
    sys.exit(main())
