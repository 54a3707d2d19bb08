"""
Logging setup for the Agent-SAFE Grid entry points.

Modules log through ``logging.getLogger("agentsafe.<area>")``; this module
attaches one handler to the ``agentsafe`` logger so the CLI and the server
share a format.
"""

import logging
import sys

from agentsafe.config.schema import LoggingConfig

_HANDLER_NAME = "agentsafe"


def configure_logging(config: LoggingConfig | None = None, verbose: bool = False) -> logging.Logger:
    """
    Configure the ``agentsafe`` logger.

    Calling it again replaces the handler installed by the previous call.

    Args:
        config: Logging configuration. Defaults to INFO on stderr.
        verbose: Force DEBUG level.

    Returns:
        The configured ``agentsafe`` logger.
    """
    config = config or LoggingConfig()
    logger = logging.getLogger("agentsafe")
    logger.setLevel(logging.DEBUG if verbose else config.level.upper())

    for existing in list(logger.handlers):
        if existing.get_name() == _HANDLER_NAME:
            logger.removeHandler(existing)
            existing.close()

    handler: logging.Handler
    if config.output_path:
        handler = logging.FileHandler(config.output_path, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(config.format))
    logger.addHandler(handler)
    return logger
