"""
Logging configuration for applications embedding brokerkit.

The library itself only creates module loggers; handlers are installed here,
on request, by the application or the test suite.
"""

import logging
import sys
from typing import Optional

from brokerkit.config import LIBRARY_NAME


def setup_logging(
    level: int = logging.INFO,
    force_setup: bool = False,
    enable_console: bool = True,
    component_name: Optional[str] = None,
) -> None:
    """
    Setup console logging for an application using brokerkit.

    Args:
        level: Logging level (default: INFO)
        force_setup: Whether to force reconfiguration even if already setup
        enable_console: Whether to enable console logging (default: True)
        component_name: Optional component name prefixed to each record
    """
    root_logger = logging.getLogger()
    if root_logger.handlers and not force_setup:
        # Logging already configured, just ensure our level is set
        root_logger.setLevel(level)
        logging.getLogger(LIBRARY_NAME).setLevel(level)
        return

    if force_setup:
        root_logger.handlers.clear()

    if enable_console:
        _setup_console_logging(component_name)

    root_logger.setLevel(level)

    # amqpstorm logs every frame-level event at INFO/DEBUG
    logging.getLogger("amqpstorm").setLevel(logging.WARNING)

    logging.getLogger(LIBRARY_NAME).setLevel(level)


def create_formatter(component_name: Optional[str] = None) -> logging.Formatter:
    """
    Create the standard formatter.

    Args:
        component_name: Name of the component for log identification

    Returns:
        Configured logging formatter
    """
    if component_name:
        prefix = f"[{component_name}] "
    else:
        prefix = ""

    return logging.Formatter(
        f"%(asctime)s - {prefix}%(name)s - %(levelname)s - %(message)s"
    )


def _setup_console_logging(component_name: Optional[str] = None) -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(create_formatter(component_name))
    logging.getLogger().addHandler(handler)
