"""Structured logging configuration for the service locator.

Uses structlog for structured, context-rich logging with
support for both console and JSON output formats.

The registry only emits events; nothing is configured on import. Call
``configure_from_env()`` (or ``configure_from_settings``) once at startup so
the ``SERVICE_LOCATOR_LOG_*`` variables take effect.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import TextIO

import structlog

from service_locator.config import LocatorSettings

# File opened by the last configure_logging call, closed on reconfigure
_log_stream: TextIO | None = None


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Path | None = None,
    colors: bool = True,
) -> None:
    """Configure structured logging.

    Reconfiguring closes the file opened by the previous call.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Whether to output JSON format
        log_file: Optional file to log to
        colors: Whether to use colors in console output
    """
    global _log_stream

    # Determine output stream
    stream: TextIO = sys.stderr
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        stream = open(log_file, "a")  # noqa: SIM115

    # force=True detaches the old handler before its file is closed
    logging.basicConfig(
        format="%(message)s",
        stream=stream,
        level=getattr(logging, level.upper()),
        force=True,
    )
    if _log_stream is not None:
        _log_stream.close()
    _log_stream = stream if log_file is not None else None

    processors: list[structlog.types.Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=colors))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)
    """
    return structlog.get_logger(name)


def configure_from_settings(settings: LocatorSettings, log_file: Path | None = None) -> None:
    """Configure logging from locator settings.

    Args:
        settings: Settings carrying ``log_level``, ``log_json`` and ``log_file``
        log_file: Overrides ``settings.log_file``
    """
    configure_logging(
        level=settings.log_level,
        json_output=settings.log_json,
        log_file=log_file or settings.log_file,
        colors=not settings.log_json,
    )


def configure_from_env(
    environ: Mapping[str, str] | None = None,
    env_file: Path | None = None,
) -> LocatorSettings:
    """Load settings from the environment and apply their logging part.

    Returns:
        The loaded settings, ready to pass to ``ServiceRegistry``
    """
    settings = LocatorSettings.from_env(environ, env_file)
    configure_from_settings(settings)
    return settings


# Usage example:
# from service_locator import configure_from_env, ServiceRegistry, set_registry
#
# set_registry(ServiceRegistry(configure_from_env()))
#
# SERVICE_LOCATOR_LOG_JSON=1 SERVICE_LOCATOR_LOG_LEVEL=debug python app.py
# {"key": "Database[primary]", "kind": "async", "event": "singleton_built", ...}
