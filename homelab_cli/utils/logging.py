"""structlog + Logfire setup for the homelab CLI."""

from __future__ import annotations

import functools
import logging

import logfire
import structlog
import structlog.contextvars

SERVICE_NAME = "homelab-cli"

# Client libraries that log every HTTP request at INFO.
NOISY_LOGGERS = ("urllib3", "proxmoxer")

_KEY_ORDER = ["timestamp", "level", "logger", "event"]


@functools.cache
def _start_logfire() -> None:
    # Spans stay local unless a Logfire token is configured.
    logfire.configure(service_name=SERVICE_NAME, send_to_logfire="if-token-present")
    logfire.instrument_pydantic()


def _route_stdlib(verbose: bool) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, handlers=[handler], force=True)
    client_level = logging.INFO if verbose else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(client_level)


def build_processors(verbose: bool) -> list[structlog.types.Processor]:
    """Processor chain ending in a console renderer (verbose) or key=value lines."""
    renderer: structlog.types.Processor = (
        structlog.dev.ConsoleRenderer()
        if verbose
        else structlog.processors.KeyValueRenderer(key_order=_KEY_ORDER, drop_missing=True)
    )
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        logfire.StructlogProcessor(),
        renderer,
    ]


def configure_logging(verbose: bool = False) -> None:
    """Route structlog events through stdlib logging and Logfire.

    Only warnings and errors reach the terminal by default; ``verbose`` shows
    debug events, including tracebacks of handled errors.
    """
    _start_logfire()
    _route_stdlib(verbose)
    structlog.configure(
        processors=build_processors(verbose),
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


__all__ = ["NOISY_LOGGERS", "SERVICE_NAME", "build_processors", "configure_logging"]
