"""
Structured logging for keyrotor.

keyrotor modules log through structlog with key/value event fields, on top of
standard library loggers under the "keyrotor" namespace. Nothing is emitted
until the application configures logging: call configure_logging() once at
startup, or configure structlog and the "keyrotor" logger yourself.
"""

import logging
import sys

import structlog

logging.getLogger("keyrotor").addHandler(logging.NullHandler())


def configure_logging(log_level: str = "info", json_output: bool = True) -> None:
    """Configure structured logging backed by the standard library."""

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger backed by the standard library logger ``name``."""
    return structlog.wrap_logger(
        logging.getLogger(name),
        wrapper_class=structlog.stdlib.BoundLogger,
    )
