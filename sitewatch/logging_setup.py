"""Structured logging configuration (structlog on top of stdlib logging)."""

import logging
import sys

import structlog

from sitewatch.config import LoggingConfig


def configure_logging(config: LoggingConfig) -> None:
    """Install the structlog processor chain with a JSON or console renderer."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.enable_file_logging:
        handlers.append(logging.FileHandler(config.log_file_path))

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, config.level),
        handlers=handlers,
        force=True,
    )

    renderer: structlog.types.Processor
    if config.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

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
        cache_logger_on_first_use=True,
    )
