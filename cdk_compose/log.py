"""Module to configure structured logging for the CDK app."""

import logging
import sys

import structlog


def configure_logging(level: str = "info", json_format: bool = False) -> None:
    """Configure structlog once, at the entry point.

    Args:
        level: Log level name, EG: "debug" or "INFO".
        json_format: Render JSON lines instead of the console renderer.
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if json_format else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
