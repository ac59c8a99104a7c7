"""
Logging configuration using structlog for structured logging.

This module provides centralized logging setup for the execution engine.
Engine modules log machine-readable events; operator-facing text is
printed by the CLI.
"""

from typing import Any

import structlog


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structured logging.

    Sets up structlog with a pipeline of processors for rich, structured logs
    that include timestamps, log levels, stack traces, and contextual information.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Render JSON lines when True, a human-friendly console
            format otherwise
    """
    renderer: Any = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level.upper()),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


def bind_workflow_context(**context: Any) -> None:
    """Bind context (spec name, stage) to every subsequent log event.

    Args:
        **context: Key/value pairs merged into each event via contextvars

    Example:
        >>> bind_workflow_context(spec="001-login")
        >>> log.info("stage_started", stage="plan")  # includes spec="001-login"
    """
    structlog.contextvars.bind_contextvars(**context)


def clear_workflow_context() -> None:
    """Remove all context bound with bind_workflow_context."""
    structlog.contextvars.clear_contextvars()
