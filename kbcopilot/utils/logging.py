"""Structured logging setup for kbcopilot.

structlog events and records from third-party libraries (httpx, chromadb,
SQLAlchemy) end up in a single stdlib handler on stderr.  Its formatter
renders with ConsoleRenderer during development and JSONRenderer when
``APP_ENV=production`` or ``json_output`` is set.

Per-request values such as ``correlation_id`` are bound with
:func:`bind_request_context` and the ``merge_contextvars`` processor adds
them to every event.
"""

import logging
import os
import sys

import structlog


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Configure structlog with environment-appropriate rendering.

    Everything is written to stderr through one stdlib handler, which keeps
    stdout free for the JSON documents the CLI prints.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output.  When False, uses console rendering
                     in development and JSON in production (APP_ENV).

    Returns:
        A configured structlog BoundLogger.
    """
    app_env = os.environ.get("APP_ENV", "development")
    use_json = json_output or app_env == "production"

    # Order matters: contextvars first (merges request-scoped bindings),
    # then level/timestamps, then exception formatting.
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        # Drops events below log_level before any processor runs.
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())

    # Client libraries log every request at INFO.
    for noisy in ("httpx", "httpcore", "chromadb", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a named structlog logger, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)


def bind_request_context(**values: str) -> None:
    """Bind request-scoped values (e.g. ``correlation_id``) for the current task.

    asyncio tasks copy the context on creation, so bindings made inside one
    request's task never leak into a concurrently running request.
    """
    structlog.contextvars.bind_contextvars(**values)


def clear_request_context(*keys: str) -> None:
    """Remove request-scoped bindings set by :func:`bind_request_context`."""
    structlog.contextvars.unbind_contextvars(*keys)
