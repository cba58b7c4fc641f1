import logging
import sys

import structlog


def setup_logging(level: str | int = logging.INFO, fmt: str = "json"):
    """Configure structlog for the process. ``fmt="console"`` renders
    human-readable lines for local development."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    renderer = structlog.dev.ConsoleRenderer() if fmt == "console" else structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # uvicorn and sqlalchemy log through stdlib logging
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)


def get_logger(name: str = "dietify"):
    return structlog.get_logger(name)
