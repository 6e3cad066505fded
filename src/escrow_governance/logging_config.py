"""Structured logging configuration using structlog.

JSON lines outside development, colored console output in development.
Entries carry the ``request_id`` bound by the API middleware plus the
service name and environment, so an escrow transition or a vote can be
traced back to the call that caused it.

Usage:
    from escrow_governance.logging_config import setup_logging, get_logger
    setup_logging(log_level="INFO", json_logs=True, env="production")
    logger = get_logger(__name__)
    logger.info("escrow.deposit_recorded", engagement_id="eng-1", amount_usd="100")
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

SERVICE_NAME = "escrow-governance"

# Per-statement SQL and per-request access lines drown out the domain events.
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite")


def _service_info(env: str | None) -> structlog.types.Processor:
    def add_service_info(
        logger: Any, method_name: str, event_dict: structlog.types.EventDict
    ) -> structlog.types.EventDict:
        event_dict.setdefault("service", SERVICE_NAME)
        if env:
            event_dict.setdefault("env", env)
        return event_dict

    return add_service_info


def setup_logging(
    log_level: str = "DEBUG",
    json_logs: bool = False,
    env: str | None = None,
) -> None:
    """Route stdlib and structlog output through one structlog formatter.

    Args:
        log_level: Standard Python log level name. Unknown names fall back to DEBUG.
        json_logs: Render JSON lines instead of the colored console format.
        env: Deployment environment stamped on every entry, if given.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        _service_info(env),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: structlog.types.Processor
    if json_logs:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.DEBUG))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, named after the calling module when ``name`` is None."""
    return structlog.get_logger(name)
