"""Structured logging for the purchase core, built on structlog.

Log lines go to stderr so that stdout stays free for the CLI summary.
Purchase attempts and transaction updates bind their product and
transaction ids with ``purchase_log_context`` so every line emitted
while handling them carries the ids.
"""

import logging
import os
import sys
from contextlib import contextmanager
from typing import Any, Iterator, Optional, TextIO

import structlog
from structlog.typing import EventDict, Processor

APP_NAME = "iap-entitlements"


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["app"] = APP_NAME
    return event_dict


def is_debug_mode() -> bool:
    """True when LOG_LEVEL is DEBUG."""
    return os.getenv("LOG_LEVEL", "INFO").upper() == "DEBUG"


def drop_debug_in_production(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    if method_name == "debug" and not is_debug_mode():
        raise structlog.DropEvent
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    json_format: bool = True,
    include_timestamp: bool = True,
    stream: Optional[TextIO] = None,
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL; unknown names fall back to INFO
        json_format: JSON lines if True, colored console output otherwise
        include_timestamp: Prefix events with an ISO 8601 timestamp
        stream: Output stream (defaults to stderr)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=stream or sys.stderr, level=level)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_app_context,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))
    if level > logging.DEBUG:
        processors.append(drop_debug_in_production)

    if json_format:
        renderer: Processor = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=stream is None and sys.stderr.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )
    processors.append(renderer)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger, typically with ``__name__``."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context variables to all subsequent log lines of this task."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


@contextmanager
def purchase_log_context(
    product_id: str, transaction_id: Optional[str] = None
) -> Iterator[None]:
    """Bind purchase identifiers for the duration of a block.

    Values bound before entering are restored on exit, so nested blocks
    (a reconciliation pass inside an update) keep the outer ids.

    Example:
        with purchase_log_context("credits.pack", transaction_id="txn-1"):
            logger.info("transaction_update_received")
    """
    values = {"product_id": product_id}
    if transaction_id is not None:
        values["transaction_id"] = transaction_id
    with structlog.contextvars.bound_contextvars(**values):
        yield
