"""
Structured logging for the crawl service (structlog).

JSON lines when LOG_FORMAT=json, colored console otherwise. Every event logged
inside crawl_context() carries the site being crawled and, under Celery, the
task id, so one crawl can be followed across sitemap, fetch and aggregate logs.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog
from structlog.types import EventDict, Processor

from sitecrawl.core.config import get_settings

SEVERITY_BY_METHOD = {
    "debug": "DEBUG",
    "info": "INFO",
    "warning": "WARNING",
    "error": "ERROR",
    "critical": "CRITICAL",
}

# Sitemap probing issues up to seven requests per crawl before any page fetch
QUIET_IN_PRODUCTION = ("asyncio", "httpx", "httpcore", "celery.app.trace")

MAX_LOGGED_VALUE_LENGTH = 500


def add_severity(logger: Any, method: str, event_dict: EventDict) -> EventDict:
    """Severity field for GCP/Datadog log ingestion."""
    event_dict["severity"] = SEVERITY_BY_METHOD.get(method, "INFO")
    return event_dict


def truncate_long_values(logger: Any, method: str, event_dict: EventDict) -> EventDict:
    """Keep page markup and body text out of log lines."""
    for key, value in event_dict.items():
        if key != "event" and isinstance(value, str) and len(value) > MAX_LOGGED_VALUE_LENGTH:
            event_dict[key] = f"{value[:MAX_LOGGED_VALUE_LENGTH]}... ({len(value)} chars)"
    return event_dict


def _renderer(log_format: str) -> list[Processor]:
    if log_format == "json":
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=True)]


def configure_logging() -> None:
    settings = get_settings()
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        truncate_long_values,
        add_severity,
        *_renderer(settings.LOG_FORMAT),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    # httpx and celery log through stdlib; send them to the same stream
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    if settings.ENV == "production":
        for name in QUIET_IN_PRODUCTION:
            logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def crawl_context(site_url: str, **extra: Any) -> Iterator[None]:
    """Bind site_url (and extra keys) to every log event emitted inside the block."""
    with structlog.contextvars.bound_contextvars(site_url=site_url, **extra):
        yield
