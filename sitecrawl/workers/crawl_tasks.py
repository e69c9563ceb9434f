"""
Crawl Tasks - Celery task wrapping one site crawl.

Error handling:
- SiteCrawlError (domain unreachable, invalid URL) and invalid options are terminal
- Unexpected errors retry with linear backoff up to CELERY_MAX_RETRIES
- Soft time limit exceeded is logged and re-raised
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from celery.exceptions import SoftTimeLimitExceeded

from sitecrawl.core.config import get_settings
from sitecrawl.core.logging import crawl_context
from sitecrawl.engines.base import CrawlOptions, SiteCrawlError
from sitecrawl.engines.crawler.engine import CrawlOrchestrator
from sitecrawl.workers.celery_app import CRAWL_QUEUE, celery_app

logger = structlog.get_logger(__name__)
settings = get_settings()


def run_async(coro):
    """Run an async coroutine in a Celery (sync) task context."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(
    name="sitecrawl.workers.crawl_tasks.run_site_crawl",
    bind=True,
    queue=CRAWL_QUEUE,
    soft_time_limit=settings.CELERY_TASK_SOFT_TIME_LIMIT,
    time_limit=settings.CELERY_TASK_TIME_LIMIT,
    max_retries=settings.CELERY_MAX_RETRIES,
    acks_late=True,
)
def run_site_crawl(self, site_url: str, options: dict[str, Any] | None = None) -> dict[str, Any]:
    """Crawl site_url and return the aggregated evidence without page markup."""
    logger.info("Starting crawl task", site_url=site_url, task_id=self.request.id)

    # Invalid options are a caller error; validation raises before the retry handling
    crawl_options = CrawlOptions(**(options or {}))

    try:
        with crawl_context(site_url, task_id=self.request.id):
            result = run_async(CrawlOrchestrator(crawl_options).crawl(site_url))

        logger.info("Crawl task complete", site_url=site_url, pages=result.page_count)
        return result.dump_without_html()

    except SiteCrawlError as exc:
        logger.error("Crawl task failed", site_url=site_url, error=str(exc))
        raise

    except SoftTimeLimitExceeded:
        logger.error("Crawl task timed out", site_url=site_url)
        raise

    except Exception as exc:
        logger.error("Crawl task errored", site_url=site_url, error=str(exc), exc_info=True)
        countdown = settings.CELERY_RETRY_BACKOFF * (self.request.retries + 1)
        raise self.retry(exc=exc, countdown=countdown)
