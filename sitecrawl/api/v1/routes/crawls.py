"""
Crawl API Routes

No business logic lives here.
Routes validate input, call the orchestrator or dispatch a task, return responses.
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, HttpUrl

from sitecrawl.core.config import get_settings
from sitecrawl.engines.base import CrawlOptions, SiteCrawlError
from sitecrawl.engines.crawler.engine import CrawlOrchestrator
from sitecrawl.workers.crawl_tasks import run_site_crawl

logger = structlog.get_logger(__name__)
router = APIRouter()


# ─────────────────────────────────────────────
# Request / Response Schemas
# ─────────────────────────────────────────────

class CrawlRequest(BaseModel):
    """Omitted options fall back to the CRAWLER_* settings, like CrawlOptions."""
    site_url: HttpUrl
    max_pages: int = Field(default_factory=lambda: get_settings().CRAWLER_MAX_PAGES, ge=1, le=100)
    timeout_ms: int = Field(default_factory=lambda: get_settings().CRAWLER_TIMEOUT_MS, gt=0, le=120_000)
    include_sitemap: bool = Field(default_factory=lambda: get_settings().CRAWLER_INCLUDE_SITEMAP)
    include_internal_links: bool = Field(
        default_factory=lambda: get_settings().CRAWLER_INCLUDE_INTERNAL_LINKS
    )
    user_agent: str = Field(
        default_factory=lambda: get_settings().CRAWLER_USER_AGENT, min_length=1, max_length=256
    )
    max_concurrency: int = Field(default_factory=lambda: get_settings().CRAWLER_MAX_CONCURRENCY, ge=1, le=10)

    def options_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude={"site_url"})

    def to_options(self) -> CrawlOptions:
        return CrawlOptions(**self.options_payload())


class CrawlTaskResponse(BaseModel):
    task_id: str
    site_url: str
    status: str = "queued"


# ─────────────────────────────────────────────
# Dependencies
# ─────────────────────────────────────────────

def get_orchestrator() -> CrawlOrchestrator:
    return CrawlOrchestrator()


Orchestrator = Annotated[CrawlOrchestrator, Depends(get_orchestrator)]


# ─────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────

@router.post(
    "",
    summary="Crawl a site and return aggregated evidence",
    description="Runs a bounded crawl inline. Raw page markup is omitted from the response.",
)
async def run_crawl(request: CrawlRequest, orchestrator: Orchestrator) -> dict[str, Any]:
    site_url = str(request.site_url)
    logger.info("Crawl requested", site_url=site_url, max_pages=request.max_pages)

    try:
        result = await orchestrator.crawl(site_url, request.to_options())
    except SiteCrawlError as exc:
        logger.warning("Crawl request failed", site_url=site_url, error=str(exc))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))

    return result.dump_without_html()


@router.post(
    "/async",
    response_model=CrawlTaskResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a site crawl",
    description="Dispatches the crawl to a Celery worker. Returns immediately with the task id.",
)
async def queue_crawl(request: CrawlRequest) -> CrawlTaskResponse:
    site_url = str(request.site_url)
    task = run_site_crawl.delay(site_url, request.options_payload())
    logger.info("Crawl queued", site_url=site_url, task_id=task.id)
    return CrawlTaskResponse(task_id=task.id, site_url=site_url)
