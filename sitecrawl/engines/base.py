"""
Type contracts shared by the crawl-and-aggregate engines.

Design principles:
- Per-page evidence is tolerant: every field has a zero/false/absent default
- Crawl records and the aggregated site record are immutable once built
- Only a domain-wide total failure surfaces to callers (SiteCrawlError)
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from sitecrawl.core.config import get_settings


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ─────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────

class SiteCrawlError(Exception):
    """The whole site crawl failed. The only error a crawl surfaces."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Site crawl failed: {reason}")


class CrawlCancelledError(SiteCrawlError):
    """Caller aborted the crawl between page fetches."""


class PageFetchError(Exception):
    """A single page could not be fetched. Never escapes the orchestrator."""

    def __init__(self, url: str, message: str, status_code: int | None = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class EmptyEvidenceError(ValueError):
    """Aggregation requested over zero crawl records."""


# ─────────────────────────────────────────────
# Per-page evidence (extractor output)
# ─────────────────────────────────────────────

class FAQEntry(BaseModel):
    question: str = ""
    answer: str = ""


class HeadingText(BaseModel):
    h1: list[str] = Field(default_factory=list)
    h2: list[str] = Field(default_factory=list)
    h3: list[str] = Field(default_factory=list)


class HeadingCount(BaseModel):
    h1: int = 0
    h2: int = 0
    h3: int = 0
    h4: int = 0
    h5: int = 0
    h6: int = 0


class PageContent(BaseModel):
    headings: HeadingText = Field(default_factory=HeadingText)
    faqs: list[FAQEntry] = Field(default_factory=list)
    list_count: int = 0
    table_count: int = 0
    body_text: str = ""
    word_count: int = 0


class PageTechnical(BaseModel):
    has_faq_schema: bool = False
    has_organization_schema: bool = False
    structured_data: list[dict[str, Any]] = Field(default_factory=list)


class PageMetadata(BaseModel):
    last_modified: str | None = None
    published_time: str | None = None
    geo_region: str | None = None
    geo_placename: str | None = None


class PageMedia(BaseModel):
    image_count: int = 0
    images_with_alt: int = 0


class PageStructure(BaseModel):
    heading_count: HeadingCount = Field(default_factory=HeadingCount)
    has_main: bool = False
    has_article: bool = False
    internal_links: int = 0


class PageEvidence(BaseModel):
    """Structured evidence for one fetched page, keyed by domain area."""
    url: str = ""
    content: PageContent = Field(default_factory=PageContent)
    technical: PageTechnical = Field(default_factory=PageTechnical)
    metadata: PageMetadata = Field(default_factory=PageMetadata)
    media: PageMedia = Field(default_factory=PageMedia)
    structure: PageStructure = Field(default_factory=PageStructure)
    html: str = ""


# ─────────────────────────────────────────────
# Crawl records and output
# ─────────────────────────────────────────────

class CrawlRecord(BaseModel):
    """One successfully crawled page."""
    model_config = ConfigDict(frozen=True)

    url: str
    evidence: PageEvidence
    timestamp: datetime = Field(default_factory=utc_now)


class AggregatedSiteEvidence(BaseModel):
    """Site-wide metrics over every crawled page. Read-only for scoring."""
    model_config = ConfigDict(frozen=True)

    site_url: str
    page_count: int
    pages: list[CrawlRecord] = Field(default_factory=list)
    sitemap_detected: bool = False
    sitemap_location: str | None = None
    site_metrics: dict[str, float] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)

    def dump_without_html(self) -> dict[str, Any]:
        """JSON-safe dict with raw page markup stripped (API responses, task results)."""
        return self.model_dump(mode="json", exclude={"pages": {"__all__": {"evidence": {"html"}}}})


class CrawlOptions(BaseModel):
    """Per-crawl knobs. Defaults come from Settings (CRAWLER_*)."""
    model_config = ConfigDict(frozen=True)

    max_pages: int = Field(default_factory=lambda: get_settings().CRAWLER_MAX_PAGES, ge=1)
    timeout_ms: int = Field(default_factory=lambda: get_settings().CRAWLER_TIMEOUT_MS, gt=0)
    include_sitemap: bool = Field(default_factory=lambda: get_settings().CRAWLER_INCLUDE_SITEMAP)
    include_internal_links: bool = Field(
        default_factory=lambda: get_settings().CRAWLER_INCLUDE_INTERNAL_LINKS
    )
    user_agent: str = Field(default_factory=lambda: get_settings().CRAWLER_USER_AGENT, min_length=1)
    max_concurrency: int = Field(default_factory=lambda: get_settings().CRAWLER_MAX_CONCURRENCY, ge=1)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000
