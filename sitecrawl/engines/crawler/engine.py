"""
Crawl Orchestrator - bounded, deterministic site crawl feeding the aggregator.

Flow:
1. Seed candidates with the base URL
2. Union sitemap URLs (if enabled)
3. Still under budget: union same-origin links from the base page (if enabled)
4. Drop .xml URLs, order with URLPrioritizer, truncate to max_pages
5. Fetch evidence page by page; a failed page is logged and skipped
6. Zero records → SiteCrawlError, otherwise aggregate

Pages are fetched sequentially by default. With max_concurrency > 1 fetches
run under a semaphore, but the selected set is fixed before any fetch and
records keep priority order regardless of completion order.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field

import httpx
import structlog

from sitecrawl.core.logging import crawl_context
from sitecrawl.engines.aggregation.engine import EvidenceAggregator
from sitecrawl.engines.base import (
    AggregatedSiteEvidence,
    CrawlCancelledError,
    CrawlOptions,
    CrawlRecord,
    SiteCrawlError,
)
from sitecrawl.engines.crawler.extractor import ContentExtractor, HtmlContentExtractor
from sitecrawl.engines.crawler.links import LinkDiscoveryFallback
from sitecrawl.engines.crawler.prioritizer import URLPrioritizer
from sitecrawl.engines.crawler.sitemap import SitemapResolution, SitemapResolver
from sitecrawl.engines.crawler.urls import URLNormalizer

logger = structlog.get_logger(__name__)


# ─────────────────────────────────────────────
# Data Structures
# ─────────────────────────────────────────────

@dataclass
class CrawlStats:
    """Per-crawl counters, logged when the crawl finishes."""
    total_candidates: int = 0
    total_selected: int = 0
    total_attempted: int = 0
    total_crawled: int = 0
    total_failed: int = 0
    total_skipped: int = 0
    start_time: float = field(default_factory=time.time)

    @property
    def elapsed_seconds(self) -> float:
        return time.time() - self.start_time


@dataclass
class CrawlPlan:
    """The fixed, ordered page selection for one crawl."""
    urls: list[str]
    sitemap: SitemapResolution
    total_candidates: int


# ─────────────────────────────────────────────
# Orchestrator
# ─────────────────────────────────────────────

class CrawlOrchestrator:
    """
    Builds the candidate set, crawls the selected pages and aggregates them.

    extractor defaults to HtmlContentExtractor over the crawl's httpx client;
    transport is handed to that client (httpx.MockTransport in tests).
    """

    def __init__(
        self,
        options: CrawlOptions | None = None,
        *,
        extractor: ContentExtractor | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        aggregator: EvidenceAggregator | None = None,
    ):
        self.options = options or CrawlOptions()
        self.extractor = extractor
        self.transport = transport
        self.aggregator = aggregator or EvidenceAggregator()
        self.logger = structlog.get_logger(self.__class__.__name__)

    async def crawl(
        self,
        base_url: str,
        options: CrawlOptions | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AggregatedSiteEvidence:
        options = options or self.options
        if not URLNormalizer.is_absolute_http(base_url):
            raise SiteCrawlError(f"Invalid base URL {base_url!r}")

        with crawl_context(base_url):
            return await self._run(base_url, options, cancel_event)

    async def _run(
        self,
        base_url: str,
        options: CrawlOptions,
        cancel_event: asyncio.Event | None,
    ) -> AggregatedSiteEvidence:
        stats = CrawlStats()
        self.logger.info(
            "Starting site crawl",
            base_url=base_url,
            max_pages=options.max_pages,
            include_sitemap=options.include_sitemap,
            include_internal_links=options.include_internal_links,
            max_concurrency=options.max_concurrency,
        )

        async with self._http_client(options) as http_client:
            extractor = self.extractor or HtmlContentExtractor(http_client, timeout=options.timeout_seconds)

            plan = await self._plan(base_url, options, http_client, extractor)
            stats.total_candidates = plan.total_candidates
            stats.total_selected = len(plan.urls)
            self.logger.info(
                "URLs selected for crawl",
                candidates=plan.total_candidates,
                selected=len(plan.urls),
                sitemap_detected=plan.sitemap.detected,
            )

            if options.max_concurrency > 1:
                records = await self._crawl_concurrent(plan.urls, extractor, options, stats, cancel_event)
            else:
                records = await self._crawl_sequential(plan.urls, extractor, options, stats, cancel_event)

        self.logger.info(
            "Site crawl finished",
            base_url=base_url,
            attempted=stats.total_attempted,
            crawled=stats.total_crawled,
            failed=stats.total_failed,
            skipped=stats.total_skipped,
            elapsed_seconds=round(stats.elapsed_seconds, 2),
        )

        if not records:
            self.logger.error("No pages successfully crawled", base_url=base_url, attempted=len(plan.urls))
            raise SiteCrawlError("No pages successfully crawled")

        return self.aggregator.aggregate(
            records,
            site_url=base_url,
            sitemap_detected=plan.sitemap.detected,
            sitemap_location=plan.sitemap.location,
        )

    def _http_client(self, options: CrawlOptions) -> httpx.AsyncClient:
        headers = {
            "User-Agent": options.user_agent,
            "Accept-Language": "en-US,en;q=0.9",
        }
        return httpx.AsyncClient(
            headers=headers,
            follow_redirects=True,
            timeout=options.timeout_seconds,
            transport=self.transport,
        )

    async def _plan(
        self,
        base_url: str,
        options: CrawlOptions,
        http_client: httpx.AsyncClient,
        extractor: ContentExtractor,
    ) -> CrawlPlan:
        candidates: set[str] = {base_url}

        sitemap = SitemapResolution()
        if options.include_sitemap:
            sitemap = await SitemapResolver(http_client, timeout=options.timeout_seconds).resolve(base_url)
            candidates.update(sitemap.urls)

        if len(candidates) < options.max_pages and options.include_internal_links:
            links = await LinkDiscoveryFallback(extractor).discover_links(base_url)
            candidates.update(links)

        xml_urls = {url for url in candidates if URLNormalizer.is_sitemap_url(url)}
        if xml_urls:
            self.logger.info("Filtered XML files from crawl list", count=len(xml_urls))
            candidates -= xml_urls

        ordered = URLPrioritizer.prioritize(candidates, base_url)
        return CrawlPlan(
            urls=ordered[:options.max_pages],
            sitemap=sitemap,
            total_candidates=len(ordered),
        )

    async def _crawl_sequential(
        self,
        urls: list[str],
        extractor: ContentExtractor,
        options: CrawlOptions,
        stats: CrawlStats,
        cancel_event: asyncio.Event | None,
    ) -> list[CrawlRecord]:
        visited: set[str] = set()
        records: list[CrawlRecord] = []

        for url in urls:
            self._check_cancelled(cancel_event, stats)
            if url in visited:
                stats.total_skipped += 1
                continue
            visited.add(url)

            record = await self._crawl_page(url, extractor, options, stats)
            if record is not None:
                records.append(record)

        return records

    async def _crawl_concurrent(
        self,
        urls: list[str],
        extractor: ContentExtractor,
        options: CrawlOptions,
        stats: CrawlStats,
        cancel_event: asyncio.Event | None,
    ) -> list[CrawlRecord]:
        visited: set[str] = set()
        unique: list[str] = []
        for url in urls:
            if url in visited:
                stats.total_skipped += 1
                continue
            visited.add(url)
            unique.append(url)

        semaphore = asyncio.Semaphore(options.max_concurrency)

        async def crawl_url(url: str) -> CrawlRecord | None:
            async with semaphore:
                self._check_cancelled(cancel_event, stats)
                return await self._crawl_page(url, extractor, options, stats)

        # gather keeps submission order, so records stay in priority order
        results = await asyncio.gather(*[crawl_url(url) for url in unique], return_exceptions=True)

        records: list[CrawlRecord] = []
        for result in results:
            if isinstance(result, BaseException):
                raise result
            if result is not None:
                records.append(result)
        return records

    async def _crawl_page(
        self,
        url: str,
        extractor: ContentExtractor,
        options: CrawlOptions,
        stats: CrawlStats,
    ) -> CrawlRecord | None:
        stats.total_attempted += 1
        self.logger.debug("Crawling page", url=url)
        try:
            evidence = await asyncio.wait_for(extractor.extract(url), timeout=options.timeout_seconds)
        except asyncio.TimeoutError:
            stats.total_failed += 1
            self.logger.warning("Page crawl timed out", url=url, timeout=options.timeout_seconds)
            return None
        except Exception as e:
            stats.total_failed += 1
            self.logger.warning("Page crawl failed", url=url, error=str(e))
            return None

        stats.total_crawled += 1
        return CrawlRecord(url=url, evidence=evidence)

    def _check_cancelled(self, cancel_event: asyncio.Event | None, stats: CrawlStats) -> None:
        if cancel_event is not None and cancel_event.is_set():
            self.logger.info("Site crawl cancelled", crawled=stats.total_crawled)
            raise CrawlCancelledError("Crawl cancelled")


async def crawl_site(
    base_url: str,
    options: CrawlOptions | None = None,
    **kwargs,
) -> AggregatedSiteEvidence:
    """Crawl base_url with a fresh orchestrator. kwargs go to CrawlOrchestrator."""
    return await CrawlOrchestrator(options, **kwargs).crawl(base_url)
