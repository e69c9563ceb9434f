"""
Tests for CrawlOrchestrator.
Sitemaps are served through httpx MockTransport; page evidence comes from FakeExtractor.
"""

import asyncio

import httpx
import pytest
from structlog.testing import capture_logs

from sitecrawl.engines.base import CrawlCancelledError, CrawlOptions, SiteCrawlError
from sitecrawl.engines.crawler.engine import CrawlOrchestrator, crawl_site

BASE = "https://example.com"
SITEMAP = f"{BASE}/sitemap.xml"


def options(**overrides) -> CrawlOptions:
    defaults = {
        "max_pages": 15,
        "timeout_ms": 2000,
        "include_sitemap": True,
        "include_internal_links": False,
        "max_concurrency": 1,
    }
    return CrawlOptions(**{**defaults, **overrides})


def sitemap_routes(xml, *locs: str) -> dict:
    return {
        SITEMAP: httpx.Response(200, text=xml["urlset"](*locs), headers={"content-type": "application/xml"}),
    }


class TestCandidateSelection:

    @pytest.mark.asyncio
    async def test_budget_truncates_and_skips_fallback(self, fake_extractor, routed_transport, xml):
        pages = [f"{BASE}/page-{i:02d}" for i in range(1, 21)]
        routed = routed_transport(sitemap_routes(xml, *pages))
        extractor = fake_extractor()

        result = await CrawlOrchestrator(
            options(include_internal_links=True), extractor=extractor, transport=routed.transport
        ).crawl(BASE)

        assert result.page_count == 15
        assert extractor.calls == [BASE, *pages[:14]]
        assert [p.url for p in result.pages] == extractor.calls

    @pytest.mark.asyncio
    async def test_fallback_links_when_under_budget(self, fake_extractor, routed_transport):
        home_html = """
        <html><body>
          <a href="/about">About</a>
          <a href="/blog/first">Blog</a>
          <a href="/sitemap.xml">Sitemap</a>
          <a href="https://other.com/partner">Partner</a>
        </body></html>
        """
        routed = routed_transport()
        extractor = fake_extractor(html={BASE: home_html})

        result = await CrawlOrchestrator(
            options(include_internal_links=True), extractor=extractor, transport=routed.transport
        ).crawl(BASE)

        # First call discovers links, then the base page is crawled again as a record
        assert extractor.calls == [BASE, BASE, f"{BASE}/about", f"{BASE}/blog/first"]
        assert [p.url for p in result.pages] == [BASE, f"{BASE}/about", f"{BASE}/blog/first"]
        assert not result.sitemap_detected
        assert result.sitemap_location is None

    @pytest.mark.asyncio
    async def test_sitemap_disabled(self, fake_extractor, routed_transport, xml):
        routed = routed_transport(sitemap_routes(xml, f"{BASE}/about"))
        extractor = fake_extractor()

        result = await CrawlOrchestrator(
            options(include_sitemap=False), extractor=extractor, transport=routed.transport
        ).crawl(BASE)

        assert routed.requests == []
        assert extractor.calls == [BASE]
        assert result.page_count == 1
        assert not result.sitemap_detected

    @pytest.mark.asyncio
    async def test_sitemap_detection_threaded_to_output(self, fake_extractor, routed_transport, xml):
        routed = routed_transport(sitemap_routes(xml, f"{BASE}/contact", f"{BASE}/about"))
        extractor = fake_extractor()

        result = await CrawlOrchestrator(options(), extractor=extractor, transport=routed.transport).crawl(BASE)

        assert result.sitemap_detected
        assert result.sitemap_location == SITEMAP
        assert [p.url for p in result.pages] == [BASE, f"{BASE}/about", f"{BASE}/contact"]
        assert result.site_url == BASE

    @pytest.mark.asyncio
    async def test_same_selection_across_runs(self, fake_extractor, routed_transport, xml):
        pages = [f"{BASE}/blog/{i}" for i in range(10)] + [f"{BASE}/misc/{i}" for i in range(10)]
        routed = routed_transport(sitemap_routes(xml, *pages))

        first = fake_extractor()
        second = fake_extractor()
        for extractor in (first, second):
            await CrawlOrchestrator(
                options(max_pages=8), extractor=extractor, transport=routed.transport
            ).crawl(BASE)

        assert first.calls == second.calls
        assert len(first.calls) == 8


class TestFailureHandling:

    @pytest.mark.asyncio
    async def test_partial_failure_skips_page(self, fake_extractor, routed_transport, xml):
        pages = [f"{BASE}/about", f"{BASE}/blog/a", f"{BASE}/contact", f"{BASE}/faq"]
        routed = routed_transport(sitemap_routes(xml, *pages))
        extractor = fake_extractor(failing={f"{BASE}/contact"})

        with capture_logs() as logs:
            result = await CrawlOrchestrator(options(), extractor=extractor, transport=routed.transport).crawl(BASE)

        assert len(extractor.calls) == 5
        finished = next(e for e in logs if e["event"] == "Site crawl finished")
        assert finished["attempted"] == 5
        assert finished["crawled"] == 4
        assert finished["failed"] == 1
        assert result.page_count == 4
        assert f"{BASE}/contact" not in [p.url for p in result.pages]

    @pytest.mark.asyncio
    async def test_total_failure_raises(self, fake_extractor, routed_transport, xml):
        pages = [f"{BASE}/about", f"{BASE}/faq"]
        routed = routed_transport(sitemap_routes(xml, *pages))
        extractor = fake_extractor(failing={BASE, *pages})

        with pytest.raises(SiteCrawlError, match="No pages successfully crawled"):
            await CrawlOrchestrator(options(), extractor=extractor, transport=routed.transport).crawl(BASE)

    @pytest.mark.asyncio
    async def test_slow_page_times_out(self, fake_extractor, routed_transport, xml):
        routed = routed_transport(sitemap_routes(xml, f"{BASE}/about", f"{BASE}/slow"))
        extractor = fake_extractor(delays={f"{BASE}/slow": 1.0})

        result = await CrawlOrchestrator(
            options(timeout_ms=50), extractor=extractor, transport=routed.transport
        ).crawl(BASE)

        assert [p.url for p in result.pages] == [BASE, f"{BASE}/about"]

    @pytest.mark.asyncio
    async def test_invalid_base_url(self, fake_extractor):
        extractor = fake_extractor()

        with pytest.raises(SiteCrawlError):
            await CrawlOrchestrator(options(), extractor=extractor).crawl("ftp://example.com")
        assert extractor.calls == []


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_records_keep_priority_order(self, fake_extractor, routed_transport, xml):
        pages = [f"{BASE}/about", f"{BASE}/blog/a", f"{BASE}/services", f"{BASE}/contact"]
        routed = routed_transport(sitemap_routes(xml, *pages))
        # Highest-priority pages finish last
        extractor = fake_extractor(delays={
            BASE: 0.2,
            f"{BASE}/about": 0.15,
            f"{BASE}/blog/a": 0.1,
            f"{BASE}/services": 0.05,
        })

        result = await CrawlOrchestrator(
            options(max_concurrency=5), extractor=extractor, transport=routed.transport
        ).crawl(BASE)

        assert [p.url for p in result.pages] == [
            BASE, f"{BASE}/about", f"{BASE}/blog/a", f"{BASE}/services", f"{BASE}/contact",
        ]

    @pytest.mark.asyncio
    async def test_concurrent_partial_failure(self, fake_extractor, routed_transport, xml):
        pages = [f"{BASE}/about", f"{BASE}/faq"]
        routed = routed_transport(sitemap_routes(xml, *pages))
        extractor = fake_extractor(failing={f"{BASE}/about"})

        result = await CrawlOrchestrator(
            options(max_concurrency=3), extractor=extractor, transport=routed.transport
        ).crawl(BASE)

        assert [p.url for p in result.pages] == [BASE, f"{BASE}/faq"]


class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancel_between_pages(self, fake_extractor, routed_transport, xml):
        routed = routed_transport(sitemap_routes(xml, f"{BASE}/about", f"{BASE}/faq"))
        cancel = asyncio.Event()
        extractor = fake_extractor(on_extract=lambda url: cancel.set())

        with pytest.raises(CrawlCancelledError):
            await CrawlOrchestrator(options(), extractor=extractor, transport=routed.transport).crawl(
                BASE, cancel_event=cancel
            )

        assert extractor.calls == [BASE]

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, fake_extractor, routed_transport):
        routed = routed_transport()
        cancel = asyncio.Event()
        cancel.set()
        extractor = fake_extractor()

        with pytest.raises(CrawlCancelledError):
            await CrawlOrchestrator(
                options(max_concurrency=2), extractor=extractor, transport=routed.transport
            ).crawl(BASE, cancel_event=cancel)

        assert extractor.calls == []


class TestDefaultExtractor:

    @pytest.mark.asyncio
    async def test_end_to_end_over_http(self, routed_transport, xml):
        html = {
            f"{BASE}/": "<html><body><main><h1>Welcome</h1><p>How to get started. Read on.</p></main></body></html>",
            f"{BASE}/about": "<html><body><h1>About</h1><h2>Who are we?</h2><ul></ul><ul></ul></body></html>",
        }
        routes = sitemap_routes(xml, f"{BASE}/about", f"{BASE}/missing")
        routes.update({
            url: httpx.Response(200, text=body, headers={"content-type": "text/html"})
            for url, body in html.items()
        })
        routed = routed_transport(routes)

        result = await crawl_site(BASE, options(user_agent="TestBot/2.0"), transport=routed.transport)

        assert [p.url for p in result.pages] == [BASE, f"{BASE}/about"]
        assert result.site_metrics["pages_with_proper_h1"] == 1.0
        assert result.site_metrics["pages_with_question_headings"] == 0.5
        assert result.site_metrics["pages_with_lists"] == 0.5
        assert result.site_metrics["pages_with_semantic_html"] == 0.5
        assert all(r.headers["user-agent"] == "TestBot/2.0" for r in routed.requests)

        dumped = result.dump_without_html()
        assert "html" not in dumped["pages"][0]["evidence"]
        assert result.pages[0].evidence.html
