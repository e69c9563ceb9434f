"""
Shared fixtures. All network I/O goes through httpx.MockTransport or FakeExtractor.
"""

import asyncio
from typing import Callable

import httpx
import pytest

from sitecrawl.engines.base import (
    FAQEntry,
    HeadingCount,
    HeadingText,
    PageContent,
    PageEvidence,
    PageFetchError,
    PageMedia,
    PageStructure,
)


class FakeExtractor:
    """In-memory ContentExtractor: records calls, fails or delays selected URLs."""

    def __init__(
        self,
        html: dict[str, str] | None = None,
        failing: set[str] | None = None,
        delays: dict[str, float] | None = None,
        on_extract: Callable[[str], None] | None = None,
    ):
        self.html = html or {}
        self.failing = failing or set()
        self.delays = delays or {}
        self.on_extract = on_extract
        self.calls: list[str] = []

    async def extract(self, url: str) -> PageEvidence:
        self.calls.append(url)
        if url in self.delays:
            await asyncio.sleep(self.delays[url])
        if url in self.failing:
            raise PageFetchError(url, "Connection refused")
        if self.on_extract is not None:
            self.on_extract(url)
        return PageEvidence(url=url, html=self.html.get(url, ""))


def urlset(*locs: str) -> str:
    entries = "".join(f"<url><loc>{loc}</loc></url>" for loc in locs)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">{entries}</urlset>'
    )


def sitemapindex(*locs: str) -> str:
    entries = "".join(f"<sitemap><loc>{loc}</loc></sitemap>" for loc in locs)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">{entries}</sitemapindex>'
    )


class RoutedTransport:
    """MockTransport keyed by scheme://host/path; unknown paths return 404."""

    def __init__(self, routes: dict[str, httpx.Response | Exception] | None = None):
        self.routes = routes or {}
        self.requests: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        route = self.routes.get(key)
        if route is None:
            return httpx.Response(404, text="Not Found")
        if isinstance(route, Exception):
            raise route
        return route

    @property
    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


@pytest.fixture
def fake_extractor():
    return FakeExtractor


@pytest.fixture
def routed_transport():
    return RoutedTransport


@pytest.fixture
def xml():
    return {"urlset": urlset, "sitemapindex": sitemapindex}


@pytest.fixture
def make_evidence():
    def _make(
        url: str = "https://example.com/",
        *,
        body_text: str = "",
        word_count: int = 0,
        faqs: int = 0,
        h1: int = 1,
        h2: int = 0,
        h2_text: list[str] | None = None,
        list_count: int = 0,
        table_count: int = 0,
        internal_links: int = 0,
        image_count: int = 0,
        images_with_alt: int = 0,
        has_main: bool = False,
        has_article: bool = False,
        **overrides,
    ) -> PageEvidence:
        h2_text = h2_text if h2_text is not None else [f"Section {i}" for i in range(h2)]
        evidence = PageEvidence(
            url=url,
            content=PageContent(
                headings=HeadingText(h1=["Title"] * h1, h2=h2_text),
                faqs=[FAQEntry(question=f"Q{i}?", answer="A") for i in range(faqs)],
                list_count=list_count,
                table_count=table_count,
                body_text=body_text,
                word_count=word_count,
            ),
            media=PageMedia(image_count=image_count, images_with_alt=images_with_alt),
            structure=PageStructure(
                heading_count=HeadingCount(h1=h1, h2=len(h2_text)),
                has_main=has_main,
                has_article=has_article,
                internal_links=internal_links,
            ),
        )
        return evidence.model_copy(update=overrides)

    return _make
