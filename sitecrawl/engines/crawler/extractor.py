"""
Content Extractor - turns one fetched page into structured PageEvidence.

The orchestrator only depends on the ContentExtractor protocol; the
HtmlContentExtractor below is the default implementation (httpx + BeautifulSoup).

Tolerance rules:
- Transport failures (connection, timeout, non-2xx, non-HTML) raise PageFetchError
- Anything that cannot be read from the markup falls back to the field default
"""

from __future__ import annotations

import copy
import json
from typing import Any, Protocol

import httpx
import structlog
from bs4 import BeautifulSoup

from sitecrawl.engines.base import (
    FAQEntry,
    HeadingCount,
    HeadingText,
    PageContent,
    PageEvidence,
    PageFetchError,
    PageMedia,
    PageMetadata,
    PageStructure,
    PageTechnical,
)
from sitecrawl.engines.crawler.urls import URLNormalizer

logger = structlog.get_logger(__name__)


class ContentExtractor(Protocol):
    async def extract(self, url: str) -> PageEvidence:
        ...


class HtmlContentExtractor:
    """Fetch a page over HTTP and parse it into PageEvidence."""

    HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")
    NON_CONTENT_TAGS = ["script", "style", "nav", "header", "footer", "aside"]
    BODY_TEXT_LIMIT = 10_000

    def __init__(self, http_client: httpx.AsyncClient, timeout: float = 10.0):
        self.http_client = http_client
        self.timeout = timeout

    async def extract(self, url: str) -> PageEvidence:
        html = await self._fetch_html(url)
        return self.parse(html, url)

    async def _fetch_html(self, url: str) -> str:
        try:
            response = await self.http_client.get(
                url,
                timeout=self.timeout,
                follow_redirects=True,
                headers={"Accept": "text/html,application/xhtml+xml,*/*;q=0.8"},
            )
        except httpx.TimeoutException as e:
            raise PageFetchError(url, f"Request timeout after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise PageFetchError(url, f"Request failed: {e}") from e

        if not response.is_success:
            raise PageFetchError(url, f"Unexpected status {response.status_code}", response.status_code)

        content_type = response.headers.get("content-type", "")
        if content_type and not any(t in content_type for t in self.HTML_CONTENT_TYPES):
            raise PageFetchError(url, f"Not an HTML page ({content_type})", response.status_code)

        return response.text

    # ─────────────────────────────────────────────
    # Parsing
    # ─────────────────────────────────────────────

    @classmethod
    def parse(cls, html: str, url: str) -> PageEvidence:
        """Build PageEvidence from markup. Falls back to defaults on parse errors."""
        try:
            soup = BeautifulSoup(html, "lxml")

            # Must run before non-content tags (incl. <script>) are removed
            metadata = cls._extract_metadata(soup)
            technical = cls._extract_technical(soup)

            for tag in soup(cls.NON_CONTENT_TAGS):
                tag.decompose()

            return PageEvidence(
                url=url,
                html=html,
                metadata=metadata,
                technical=technical,
                content=cls._extract_content(soup, technical.structured_data),
                structure=cls._extract_structure(soup, url),
                media=cls._extract_media(soup),
            )

        except Exception as e:
            logger.warning("HTML parse error", url=url, error=str(e))
            return PageEvidence(url=url, html=html)

    @staticmethod
    def _meta_content(soup: BeautifulSoup, **attrs: str) -> str | None:
        tag = soup.find("meta", attrs=attrs)
        if tag is None:
            return None
        content = (tag.get("content") or "").strip()
        return content or None

    @classmethod
    def _extract_metadata(cls, soup: BeautifulSoup) -> PageMetadata:
        return PageMetadata(
            last_modified=(
                cls._meta_content(soup, name="last-modified")
                or cls._meta_content(soup, property="article:modified_time")
            ),
            published_time=cls._meta_content(soup, property="article:published_time"),
            geo_region=cls._meta_content(soup, name="geo.region"),
            geo_placename=cls._meta_content(soup, name="geo.placename"),
        )

    @classmethod
    def _extract_technical(cls, soup: BeautifulSoup) -> PageTechnical:
        blocks: list[dict[str, Any]] = []
        for script in soup.find_all("script", type="application/ld+json"):
            try:
                data = json.loads(script.string or "")
            except ValueError:
                continue
            blocks.extend(cls._flatten_json_ld(data))

        types = {t for block in blocks for t in cls._schema_types(block)}
        return PageTechnical(
            structured_data=blocks,
            has_faq_schema="FAQPage" in types,
            has_organization_schema="Organization" in types,
        )

    @classmethod
    def _flatten_json_ld(cls, data: Any) -> list[dict[str, Any]]:
        if isinstance(data, list):
            return [block for item in data for block in cls._flatten_json_ld(item)]
        if not isinstance(data, dict):
            return []
        if isinstance(data.get("@graph"), list):
            return cls._flatten_json_ld(data["@graph"])
        return [data]

    @staticmethod
    def _schema_types(block: dict[str, Any]) -> list[str]:
        schema_type = block.get("@type")
        if isinstance(schema_type, list):
            return [str(t) for t in schema_type]
        return [str(schema_type)] if schema_type else []

    @classmethod
    def _extract_faqs(cls, soup: BeautifulSoup, structured_data: list[dict[str, Any]]) -> list[FAQEntry]:
        faqs: list[FAQEntry] = []

        for block in structured_data:
            if "FAQPage" not in cls._schema_types(block):
                continue
            entities = block.get("mainEntity") or []
            if isinstance(entities, dict):
                entities = [entities]
            for entity in entities:
                if not isinstance(entity, dict):
                    continue
                answer = entity.get("acceptedAnswer") or {}
                faqs.append(FAQEntry(
                    question=str(entity.get("name") or "").strip(),
                    answer=str(answer.get("text") or "").strip() if isinstance(answer, dict) else "",
                ))

        for details in soup.find_all("details"):
            summary = details.find("summary")
            if summary is None:
                continue
            # Work on a copy; the page soup must keep its <summary>
            answer_block = copy.copy(details)
            answer_block.find("summary").extract()
            faqs.append(FAQEntry(
                question=summary.get_text(" ", strip=True),
                answer=answer_block.get_text(" ", strip=True),
            ))

        unique: dict[str, FAQEntry] = {}
        for faq in faqs:
            if faq.question and faq.question.lower() not in unique:
                unique[faq.question.lower()] = faq
        return list(unique.values())

    @classmethod
    def _extract_content(cls, soup: BeautifulSoup, structured_data: list[dict[str, Any]]) -> PageContent:
        headings = HeadingText(
            h1=[h.get_text(" ", strip=True) for h in soup.find_all("h1")],
            h2=[h.get_text(" ", strip=True) for h in soup.find_all("h2")],
            h3=[h.get_text(" ", strip=True) for h in soup.find_all("h3")],
        )
        list_count = len(soup.find_all(["ul", "ol"]))
        table_count = len(soup.find_all("table"))

        root = soup.body or soup
        text = " ".join(root.get_text(separator=" ").split())

        return PageContent(
            headings=headings,
            faqs=cls._extract_faqs(soup, structured_data),
            list_count=list_count,
            table_count=table_count,
            body_text=text[:cls.BODY_TEXT_LIMIT],
            word_count=len(text.split()),
        )

    @staticmethod
    def _extract_structure(soup: BeautifulSoup, url: str) -> PageStructure:
        internal_links = 0
        for a in soup.find_all("a", href=True):
            resolved = URLNormalizer.resolve_href(a["href"], url)
            if resolved and URLNormalizer.is_same_origin(resolved, url):
                internal_links += 1

        return PageStructure(
            heading_count=HeadingCount(**{f"h{i}": len(soup.find_all(f"h{i}")) for i in range(1, 7)}),
            has_main=soup.find("main") is not None or soup.find(attrs={"role": "main"}) is not None,
            has_article=soup.find("article") is not None,
            internal_links=internal_links,
        )

    @staticmethod
    def _extract_media(soup: BeautifulSoup) -> PageMedia:
        images = soup.find_all("img")
        return PageMedia(
            image_count=len(images),
            images_with_alt=len([img for img in images if (img.get("alt") or "").strip()]),
        )
