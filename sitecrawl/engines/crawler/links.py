"""
Link discovery fallback - same-origin links from one page's markup.
Used when the sitemap does not supply enough candidates for the page budget.
"""

from __future__ import annotations

import structlog
from bs4 import BeautifulSoup

from sitecrawl.engines.crawler.extractor import ContentExtractor
from sitecrawl.engines.crawler.urls import URLNormalizer

logger = structlog.get_logger(__name__)


def extract_same_origin_links(html: str, page_url: str) -> set[str]:
    """Absolute same-origin anchor targets in html, resolved against page_url."""
    if not html:
        return set()

    links: set[str] = set()
    for a in BeautifulSoup(html, "lxml").find_all("a", href=True):
        resolved = URLNormalizer.resolve_href(a["href"], page_url)
        if resolved and URLNormalizer.is_same_origin(resolved, page_url):
            links.add(resolved)
    return links


class LinkDiscoveryFallback:

    def __init__(self, extractor: ContentExtractor):
        self.extractor = extractor

    async def discover_links(self, page_url: str) -> set[str]:
        """Same-origin links found on page_url. Empty set if the page cannot be fetched."""
        try:
            evidence = await self.extractor.extract(page_url)
        except Exception as e:
            logger.warning("Could not fetch internal links", url=page_url, error=str(e))
            return set()

        links = extract_same_origin_links(evidence.html, page_url)
        logger.info("Internal links discovered", url=page_url, link_count=len(links))
        return links
