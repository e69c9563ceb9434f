"""
Sitemap Resolver - discovers and parses XML sitemaps for crawl candidates.

Flow:
1. Probe conventional sitemap locations at the origin, in order, until one
   returns 200 with a <urlset> or <sitemapindex> root
2. Sitemap index: fetch each same-origin .xml child and union their page URLs
   (indexes of indexes are followed up to MAX_INDEX_DEPTH)
3. Flat sitemap: keep same-origin, non-.xml <loc> entries
4. Return the URLs in canonical priority order

Never raises: a missing or broken sitemap is an empty result.
"""

from __future__ import annotations

import time

import httpx
import structlog
from bs4 import BeautifulSoup, Tag
from pydantic import BaseModel, ConfigDict, Field

from sitecrawl.engines.crawler.prioritizer import URLPrioritizer
from sitecrawl.engines.crawler.urls import URLNormalizer

logger = structlog.get_logger(__name__)


SITEMAP_PATHS: tuple[str, ...] = (
    "/sitemap.xml",
    "/sitemap_index.xml",
    "/sitemap-index.xml",
    "/wp-sitemap.xml",          # WordPress core
    "/sitemap/sitemap.xml",
    "/sitemaps/sitemap.xml",
    "/sitemap1.xml",
)

MAX_INDEX_DEPTH = 3

CACHE_BUST_PARAM = "_cb"
NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Accept": "application/xml,text/xml;q=0.9,*/*;q=0.8",
}


class SitemapResolution(BaseModel):
    """Candidate page URLs from a sitemap and where the sitemap was found."""
    model_config = ConfigDict(frozen=True)

    urls: list[str] = Field(default_factory=list)
    location: str | None = None

    @property
    def detected(self) -> bool:
        return self.location is not None


class SitemapResolver:
    """Discover and parse XML sitemaps over a shared httpx client."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        timeout: float = 10.0,
        paths: tuple[str, ...] = SITEMAP_PATHS,
    ):
        self.http_client = http_client
        self.timeout = timeout
        self.paths = paths

    async def resolve(self, base_url: str) -> SitemapResolution:
        origin = URLNormalizer.origin(base_url)
        if origin is None:
            logger.warning("Sitemap resolution skipped, base URL is not http(s)", base_url=base_url)
            return SitemapResolution()

        for path in self.paths:
            location = f"{origin}{path}"
            root = await self._fetch_document(location)
            if root is None:
                continue

            urls = await self._collect(root, location, origin, depth=0, seen={location})
            ordered = URLPrioritizer.prioritize(urls, base_url)
            logger.info("Sitemap resolved", location=location, url_count=len(ordered))
            return SitemapResolution(urls=ordered, location=location)

        logger.info("No sitemap found", origin=origin, locations_tried=len(self.paths))
        return SitemapResolution()

    async def _collect(
        self,
        root: Tag,
        location: str,
        origin: str,
        depth: int,
        seen: set[str],
    ) -> set[str]:
        """Page URLs reachable from one parsed sitemap document."""
        if root.name != "sitemapindex":
            return {
                loc for loc in self._locs(root, "url")
                if URLNormalizer.is_same_origin(loc, origin) and not URLNormalizer.is_sitemap_url(loc)
            }

        children = [
            loc for loc in self._locs(root, "sitemap")
            if URLNormalizer.is_same_origin(loc, origin) and URLNormalizer.is_sitemap_url(loc)
        ]
        logger.info("Sitemap index detected", location=location, nested_count=len(children), depth=depth)

        urls: set[str] = set()
        for child in children:
            if child in seen:
                continue
            seen.add(child)

            if depth >= MAX_INDEX_DEPTH:
                logger.warning("Sitemap index nested too deep, skipping", url=child, depth=depth)
                continue

            nested_root = await self._fetch_document(child)
            if nested_root is None:
                logger.warning("Nested sitemap fetch failed", url=child, parent=location)
                continue

            nested_urls = await self._collect(nested_root, child, origin, depth + 1, seen)
            logger.debug("Nested sitemap parsed", url=child, url_count=len(nested_urls))
            urls |= nested_urls

        return urls

    async def _fetch_document(self, url: str) -> Tag | None:
        """Fetch a sitemap and return its <urlset>/<sitemapindex> root, or None."""
        try:
            response = await self.http_client.get(
                url,
                params={CACHE_BUST_PARAM: str(int(time.time() * 1000))},
                headers=NO_CACHE_HEADERS,
                timeout=self.timeout,
                follow_redirects=True,
            )
        except httpx.TimeoutException:
            logger.warning("Sitemap fetch timed out", url=url, timeout=self.timeout)
            return None
        except httpx.HTTPError as e:
            logger.warning("Sitemap fetch failed", url=url, error=str(e))
            return None

        if response.status_code == 404:
            logger.debug("Sitemap not found", url=url, status=404)
            return None
        if response.status_code != 200:
            logger.info("Sitemap unavailable", url=url, status=response.status_code)
            return None

        try:
            soup = BeautifulSoup(response.content, "xml")
        except Exception as e:
            logger.info("Sitemap not parseable", url=url, error=str(e))
            return None

        root = soup.find(True)
        if root is None or root.name not in ("urlset", "sitemapindex"):
            logger.info("Sitemap not parseable", url=url, root=getattr(root, "name", None))
            return None
        return root

    @staticmethod
    def _locs(root: Tag, entry_tag: str) -> list[str]:
        """Stripped, non-empty <loc> values of the root's direct <url>/<sitemap> entries."""
        locs: list[str] = []
        for entry in root.find_all(entry_tag, recursive=False):
            loc = entry.find("loc", recursive=False)
            if loc is None:
                continue
            value = loc.get_text(strip=True)
            if value:
                locs.append(value)
        return locs
