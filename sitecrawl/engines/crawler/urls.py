"""
URL utilities shared by sitemap resolution, link discovery and the orchestrator.
"""

from __future__ import annotations

from urllib.parse import urldefrag, urljoin, urlparse

SKIPPED_HREF_PREFIXES = ("#", "mailto:", "tel:", "javascript:")


class URLNormalizer:
    """Origin checks and link resolution for same-site crawling."""

    @classmethod
    def origin(cls, url: str) -> str | None:
        """Return ``scheme://host[:port]`` lower-cased, or None for non-http(s) URLs."""
        try:
            parsed = urlparse(url.strip())
        except ValueError:
            return None
        if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
            return None
        return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}"

    @classmethod
    def is_same_origin(cls, url: str, base_url: str) -> bool:
        origin = cls.origin(url)
        return origin is not None and origin == cls.origin(base_url)

    @classmethod
    def is_absolute_http(cls, url: str) -> bool:
        return cls.origin(url) is not None

    @classmethod
    def is_sitemap_url(cls, url: str) -> bool:
        return url.lower().endswith(".xml")

    @classmethod
    def resolve_href(cls, href: str, page_url: str) -> str | None:
        """
        Resolve an anchor target against page_url.
        Returns None for fragment-only, mailto:, tel:, javascript:, non-http(s)
        or malformed targets. The fragment of the resolved URL is dropped.
        """
        href = href.strip()
        if not href or href.lower().startswith(SKIPPED_HREF_PREFIXES):
            return None
        try:
            absolute, _fragment = urldefrag(urljoin(page_url, href))
            # Port parsing is lazy in urllib; force it so bad ports are rejected here
            urlparse(absolute).port
        except ValueError:
            return None
        if not cls.is_absolute_http(absolute):
            return None
        return absolute
