"""
URL Prioritizer

Gives every candidate URL a page category and produces one canonical,
reproducible crawl order:

  1. Weight by category (first match wins on the lower-cased URL)
       home    - equals the base URL, or ends with "/"
       about   - "/about"
       blog    - "/blog" or "/article"
       service - "/service" or "/product"
       contact - "/contact"
       faq     - "/faq"
       other   - everything else
  2. Higher weight first; equal weights ordered by URL ascending

Truncating this order to a page budget always selects the same pages for an
unchanged site, which keeps downstream scores stable across runs.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable


class PageCategory(str, Enum):
    HOME = "home"
    ABOUT = "about"
    BLOG = "blog"
    SERVICE = "service"
    CONTACT = "contact"
    FAQ = "faq"
    OTHER = "other"


CATEGORY_WEIGHTS: dict[PageCategory, int] = {
    PageCategory.HOME: 10,
    PageCategory.ABOUT: 9,
    PageCategory.BLOG: 8,
    PageCategory.SERVICE: 7,
    PageCategory.CONTACT: 6,
    PageCategory.FAQ: 5,
    PageCategory.OTHER: 1,
}

# Checked in order after the home test
CATEGORY_MARKERS: tuple[tuple[PageCategory, tuple[str, ...]], ...] = (
    (PageCategory.ABOUT, ("/about",)),
    (PageCategory.BLOG, ("/blog", "/article")),
    (PageCategory.SERVICE, ("/service", "/product")),
    (PageCategory.CONTACT, ("/contact",)),
    (PageCategory.FAQ, ("/faq",)),
)


class URLPrioritizer:
    """Stateless URL classification and ordering."""

    @classmethod
    def classify(cls, url: str, base_url: str) -> PageCategory:
        lower = url.lower()
        if lower == base_url.lower() or lower.endswith("/"):
            return PageCategory.HOME
        for category, markers in CATEGORY_MARKERS:
            if any(marker in lower for marker in markers):
                return category
        return PageCategory.OTHER

    @classmethod
    def weight(cls, url: str, base_url: str) -> int:
        return CATEGORY_WEIGHTS[cls.classify(url, base_url)]

    @classmethod
    def prioritize(cls, urls: Iterable[str], base_url: str) -> list[str]:
        """Deduplicate and order urls: weight descending, then URL ascending."""
        return sorted(set(urls), key=lambda url: (-cls.weight(url, base_url), url))


def prioritize_urls(urls: Iterable[str], base_url: str) -> list[str]:
    return URLPrioritizer.prioritize(urls, base_url)


def classify_url(url: str, base_url: str) -> PageCategory:
    return URLPrioritizer.classify(url, base_url)
