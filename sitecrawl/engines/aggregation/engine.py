"""
Evidence Aggregator - folds per-page evidence into site-wide metrics.

Metric kinds:
  ratio    = pages satisfying a predicate / total pages          (0..1)
  average  = mean of a numeric value over all pages
  count    = pages satisfying a predicate (pillar pages)
  step     = bucketed value (topic cluster coverage)

Readability and sentence-length are coarse heuristics. Scoring depends on
these exact bucket boundaries and defaults:

  words/sentence   < 15 → 70,  < 20 → 60,  < 25 → 50,  else 40
  no words or no sentences → 60 (readability), 20 (sentence length)
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from datetime import datetime, timezone

import structlog

from sitecrawl.engines.base import (
    AggregatedSiteEvidence,
    CrawlRecord,
    EmptyEvidenceError,
    PageEvidence,
)

logger = structlog.get_logger(__name__)


QUESTION_WORDS = ("what", "why", "how", "when", "where", "who", "which", "can", "should", "does")
CONVERSATIONAL_PHRASES = ("how to", "what is", "why", "best way", "guide")

SENTENCE_BOUNDARY = re.compile(r"[.!?]+")
FOUR_WORD_PHRASE = re.compile(r"\b\w+\s+\w+\s+\w+\s+\w+\b")
PROPER_NOUN = re.compile(r"\b[A-Z][a-z]+\b")

# Thresholds
LIST_PAGE_MIN_LISTS = 2
GOOD_ALT_TEXT_COVERAGE = 0.9
LONG_TAIL_MIN_PHRASES = 20
PILLAR_MIN_WORDS = 1500
PILLAR_MIN_H2 = 5
PILLAR_MIN_INTERNAL_LINKS = 5
DEFAULT_FLESCH_SCORE = 60.0
DEFAULT_SENTENCE_LENGTH = 20.0

# (min average internal links, coverage), checked top-down
TOPIC_CLUSTER_STEPS: tuple[tuple[float, float], ...] = ((5, 0.8), (3, 0.6), (1, 0.4))
TOPIC_CLUSTER_FLOOR = 0.2


# ─────────────────────────────────────────────
# Per-page heuristics
# ─────────────────────────────────────────────

def words_per_sentence(text: str) -> float | None:
    """Average words per sentence, or None when the text has no words or sentences."""
    words = len(text.split())
    sentences = len([s for s in SENTENCE_BOUNDARY.split(text) if s.strip()])
    if words == 0 or sentences == 0:
        return None
    return words / sentences


def flesch_like_score(text: str) -> float:
    ratio = words_per_sentence(text)
    if ratio is None:
        return DEFAULT_FLESCH_SCORE
    if ratio < 15:
        return 70.0
    if ratio < 20:
        return 60.0
    if ratio < 25:
        return 50.0
    return 40.0


def sentence_length(text: str) -> float:
    ratio = words_per_sentence(text)
    return DEFAULT_SENTENCE_LENGTH if ratio is None else ratio


def has_question_headings(evidence: PageEvidence) -> bool:
    headings = evidence.content.headings
    for heading in [*headings.h1, *headings.h2, *headings.h3]:
        lower = heading.lower()
        if lower.startswith(QUESTION_WORDS) or "?" in lower:
            return True
    return False


def has_good_alt_text(evidence: PageEvidence) -> bool:
    media = evidence.media
    if media.image_count == 0:
        return True
    return media.images_with_alt / media.image_count >= GOOD_ALT_TEXT_COVERAGE


def has_long_tail_keywords(evidence: PageEvidence) -> bool:
    return len(FOUR_WORD_PHRASE.findall(evidence.content.body_text)) >= LONG_TAIL_MIN_PHRASES


def has_conversational_content(evidence: PageEvidence) -> bool:
    text = evidence.content.body_text.lower()
    return any(phrase in text for phrase in CONVERSATIONAL_PHRASES)


def count_entities(evidence: PageEvidence) -> int:
    return len(set(PROPER_NOUN.findall(evidence.content.body_text)))


def is_pillar_page(evidence: PageEvidence) -> bool:
    return (
        evidence.content.word_count >= PILLAR_MIN_WORDS
        and len(evidence.content.headings.h2) >= PILLAR_MIN_H2
        and evidence.structure.internal_links >= PILLAR_MIN_INTERNAL_LINKS
    )


def topic_cluster_coverage(avg_internal_links: float) -> float:
    for minimum, coverage in TOPIC_CLUSTER_STEPS:
        if avg_internal_links >= minimum:
            return coverage
    return TOPIC_CLUSTER_FLOOR


# ─────────────────────────────────────────────
# Aggregator
# ─────────────────────────────────────────────

class EvidenceAggregator:
    """
    Pure aggregation over crawl records.

    reference_year pins the "mentions the current year" check; when None the
    UTC year at call time is used.
    """

    def __init__(self, reference_year: int | None = None):
        self.reference_year = reference_year

    def aggregate(
        self,
        records: Sequence[CrawlRecord],
        *,
        site_url: str,
        sitemap_detected: bool = False,
        sitemap_location: str | None = None,
    ) -> AggregatedSiteEvidence:
        if not records:
            raise EmptyEvidenceError("No pages successfully crawled")

        metrics = self.site_metrics(records)
        logger.info(
            "Aggregation complete",
            site_url=site_url,
            page_count=len(records),
            question_headings_pct=round(metrics["pages_with_question_headings"] * 100),
            schema_pct=round(metrics["pages_with_schema"] * 100),
        )

        return AggregatedSiteEvidence(
            site_url=site_url,
            page_count=len(records),
            pages=list(records),
            sitemap_detected=sitemap_detected,
            sitemap_location=sitemap_location,
            site_metrics=metrics,
        )

    def site_metrics(self, records: Sequence[CrawlRecord]) -> dict[str, float]:
        pages = [record.evidence for record in records]
        year = str(self.reference_year or datetime.now(timezone.utc).year)

        def ratio(predicate: Callable[[PageEvidence], object]) -> float:
            return len([e for e in pages if predicate(e)]) / len(pages)

        def average(extract: Callable[[PageEvidence], float]) -> float:
            return sum(extract(e) for e in pages) / len(pages)

        avg_internal_links = average(lambda e: e.structure.internal_links)

        return {
            # Question-based content
            "pages_with_question_headings": ratio(has_question_headings),
            "pages_with_faqs": ratio(lambda e: len(e.content.faqs) > 0),
            "pages_with_faq_schema": ratio(lambda e: e.technical.has_faq_schema),

            # Scannability
            "pages_with_lists": ratio(lambda e: e.content.list_count >= LIST_PAGE_MIN_LISTS),
            "pages_with_tables": ratio(lambda e: e.content.table_count > 0),

            # Readability
            "avg_flesch_score": average(lambda e: flesch_like_score(e.content.body_text)),
            "avg_sentence_length": average(lambda e: sentence_length(e.content.body_text)),

            # Heading hierarchy and semantics
            "pages_with_proper_h1": ratio(lambda e: e.structure.heading_count.h1 == 1),
            "pages_with_semantic_html": ratio(lambda e: e.structure.has_main or e.structure.has_article),

            # Alt text
            "pages_with_good_alt_text": ratio(has_good_alt_text),

            # Schema markup
            "pages_with_schema": ratio(lambda e: len(e.technical.structured_data) > 0),
            "pages_with_organization_schema": ratio(lambda e: e.technical.has_organization_schema),

            # Freshness
            "pages_with_last_modified": ratio(
                lambda e: e.metadata.last_modified or e.metadata.published_time
            ),
            "pages_with_current_year": ratio(lambda e: year in e.content.body_text),

            # Voice optimization
            "pages_with_long_tail_keywords": ratio(has_long_tail_keywords),
            "pages_with_conversational_content": ratio(has_conversational_content),

            # Site structure
            "pillar_page_count": float(len([e for e in pages if is_pillar_page(e)])),
            "topic_cluster_coverage": topic_cluster_coverage(avg_internal_links),

            # Content depth
            "avg_word_count": average(lambda e: e.content.word_count),
            "avg_image_count": average(lambda e: e.media.image_count),
            "avg_internal_links": avg_internal_links,

            # Entities and location
            "avg_entities_per_page": average(count_entities),
            "pages_with_location_data": ratio(
                lambda e: e.metadata.geo_region or e.metadata.geo_placename
            ),
        }


def aggregate(records: Sequence[CrawlRecord], **kwargs) -> AggregatedSiteEvidence:
    return EvidenceAggregator().aggregate(records, **kwargs)
