"""Relevance matching: pick the document that best represents a topic.

Scoring per candidate (title or body must contain the topic):

    100 if the document comes from the national region
  + 10 per occurrence of the topic in the title
  +  1 per occurrence in the body
  + a recency bonus below 1

The recency bonus only separates otherwise equal documents. Remaining ties go
to the document seen first.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional

from trendwire.core.documents import Document
from trendwire.core.time import local_midnight, normalize_timezone

NATIONAL_REGION = "national"
NATIONAL_WEIGHT = 100.0
TITLE_WEIGHT = 10.0
BODY_WEIGHT = 1.0

# Epoch seconds are ~1.8e9 until 2300; dividing keeps the bonus below 1
RECENCY_DIVISOR = 1e10


class MatcherVariant(str, Enum):
    """Candidate pool used for matching."""
    WINDOW = "window"  # every document of the analysis window
    TODAY = "today"    # only documents published since local midnight


@dataclass
class ScoredDocument:
    document: Document
    score: float


def recency_bonus(published_at: datetime) -> float:
    return normalize_timezone(published_at).timestamp() / RECENCY_DIVISOR


def count_occurrences(text: str, topic: str) -> int:
    """Non-overlapping, case-insensitive occurrences of ``topic`` in ``text``."""
    if not text or not topic:
        return 0
    return text.lower().count(topic.lower())


def score_document(document: Document, topic: str, national_region: str = NATIONAL_REGION) -> float:
    score = NATIONAL_WEIGHT if document.region == national_region else 0.0
    score += TITLE_WEIGHT * count_occurrences(document.title, topic)
    score += BODY_WEIGHT * count_occurrences(document.body, topic)
    return score + recency_bonus(document.published_at)


def matching_documents(topic: str, documents: Iterable[Document]) -> List[Document]:
    needle = topic.lower()
    return [
        d for d in documents
        if needle in d.title.lower() or needle in d.body.lower()
    ]


def documents_published_today(documents: Iterable[Document], now: datetime, tz_name: str) -> List[Document]:
    """Documents published between local midnight and ``now``."""
    midnight = local_midnight(now, tz_name)
    now = normalize_timezone(now)
    return [d for d in documents if midnight <= d.published_at <= now]


def rank_documents(topic: str, documents: Iterable[Document],
                   national_region: str = NATIONAL_REGION) -> List[ScoredDocument]:
    """Matching documents ordered by score; equal scores keep input order."""
    scored = [
        ScoredDocument(document, score_document(document, topic, national_region))
        for document in matching_documents(topic, documents)
    ]
    scored.sort(key=lambda s: s.score, reverse=True)
    return scored


def representative_document(topic: str, documents: Iterable[Document],
                            national_region: str = NATIONAL_REGION) -> Optional[Document]:
    """
    Best document for ``topic``, or None when no document mentions it.

    Args:
        topic: Trending term or phrase
        documents: Candidates in the store's natural order
        national_region: Region label that earns the national bonus
    """
    if not topic or not topic.strip():
        return None
    ranked = rank_documents(topic.strip(), documents, national_region)
    return ranked[0].document if ranked else None
