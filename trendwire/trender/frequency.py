"""Term frequency aggregation over a window of documents."""

from collections import Counter
from datetime import datetime
from typing import FrozenSet, Iterable, List, Optional, Sequence

from trendwire.core.documents import Document
from trendwire.core.time import normalize_timezone, window_start
from trendwire.trender.tokenizer import tokenize, load_stopwords

DEFAULT_WINDOW_HOURS = 24
DEFAULT_LIMIT = 100


def documents_in_window(documents: Iterable[Document], now: datetime,
                        window_hours: float = DEFAULT_WINDOW_HOURS) -> List[Document]:
    """Documents published within the sliding window ``[now - window_hours, now]``."""
    now = normalize_timezone(now)
    start = window_start(now, window_hours)
    return [d for d in documents if start <= d.published_at <= now]


def _ranked(counts: Counter, limit: int) -> List[str]:
    # Counter keeps first-seen order and sorted() is stable, so ties stay first-seen
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [term for term, _ in ranked[:limit]]


def top_terms(documents: Sequence[Document], limit: int = DEFAULT_LIMIT,
              stopwords: Optional[FrozenSet[str]] = None) -> List[str]:
    """
    Most frequent terms across title and body of ``documents``.

    Args:
        documents: Documents already restricted to the analysis window
        limit: Maximum number of terms returned
        stopwords: Stopword set (defaults to the bundled list)

    Returns:
        Terms ordered by count descending, ties by first occurrence
    """
    if not documents or limit <= 0:
        return []
    if stopwords is None:
        stopwords = load_stopwords()

    counts: Counter = Counter()
    for document in documents:
        counts.update(tokenize(f"{document.title} {document.body}", stopwords))

    return _ranked(counts, limit)


def top_keywords(documents: Sequence[Document], limit: int = DEFAULT_LIMIT) -> List[str]:
    """Most frequent precomputed per-document keywords (case-insensitive)."""
    counts: Counter = Counter()
    for document in documents:
        if document.has_keyword:
            counts[document.keyword.strip().lower()] += 1
    return _ranked(counts, limit)
