"""Trending pipeline orchestrator.

Coordinates the trending-topic flow:
1. Cache: serve the stored result while it is fresh
2. Candidates: frequent terms (or per-document keywords) of the analysis window
3. Selection: external classifier picks the newsworthy terms, with fallback
4. Matching: one representative document per selected term
5. Persistence: the new result replaces the cached one
"""

import time
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from trendwire.core.documents import Document
from trendwire.core.logging import get_logger
from trendwire.core.settings import Settings, get_settings
from trendwire.core.store import DocumentStore
from trendwire.core.time import get_current_utc_time, normalize_timezone, window_start
from trendwire.ingestor.normalizer import normalize_raw_document
from trendwire.trender.cache import TrendingCache, TrendingEntry, TrendingResult
from trendwire.trender.classifier import TextClassifier
from trendwire.trender.frequency import documents_in_window, top_keywords, top_terms
from trendwire.trender.keywords import assign_document_keyword, select_trending_terms
from trendwire.trender.matcher import MatcherVariant, documents_published_today, representative_document
from trendwire.trender.tokenizer import load_stopwords

logger = get_logger(__name__)

DEFAULT_DESIRED_COUNT = 5
UNFILTERED_SEARCH_LIMIT = 3


class CandidateStrategy(str, Enum):
    """How candidate terms are produced for the selector."""
    FREQUENCY = "frequency"  # tokenize every document of the window
    KEYWORDS = "keywords"    # aggregate the precomputed per-document keywords


class TrendingService:
    """Composes store, classifier, cache and matcher into the public operations."""

    def __init__(
        self,
        store: DocumentStore,
        classifier: TextClassifier,
        cache: TrendingCache,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = get_current_utc_time,
    ):
        self.store = store
        self.classifier = classifier
        self.cache = cache
        self.settings = settings or get_settings()
        self.clock = clock
        self.strategy = CandidateStrategy(self.settings.candidate_strategy)
        self.matcher_variant = MatcherVariant(self.settings.matcher_variant)
        self.stopwords = load_stopwords(self.settings.stopwords_path)

    def _now(self) -> datetime:
        return normalize_timezone(self.clock())

    async def get_trending_topics(self, desired_count: int = DEFAULT_DESIRED_COUNT) -> List[str]:
        """Ranked trending topics."""
        entries = await self.get_trending_articles(desired_count)
        return [entry.topic for entry in entries]

    async def get_trending_articles(self, desired_count: int = DEFAULT_DESIRED_COUNT) -> List[TrendingEntry]:
        """Ranked trending topics, each with its representative document."""
        if desired_count <= 0:
            return []

        cached = self._cached(desired_count)
        if cached is not None:
            logger.debug("Serving trending articles from cache")
            return cached.entries[:desired_count]

        async with self.cache.lock:
            # Another caller may have recomputed while we waited for the lock
            cached = self._cached(desired_count)
            if cached is not None:
                logger.debug("Serving trending articles computed by a concurrent caller")
                return cached.entries[:desired_count]

            result = await self._compute(desired_count)

        return result.entries[:desired_count]

    async def refresh(self, desired_count: int = DEFAULT_DESIRED_COUNT) -> TrendingResult:
        """Recompute regardless of cache freshness (scheduler entry point)."""
        async with self.cache.lock:
            return await self._compute(desired_count)

    def _cached(self, desired_count: int) -> Optional[TrendingResult]:
        result = self.cache.read(self._now())
        if result is not None and result.requested_count >= desired_count:
            return result
        return None

    async def _compute(self, desired_count: int) -> TrendingResult:
        start_time = time.time()
        now = self._now()
        logger.info(
            f"Computing trending topics: strategy={self.strategy.value}, "
            f"window={self.settings.analysis_window_hours}h, count={desired_count}"
        )

        documents = await self._recent_documents(now)
        candidates = self._candidate_terms(documents)

        if not candidates:
            logger.info("No candidate terms in the analysis window, cache left untouched")
            return TrendingResult(entries=[], computed_at=now, requested_count=desired_count,
                                  strategy=self.strategy.value)

        selected = await select_trending_terms(
            self.classifier, candidates, desired_count, timeout=self.settings.llm_timeout_seconds
        )

        pool = self._matching_pool(documents, now)
        entries = []
        for topic in selected:
            document = representative_document(topic, pool, self.settings.national_region)
            if document is None:
                logger.info(f"No representative document for '{topic}', dropping topic")
                continue
            entries.append(TrendingEntry(topic=topic, document=document))

        result = TrendingResult(
            entries=entries,
            computed_at=now,
            requested_count=desired_count,
            strategy=self.strategy.value,
        )
        await self.cache.write(result)

        logger.info(
            f"Trending topics computed in {time.time() - start_time:.2f}s from "
            f"{len(documents)} documents: {', '.join(result.topics) or '<none>'}"
        )
        return result

    async def _recent_documents(self, now: datetime) -> List[Document]:
        start = window_start(now, self.settings.analysis_window_hours)
        try:
            documents = await self.store.find_by_time_range(start, now)
        except Exception as e:
            logger.error(f"Failed to read recent documents: {e}")
            return []
        # Stores may be lenient about bounds; the window is enforced here
        return documents_in_window(documents, now, self.settings.analysis_window_hours)

    def _candidate_terms(self, documents: List[Document]) -> List[str]:
        if self.strategy is CandidateStrategy.KEYWORDS:
            return top_keywords(documents, self.settings.top_terms_limit)
        return top_terms(documents, self.settings.top_terms_limit, self.stopwords)

    def _matching_pool(self, documents: List[Document], now: datetime) -> List[Document]:
        if self.matcher_variant is MatcherVariant.TODAY:
            return documents_published_today(documents, now, self.settings.tz)
        return documents

    async def add_document(self, raw: Mapping[str, Any]) -> Dict[str, bool]:
        """
        Ingest one raw feed item.

        Returns:
            {"inserted": True} when the document was new
        """
        document = normalize_raw_document(raw, now=self._now())
        if document is None:
            return {"inserted": False}

        try:
            inserted = await self.store.insert_if_absent(document)
        except Exception as e:
            logger.error(f"Failed to insert document {document.identity}: {e}")
            return {"inserted": False}

        if inserted and self.strategy is CandidateStrategy.KEYWORDS:
            await assign_document_keyword(
                self.store, self.classifier, document, timeout=self.settings.llm_timeout_seconds
            )

        return {"inserted": inserted}

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete documents older than the retention horizon."""
        now = normalize_timezone(now) if now else self._now()
        cutoff = now - timedelta(days=self.settings.retention_days)
        deleted = await self.store.delete_older_than(cutoff)
        logger.info(f"Retention sweep removed {deleted} documents published before {cutoff.isoformat()}")
        return deleted

    async def search_documents(self, query: Optional[str] = None, source: Optional[str] = None,
                               region: Optional[str] = None, date_from: Optional[datetime] = None,
                               date_to: Optional[datetime] = None) -> List[Document]:
        """
        Documents matching every given criterion, newest first.

        Without any criterion only the newest ``UNFILTERED_SEARCH_LIMIT``
        documents are returned.
        """
        filtered = any(value for value in (query, source, region, date_from, date_to))
        return await self.store.search(
            query=query,
            source=source,
            region=region,
            date_from=date_from,
            date_to=date_to,
            limit=None if filtered else UNFILTERED_SEARCH_LIMIT,
        )

    async def stats(self) -> Dict[str, Any]:
        """Corpus statistics plus the currently cached topics."""
        cached = self.cache.entry
        try:
            total = await self.store.count()
            sources = await self.store.distinct_values("source")
            regions = await self.store.distinct_values("region")
        except Exception as e:
            logger.error(f"Failed to read corpus statistics: {e}")
            total, sources, regions = None, [], []

        return {
            "total_documents": total,
            "sources": sources,
            "regions": regions,
            "trending_topics": cached.topics if cached else [],
            "trending_computed_at": cached.computed_at.isoformat() if cached else None,
            "cache_state": self.cache.state(self._now()).value,
        }
