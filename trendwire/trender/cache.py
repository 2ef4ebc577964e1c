"""Trending cache.

Holds the single most recent ``TrendingResult`` and decides whether it is
still fresh. Freshness is always derived from the computation timestamp and
the current time, never stored. Every write is persisted through a
``CacheSlot`` so a restart does not force an immediate recomputation.
"""

import asyncio
import json
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from trendwire.core.documents import Document
from trendwire.core.logging import get_logger
from trendwire.core.models import TrendingSnapshot
from trendwire.core.settings import Settings
from trendwire.core.time import get_current_utc_time, local_midnight, normalize_timezone, to_iso, from_iso

logger = get_logger(__name__)

DEFAULT_TTL = timedelta(minutes=60)


@dataclass(frozen=True)
class TrendingEntry:
    """A trending topic with its representative document."""
    topic: str
    document: Document

    def to_dict(self) -> Dict[str, Any]:
        return {"keyword": self.topic, "article": self.document.to_dict()}


@dataclass(frozen=True)
class TrendingResult:
    """Ordered (topic, document) pairs computed at ``computed_at``."""
    entries: List[TrendingEntry]
    computed_at: datetime
    requested_count: int = 0
    strategy: str = field(default="frequency")

    @property
    def topics(self) -> List[str]:
        return [entry.topic for entry in self.entries]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": to_iso(self.computed_at),
            "requested_count": self.requested_count,
            "strategy": self.strategy,
            "keywords": self.topics,
            "articles": [entry.to_dict() for entry in self.entries],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrendingResult":
        """
        Rebuild a result from ``to_dict`` output.

        Raises:
            ValueError: if the payload is malformed
        """
        try:
            entries = [
                TrendingEntry(topic=str(item["keyword"]), document=Document.from_dict(item["article"]))
                for item in data["articles"]
            ]
            computed_at = from_iso(data["timestamp"])
            requested_count = int(data.get("requested_count", len(entries)))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ValueError(f"Malformed trending result: {e}") from e

        topics = [entry.topic.lower() for entry in entries]
        if len(set(topics)) != len(topics):
            raise ValueError("Malformed trending result: duplicate topics")

        return cls(
            entries=entries,
            computed_at=computed_at,
            requested_count=requested_count,
            strategy=str(data.get("strategy", "frequency")),
        )


class CacheSlot(ABC):
    """Durable storage for the latest trending result."""

    @abstractmethod
    async def load(self) -> Optional[TrendingResult]:
        """Most recently stored result, or None.

        Raises:
            ValueError: if the stored payload is malformed
        """

    @abstractmethod
    async def store(self, result: TrendingResult) -> None:
        pass


class NullCacheSlot(CacheSlot):
    """Keeps nothing; the cache lives in memory only."""

    async def load(self) -> Optional[TrendingResult]:
        return None

    async def store(self, result: TrendingResult) -> None:
        return None


class JsonFileCacheSlot(CacheSlot):
    """Stores the result as a JSON file, replaced atomically on every write."""

    def __init__(self, path: str):
        self.path = Path(path)

    async def load(self) -> Optional[TrendingResult]:
        data = await asyncio.to_thread(self._read)
        if data is None:
            return None
        if not isinstance(data, dict):
            raise ValueError(f"Cache file {self.path} does not hold an object")
        return TrendingResult.from_dict(data)

    async def store(self, result: TrendingResult) -> None:
        await asyncio.to_thread(self._write, result.to_dict())

    def _read(self) -> Any:
        if not self.path.exists():
            return None
        try:
            return json.loads(self.path.read_text(encoding='utf-8'))
        except json.JSONDecodeError as e:
            raise ValueError(f"Cache file {self.path} is not valid JSON: {e}") from e

    def _write(self, payload: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".trending-", suffix=".json")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


class SqlCacheSlot(CacheSlot):
    """Keeps the latest result as the single row of ``trending_snapshots``."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def load(self) -> Optional[TrendingResult]:
        async with self.session_factory() as session:
            stmt = (
                select(TrendingSnapshot)
                .order_by(TrendingSnapshot.computed_at.desc(), TrendingSnapshot.id.desc())
                .limit(1)
            )
            snapshot = (await session.execute(stmt)).scalar_one_or_none()
        if snapshot is None:
            return None
        if not isinstance(snapshot.payload, dict):
            raise ValueError(f"Snapshot {snapshot.id} payload is not an object")
        return TrendingResult.from_dict(snapshot.payload)

    async def store(self, result: TrendingResult) -> None:
        async with self.session_factory() as session:
            await session.execute(delete(TrendingSnapshot))
            session.add(TrendingSnapshot(computed_at=result.computed_at, payload=result.to_dict()))
            await session.commit()


class CacheState(str, Enum):
    FRESH = "fresh"
    STALE = "stale"


class TrendingCache:
    """
    Single-slot, time-gated cache of the latest trending result.

    Two gates can keep an entry fresh: the rolling TTL, and optionally the
    daily gate (entry computed since local midnight). The entry is fresh if
    either gate says so.
    """

    def __init__(
        self,
        slot: Optional[CacheSlot] = None,
        ttl: timedelta = DEFAULT_TTL,
        daily_gate: bool = False,
        enabled: bool = True,
        tz_name: str = "Europe/Amsterdam",
        clock: Callable[[], datetime] = get_current_utc_time,
    ):
        self.slot = slot or NullCacheSlot()
        self.ttl = ttl
        self.daily_gate = daily_gate
        self.enabled = enabled
        self.tz_name = tz_name
        self.clock = clock
        self.lock = asyncio.Lock()
        self._entry: Optional[TrendingResult] = None

    @classmethod
    def from_settings(cls, settings: Settings, slot: Optional[CacheSlot] = None,
                      clock: Callable[[], datetime] = get_current_utc_time) -> "TrendingCache":
        return cls(
            slot=slot,
            ttl=timedelta(minutes=settings.trending_ttl_minutes),
            daily_gate=settings.trending_daily_gate,
            enabled=settings.trending_cache_enabled,
            tz_name=settings.tz,
            clock=clock,
        )

    @property
    def entry(self) -> Optional[TrendingResult]:
        return self._entry

    def _now(self, now: Optional[datetime]) -> datetime:
        return normalize_timezone(now) if now else normalize_timezone(self.clock())

    async def load(self) -> Optional[TrendingResult]:
        """Restore the persisted entry; anything unreadable counts as absent."""
        try:
            self._entry = await self.slot.load()
        except Exception as e:
            logger.warning(f"Ignoring unreadable trending cache: {e}")
            self._entry = None
            return None

        if self._entry is not None:
            logger.info(
                f"Trending cache loaded: {len(self._entry.entries)} topics computed at "
                f"{to_iso(self._entry.computed_at)} ({self.state().value})"
            )
        return self._entry

    def is_fresh(self, now: Optional[datetime] = None) -> bool:
        if not self.enabled or self._entry is None:
            return False

        now = self._now(now)
        computed_at = self._entry.computed_at
        if now - computed_at < self.ttl:
            return True
        if self.daily_gate and computed_at >= local_midnight(now, self.tz_name):
            return True
        return False

    def state(self, now: Optional[datetime] = None) -> CacheState:
        return CacheState.FRESH if self.is_fresh(now) else CacheState.STALE

    def read(self, now: Optional[datetime] = None) -> Optional[TrendingResult]:
        """The stored result while fresh, else None."""
        return self._entry if self.is_fresh(now) else None

    async def write(self, result: TrendingResult) -> None:
        """Replace the entry, then persist it. Persistence errors are logged only."""
        self._entry = result
        try:
            await self.slot.store(result)
        except Exception as e:
            logger.error(f"Failed to persist trending cache, keeping in-memory result: {e}")
