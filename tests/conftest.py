"""Shared fixtures and test doubles for the trendwire test suite."""

import asyncio
from datetime import datetime, timezone, timedelta
from typing import Any, Dict, List, Optional

import pytest

from trendwire.core.documents import Document
from trendwire.core.settings import Settings
from trendwire.core.store import InMemoryDocumentStore
from trendwire.trender.cache import TrendingCache
from trendwire.trender.classifier import ClassifierUnavailableError, TextClassifier
from trendwire.trender.pipeline import TrendingService

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable clock, callable like ``get_current_utc_time``."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class CountingClassifier(TextClassifier):
    """Classifier double that replays answers and counts calls.

    ``answers`` are returned in order (the last one repeats); an Exception
    instance among them is raised instead. With no answers every call fails
    like an unconfigured provider.
    """

    def __init__(self, *answers: Any, delay: float = 0.0):
        self.answers: List[Any] = list(answers)
        self.delay = delay
        self.call_count = 0
        self.calls: List[Dict[str, Any]] = []

    @property
    def provider_name(self) -> str:
        return "Counting"

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy", "provider": self.provider_name}

    async def classify(self, system_instruction: str, user_payload: str,
                       response_schema: Optional[Dict[str, Any]] = None,
                       max_tokens: int = 200) -> str:
        self.call_count += 1
        self.calls.append({
            "system_instruction": system_instruction,
            "user_payload": user_payload,
            "response_schema": response_schema,
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.answers:
            raise ClassifierUnavailableError("No answers configured")
        index = min(self.call_count - 1, len(self.answers) - 1)
        answer = self.answers[index]
        if isinstance(answer, Exception):
            raise answer
        return answer


def make_document(identity: str, title: str, body: str = "", minutes_ago: float = 0,
                  region: str = "", source: str = "", keyword: Optional[str] = None,
                  now: datetime = NOW) -> Document:
    return Document(
        identity=f"https://news.example/{identity}",
        title=title,
        body=body,
        published_at=now - timedelta(minutes=minutes_ago),
        source=source,
        region=region,
        keyword=keyword,
    )


def make_settings(**overrides) -> Settings:
    values = {
        "tz": "Europe/Amsterdam",
        "llm_api_key": "",
        "llm_timeout_seconds": 1.0,
        "trending_ttl_minutes": 60,
        "trending_cache_enabled": True,
        "trending_daily_gate": False,
        "candidate_strategy": "frequency",
        "matcher_variant": "window",
        "allow_manual_run": True,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_service(store=None, classifier=None, clock=None, slot=None, **setting_overrides) -> TrendingService:
    settings = make_settings(**setting_overrides)
    clock = clock or FakeClock()
    cache = TrendingCache.from_settings(settings, slot=slot, clock=clock)
    return TrendingService(
        store=store if store is not None else InMemoryDocumentStore(),
        classifier=classifier if classifier is not None else CountingClassifier(),
        cache=cache,
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def store():
    return InMemoryDocumentStore()
