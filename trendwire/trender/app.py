"""Trender service FastAPI application."""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from pydantic import BaseModel, Field

from trendwire.core.db import create_all, create_engine_from_url, create_session_factory
from trendwire.core.logging import setup_logging, get_logger
from trendwire.core.settings import Settings, get_settings
from trendwire.core.store import SqlDocumentStore
from trendwire.trender.cache import JsonFileCacheSlot, SqlCacheSlot, TrendingCache
from trendwire.trender.classifier import create_classifier
from trendwire.trender.pipeline import TrendingService

SERVICE_NAME = "trender"
VERSION = "0.1.0"

logger = get_logger(__name__)


class RawDocumentRequest(BaseModel):
    """Raw feed item as delivered by the crawler."""
    title: str = Field(..., min_length=1, max_length=800)
    link: str = Field(..., min_length=1, max_length=1500)
    content: str = Field(default="")
    pubDate: Optional[str] = Field(default=None, description="Publication date, RFC 2822 or ISO 8601")
    medium: str = Field(default="", description="Source label")
    region: str = Field(default="", description="Region label")


class InsertResponse(BaseModel):
    inserted: bool


class TopicsResponse(BaseModel):
    topics: List[str]


class TrendingArticle(BaseModel):
    keyword: str
    article: Dict[str, Any]


class ArticlesResponse(BaseModel):
    articles: List[TrendingArticle]


class SnapshotResponse(BaseModel):
    """Latest computed result, fresh or not."""
    success: bool
    timestamp: Optional[str] = None
    state: str
    keywords: List[str] = Field(default_factory=list)
    articles: List[TrendingArticle] = Field(default_factory=list)


class RetentionResponse(BaseModel):
    deleted: int


async def build_service(settings: Settings):
    """Wire the durable store, cache slot and classifier described by ``settings``."""
    engine = create_engine_from_url(settings.db_url)
    await create_all(engine)
    session_factory = create_session_factory(engine)

    if settings.trending_cache_backend == "sql":
        slot = SqlCacheSlot(session_factory)
    else:
        slot = JsonFileCacheSlot(settings.trending_cache_path)

    cache = TrendingCache.from_settings(settings, slot=slot)
    await cache.load()

    service = TrendingService(
        store=SqlDocumentStore(session_factory),
        classifier=create_classifier(settings),
        cache=cache,
        settings=settings,
    )
    return service, engine


def create_app(service: Optional[TrendingService] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Create the trender application.

    When ``service`` is given it is used as-is; otherwise one is built from
    settings at startup and torn down at shutdown.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(SERVICE_NAME)
        engine = None
        if service is None:
            app.state.service, engine = await build_service(settings)
        else:
            app.state.service = service
        logger.info("Starting trender service", extra={"service": SERVICE_NAME, "version": VERSION})
        try:
            yield
        finally:
            logger.info("Shutting down trender service")
            await app.state.service.classifier.aclose()
            if engine is not None:
                await engine.dispose()

    app = FastAPI(
        title="Trendwire Trender",
        version=VERSION,
        description="Trending topics and representative articles",
        lifespan=lifespan,
    )

    def get_service(request: Request) -> TrendingService:
        return request.app.state.service

    def check_manual_run_enabled():
        if not settings.allow_manual_run:
            raise HTTPException(
                status_code=403,
                detail="Manual runs are disabled. Set ALLOW_MANUAL_RUN=true to enable."
            )
        return True

    @app.get("/healthz")
    async def health_check():
        """Health check endpoint."""
        return {"ok": True, "service": SERVICE_NAME}

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "service": SERVICE_NAME,
            "version": VERSION,
            "endpoints": {
                "health": "/healthz",
                "topics": "/trending/topics",
                "articles": "/trending/articles",
                "snapshot": "/trending",
                "refresh": "/trending/refresh (POST)" if settings.allow_manual_run else "/trending/refresh (disabled)",
                "documents": "/documents (POST)",
                "search": "/documents/search",
                "retention": "/maintenance/retention (POST)",
                "stats": "/stats",
            }
        }

    @app.get("/trending/topics", response_model=TopicsResponse)
    async def trending_topics(count: int = Query(default=5, ge=1, le=10),
                              service: TrendingService = Depends(get_service)):
        return TopicsResponse(topics=await service.get_trending_topics(count))

    @app.get("/trending/articles", response_model=ArticlesResponse)
    async def trending_articles(count: int = Query(default=5, ge=1, le=10),
                                service: TrendingService = Depends(get_service)):
        entries = await service.get_trending_articles(count)
        return ArticlesResponse(articles=[TrendingArticle(**entry.to_dict()) for entry in entries])

    @app.get("/trending", response_model=SnapshotResponse)
    async def trending_snapshot(service: TrendingService = Depends(get_service)):
        """Latest stored result without triggering a recomputation."""
        cached = service.cache.entry
        state = service.cache.state().value
        if cached is None:
            return SnapshotResponse(success=False, state=state)
        data = cached.to_dict()
        return SnapshotResponse(
            success=True,
            timestamp=data["timestamp"],
            state=state,
            keywords=data["keywords"],
            articles=[TrendingArticle(**item) for item in data["articles"]],
        )

    @app.post("/trending/refresh", response_model=ArticlesResponse)
    async def trending_refresh(count: int = Query(default=5, ge=1, le=10),
                               _: bool = Depends(check_manual_run_enabled),
                               service: TrendingService = Depends(get_service)):
        result = await service.refresh(count)
        return ArticlesResponse(articles=[TrendingArticle(**entry.to_dict()) for entry in result.entries])

    @app.post("/documents", response_model=InsertResponse)
    async def add_document(request: RawDocumentRequest, service: TrendingService = Depends(get_service)):
        return InsertResponse(**await service.add_document(request.model_dump()))

    @app.get("/documents/search")
    async def search_documents(q: Optional[str] = Query(default=None, max_length=200),
                               source: Optional[str] = Query(default=None),
                               region: Optional[str] = Query(default=None),
                               date_from: Optional[datetime] = Query(default=None),
                               date_to: Optional[datetime] = Query(default=None),
                               service: TrendingService = Depends(get_service)):
        """Documents matching the text query and filters, newest first."""
        documents = await service.search_documents(
            query=q, source=source, region=region, date_from=date_from, date_to=date_to
        )
        return {"documents": [d.to_dict() for d in documents]}

    @app.get("/documents/by-keyword/{keyword}")
    async def documents_by_keyword(keyword: str, service: TrendingService = Depends(get_service)):
        documents = await service.store.find_by_keyword(keyword)
        return {"keyword": keyword, "documents": [d.to_dict() for d in documents]}

    @app.post("/maintenance/retention", response_model=RetentionResponse)
    async def retention(service: TrendingService = Depends(get_service)):
        return RetentionResponse(deleted=await service.purge_expired())

    @app.get("/stats")
    async def stats(service: TrendingService = Depends(get_service)):
        return await service.stats()

    return app


app = create_app()


if __name__ == "__main__":
    settings = get_settings()
    logger.info("Starting trender service via uvicorn")
    uvicorn.run(
        "trendwire.trender.app:app",
        host=settings.service_host,
        port=settings.service_port or 8002,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
