"""Database models for Trendwire."""
from sqlalchemy import (
    String, DateTime, Text, Integer, BigInteger, JSON, Index
)
from sqlalchemy.orm import mapped_column
from sqlalchemy.sql import func

from .db import Base


class DocumentRecord(Base):
    """Ingested news documents."""
    __tablename__ = "documents"

    id = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    identity = mapped_column(String(1500), unique=True, nullable=False)  # canonical URL
    title = mapped_column(String(800), nullable=False)
    title_key = mapped_column(String(800), unique=True, nullable=False)  # lower(strip(title))
    body = mapped_column(Text, nullable=False, default="")
    published_at = mapped_column(DateTime(timezone=True), nullable=False, index=True)  # UTC
    source = mapped_column(String(200), nullable=False, default="", index=True)
    region = mapped_column(String(200), nullable=False, default="", index=True)
    keyword = mapped_column(String(200), nullable=True, index=True)  # assigned once
    created_at = mapped_column(DateTime(timezone=True), server_default=func.now())


class TrendingSnapshot(Base):
    """Persisted trending results; only the latest row is read back."""
    __tablename__ = "trending_snapshots"

    id = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    computed_at = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    payload = mapped_column(JSON, nullable=False)  # TrendingResult.to_dict()


Index('idx_documents_published_at_desc', DocumentRecord.published_at.desc())
