"""Document store implementations.

The trending core only talks to ``DocumentStore``. ``SqlDocumentStore`` is the
durable implementation (async SQLAlchemy); ``InMemoryDocumentStore`` backs
tests and local development.

Both stores expose the same natural order, insertion order, for every range
query; the relevance matcher relies on it for tie-breaking.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select, func, delete, update, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from trendwire.core.documents import Document
from trendwire.core.logging import get_logger
from trendwire.core.models import DocumentRecord
from trendwire.core.time import normalize_timezone

logger = get_logger(__name__)

DISTINCT_FIELDS = ("source", "region")


class DocumentStore(ABC):
    """Interface the trending core needs from the document store."""

    @abstractmethod
    async def insert_if_absent(self, document: Document) -> bool:
        """Insert unless a document with the same identity or title exists."""

    @abstractmethod
    async def find_by_time_range(self, start: datetime, end: datetime) -> List[Document]:
        """Documents published in ``[start, end]``, in natural (insertion) order."""

    @abstractmethod
    async def find_by_identity(self, identity: str) -> Optional[Document]:
        """The stored document with this identity, or None."""

    @abstractmethod
    async def find_by_keyword(self, keyword: str) -> List[Document]:
        """Documents with the given derived keyword, newest first."""

    @abstractmethod
    async def search(self, query: Optional[str] = None, source: Optional[str] = None,
                     region: Optional[str] = None, date_from: Optional[datetime] = None,
                     date_to: Optional[datetime] = None, limit: Optional[int] = None) -> List[Document]:
        """
        Documents matching every given criterion, newest first.

        ``query`` matches title or body case-insensitively; ``source`` and
        ``region`` must match exactly; the date bounds are inclusive.
        """

    @abstractmethod
    async def delete_older_than(self, cutoff: datetime) -> int:
        """Delete documents published before ``cutoff``; return how many."""

    @abstractmethod
    async def assign_keyword(self, identity: str, keyword: str) -> bool:
        """Set the keyword only if none is set yet. Returns True when written."""

    @abstractmethod
    async def count(self) -> int:
        pass

    @abstractmethod
    async def distinct_values(self, field: str) -> List[str]:
        """Distinct non-empty values of ``source`` or ``region``."""


class InMemoryDocumentStore(DocumentStore):
    """List-backed store. Not durable."""

    def __init__(self):
        self._documents: List[Document] = []

    async def insert_if_absent(self, document: Document) -> bool:
        for existing in self._documents:
            if existing.identity == document.identity or existing.title_key == document.title_key:
                return False
        self._documents.append(document)
        return True

    async def find_by_time_range(self, start: datetime, end: datetime) -> List[Document]:
        start, end = normalize_timezone(start), normalize_timezone(end)
        return [d for d in self._documents if start <= d.published_at <= end]

    async def find_by_identity(self, identity: str) -> Optional[Document]:
        for document in self._documents:
            if document.identity == identity:
                return document
        return None

    async def find_by_keyword(self, keyword: str) -> List[Document]:
        matches = [d for d in self._documents if d.keyword == keyword]
        return sorted(matches, key=lambda d: d.published_at, reverse=True)

    async def search(self, query: Optional[str] = None, source: Optional[str] = None,
                     region: Optional[str] = None, date_from: Optional[datetime] = None,
                     date_to: Optional[datetime] = None, limit: Optional[int] = None) -> List[Document]:
        matches = self._documents
        if query:
            needle = query.lower()
            matches = [d for d in matches if needle in d.title.lower() or needle in d.body.lower()]
        if source:
            matches = [d for d in matches if d.source == source]
        if region:
            matches = [d for d in matches if d.region == region]
        if date_from:
            matches = [d for d in matches if d.published_at >= normalize_timezone(date_from)]
        if date_to:
            matches = [d for d in matches if d.published_at <= normalize_timezone(date_to)]

        matches = sorted(matches, key=lambda d: d.published_at, reverse=True)
        return matches[:limit] if limit is not None else matches

    async def delete_older_than(self, cutoff: datetime) -> int:
        cutoff = normalize_timezone(cutoff)
        before = len(self._documents)
        self._documents = [d for d in self._documents if d.published_at >= cutoff]
        return before - len(self._documents)

    async def assign_keyword(self, identity: str, keyword: str) -> bool:
        for index, existing in enumerate(self._documents):
            if existing.identity == identity:
                if existing.has_keyword:
                    return False
                self._documents[index] = existing.with_keyword(keyword)
                return True
        return False

    async def count(self) -> int:
        return len(self._documents)

    async def distinct_values(self, field: str) -> List[str]:
        if field not in DISTINCT_FIELDS:
            raise ValueError(f"Unsupported field: {field}")
        values: Dict[str, None] = {}
        for document in self._documents:
            value = getattr(document, field)
            if value:
                values.setdefault(value, None)
        return list(values)


def _to_document(record: DocumentRecord) -> Document:
    return Document(
        identity=record.identity,
        title=record.title,
        body=record.body or "",
        published_at=record.published_at,
        source=record.source or "",
        region=record.region or "",
        keyword=record.keyword or None,
    )


class SqlDocumentStore(DocumentStore):
    """Durable store on the ``documents`` table."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def insert_if_absent(self, document: Document) -> bool:
        async with self.session_factory() as session:
            stmt = select(DocumentRecord.id).where(
                or_(
                    DocumentRecord.identity == document.identity,
                    DocumentRecord.title_key == document.title_key,
                )
            ).limit(1)
            if (await session.execute(stmt)).first() is not None:
                logger.debug(f"Duplicate document skipped: {document.identity}")
                return False

            session.add(DocumentRecord(
                identity=document.identity,
                title=document.title,
                title_key=document.title_key,
                body=document.body,
                published_at=document.published_at,
                source=document.source,
                region=document.region,
                keyword=document.keyword,
            ))
            try:
                await session.commit()
            except IntegrityError:
                # Lost a race against a concurrent insert of the same document
                await session.rollback()
                logger.debug(f"Duplicate document rejected by constraint: {document.identity}")
                return False
            return True

    async def find_by_time_range(self, start: datetime, end: datetime) -> List[Document]:
        async with self.session_factory() as session:
            stmt = (
                select(DocumentRecord)
                .where(DocumentRecord.published_at >= normalize_timezone(start))
                .where(DocumentRecord.published_at <= normalize_timezone(end))
                .order_by(DocumentRecord.id)
            )
            result = await session.execute(stmt)
            return [_to_document(record) for record in result.scalars().all()]

    async def find_by_keyword(self, keyword: str) -> List[Document]:
        async with self.session_factory() as session:
            stmt = (
                select(DocumentRecord)
                .where(DocumentRecord.keyword == keyword)
                .order_by(DocumentRecord.published_at.desc(), DocumentRecord.id)
            )
            result = await session.execute(stmt)
            return [_to_document(record) for record in result.scalars().all()]

    async def find_by_identity(self, identity: str) -> Optional[Document]:
        async with self.session_factory() as session:
            stmt = select(DocumentRecord).where(DocumentRecord.identity == identity).limit(1)
            record = (await session.execute(stmt)).scalar_one_or_none()
            return _to_document(record) if record is not None else None

    async def search(self, query: Optional[str] = None, source: Optional[str] = None,
                     region: Optional[str] = None, date_from: Optional[datetime] = None,
                     date_to: Optional[datetime] = None, limit: Optional[int] = None) -> List[Document]:
        stmt = select(DocumentRecord)
        if query:
            needle = query.lower()
            stmt = stmt.where(or_(
                func.lower(DocumentRecord.title).contains(needle, autoescape=True),
                func.lower(DocumentRecord.body).contains(needle, autoescape=True),
            ))
        if source:
            stmt = stmt.where(DocumentRecord.source == source)
        if region:
            stmt = stmt.where(DocumentRecord.region == region)
        if date_from:
            stmt = stmt.where(DocumentRecord.published_at >= normalize_timezone(date_from))
        if date_to:
            stmt = stmt.where(DocumentRecord.published_at <= normalize_timezone(date_to))

        stmt = stmt.order_by(DocumentRecord.published_at.desc(), DocumentRecord.id)
        if limit is not None:
            stmt = stmt.limit(limit)

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [_to_document(record) for record in result.scalars().all()]

    async def delete_older_than(self, cutoff: datetime) -> int:
        async with self.session_factory() as session:
            stmt = delete(DocumentRecord).where(DocumentRecord.published_at < normalize_timezone(cutoff))
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount or 0

    async def assign_keyword(self, identity: str, keyword: str) -> bool:
        async with self.session_factory() as session:
            stmt = (
                update(DocumentRecord)
                .where(DocumentRecord.identity == identity)
                .where(or_(DocumentRecord.keyword.is_(None), DocumentRecord.keyword == ""))
                .values(keyword=keyword)
            )
            result = await session.execute(stmt)
            await session.commit()
            return (result.rowcount or 0) > 0

    async def count(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(select(func.count(DocumentRecord.id)))
            return int(result.scalar_one())

    async def distinct_values(self, field: str) -> List[str]:
        if field not in DISTINCT_FIELDS:
            raise ValueError(f"Unsupported field: {field}")
        column = getattr(DocumentRecord, field)
        async with self.session_factory() as session:
            stmt = (
                select(column)
                .where(column != "")
                .group_by(column)
                .order_by(func.min(DocumentRecord.id))
            )
            result = await session.execute(stmt)
            return [value for value in result.scalars().all()]
