"""Document value object shared by the store, the matcher and the API."""

from dataclasses import dataclass, replace, asdict
from datetime import datetime
from typing import Any, Dict, Optional

from trendwire.core.time import normalize_timezone, to_iso, from_iso


@dataclass(frozen=True)
class Document:
    """A single ingested news item.

    ``identity`` is the canonical source URL. ``keyword`` is assigned at most
    once after ingestion and never changed afterwards.
    """
    identity: str
    title: str
    body: str
    published_at: datetime
    source: str = ""
    region: str = ""
    keyword: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "published_at", normalize_timezone(self.published_at))

    @property
    def has_keyword(self) -> bool:
        return bool(self.keyword and self.keyword.strip())

    @property
    def title_key(self) -> str:
        """Key used for case-insensitive title deduplication."""
        return self.title.strip().lower()

    def with_keyword(self, keyword: str) -> "Document":
        return replace(self, keyword=keyword)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["published_at"] = to_iso(self.published_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        published_at = data["published_at"]
        if isinstance(published_at, str):
            published_at = from_iso(published_at)
        return cls(
            identity=data["identity"],
            title=data.get("title") or "",
            body=data.get("body") or "",
            published_at=published_at,
            source=data.get("source") or "",
            region=data.get("region") or "",
            keyword=data.get("keyword") or None,
        )
