"""Feed item normalization helpers.

Turns raw feed items, as handed over by the crawler, into ``Document``
objects: HTML is stripped, dates are parsed into UTC and the link is reduced to
a canonical URL that serves as the document identity.
"""

import html
import re
from datetime import datetime, timezone
from typing import Any, Mapping, Optional
from urllib.parse import urlparse, urlunparse, parse_qs, urlencode

from bs4 import BeautifulSoup
from dateutil import parser as date_parser

from trendwire.core.documents import Document
from trendwire.core.logging import get_logger
from trendwire.core.time import normalize_timezone

logger = get_logger(__name__)

TRACKING_PARAMS = {
    'utm_source', 'utm_medium', 'utm_campaign', 'utm_term', 'utm_content',
    'fbclid', 'gclid', 'msclkid', 'twclid', '_ga', '_gl',
    'ref', 'referrer', 'cmpid', 'cid', 'mc_cid', 'mc_eid'
}

# Raw item keys, in order of preference
TITLE_KEYS = ('title',)
BODY_KEYS = ('content', 'contentSnippet', 'summary', 'description', 'body')
LINK_KEYS = ('link', 'url', 'identity')
DATE_KEYS = ('pubDate', 'isoDate', 'published_at', 'published', 'updated')
SOURCE_KEYS = ('medium', 'source')
REGION_KEYS = ('region',)


def clean_text(html_or_text: str) -> str:
    """
    Strip script/style tags and markup, decode entities and collapse whitespace.

    Args:
        html_or_text: Raw HTML or text content

    Returns:
        Cleaned text with normalized whitespace
    """
    if not html_or_text:
        return ""

    if '<' not in html_or_text and '&' not in html_or_text:
        return re.sub(r'\s+', ' ', html_or_text.strip())

    soup = BeautifulSoup(html_or_text, 'html.parser')
    for tag in soup(["script", "style"]):
        tag.decompose()

    text = html.unescape(soup.get_text(" "))
    return re.sub(r'\s+', ' ', text.strip())


def parse_datetime_guess(value: Any, now: Optional[datetime] = None) -> datetime:
    """
    Parse a publication date from a string or datetime.

    Falls back to ``now`` (current UTC by default) when the value is missing
    or cannot be parsed. Naive values are taken as UTC.
    """
    fallback = normalize_timezone(now) if now else datetime.now(timezone.utc)

    if not value:
        return fallback

    if isinstance(value, datetime):
        return normalize_timezone(value)

    if isinstance(value, str):
        try:
            return normalize_timezone(date_parser.parse(value))
        except (ValueError, OverflowError) as e:
            logger.warning(f"Failed to parse datetime '{value}': {e}")

    return fallback


def normalize_url(url: str) -> str:
    """
    Canonical form of a document URL.

    Drops the fragment and tracking parameters and sorts the remaining query.
    """
    if not url:
        return ""

    parsed = urlparse(url.strip())
    parsed = parsed._replace(fragment='')

    if parsed.query:
        params = parse_qs(parsed.query, keep_blank_values=False)
        kept = {key: value for key, value in params.items() if key.lower() not in TRACKING_PARAMS}
        parsed = parsed._replace(query=urlencode(sorted(kept.items()), doseq=True) if kept else '')

    return urlunparse(parsed)


def _first(raw: Mapping[str, Any], keys) -> Any:
    for key in keys:
        value = raw.get(key)
        if value:
            return value
    return None


def normalize_raw_document(raw: Mapping[str, Any], now: Optional[datetime] = None) -> Optional[Document]:
    """
    Build a ``Document`` from a raw feed item.

    Args:
        raw: Item with title, content, link, pubDate, medium and region fields
            (feed-parser and API spellings are both accepted)
        now: Fallback publication time for items without a usable date

    Returns:
        The document, or None if the item has no title or no link
    """
    title = clean_text(str(_first(raw, TITLE_KEYS) or ''))
    link = normalize_url(str(_first(raw, LINK_KEYS) or ''))

    if not title or not link:
        logger.warning(f"Skipping raw item without title or link: {link or title or '<empty>'}")
        return None

    body = clean_text(str(_first(raw, BODY_KEYS) or ''))
    published_at = parse_datetime_guess(_first(raw, DATE_KEYS), now)

    document = Document(
        identity=link,
        title=title,
        body=body,
        published_at=published_at,
        source=str(_first(raw, SOURCE_KEYS) or '').strip(),
        region=str(_first(raw, REGION_KEYS) or '').strip(),
    )

    logger.debug(
        "Normalized raw item",
        extra={
            'title': title[:50] + '...' if len(title) > 50 else title,
            'identity': link,
            'source': document.source,
        }
    )
    return document
