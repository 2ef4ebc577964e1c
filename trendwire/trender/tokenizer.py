"""Text normalization and tokenization for trending analysis."""

import re
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import FrozenSet, Iterable, List, Optional

from trendwire.core.logging import get_logger

logger = get_logger(__name__)

MIN_TOKEN_LENGTH = 3

# Letters only (any script, accents included), hyphens only between letters
TOKEN_RE = re.compile(r"[^\W\d_]+(?:-[^\W\d_]+)*")

BUNDLED_STOPWORDS = "data/stopwords_nl.txt"

# Used when no stopword list can be read
MINIMAL_STOPWORDS = frozenset({
    'de', 'het', 'een', 'en', 'van', 'te', 'dat', 'die', 'in', 'op', 'voor', 'met',
    'als', 'aan', 'bij', 'om', 'ook', 'zijn', 'hebben', 'er', 'naar', 'maar', 'over',
    'uit', 'dan', 'onder', 'tegen', 'na', 'door', 'worden', 'deze', 'wel', 'nog',
    'zou', 'wat', 'waar', 'wie', 'toen', 'dus', 'hier', 'alle', 'geen', 'kan',
    'veel', 'meer', 'nu', 'zo', 'dit', 'hij', 'zij', 'zich', 'hun', 'haar', 'hem',
    'ons', 'mij', 'ik', 'wij', 'u', 'was', 'waren', 'is', 'ben', 'bent', 'heeft',
    'had', 'hadden', 'heb', 'hebt', 'niet',
})


def _parse_stopwords(lines: Iterable[str]) -> FrozenSet[str]:
    return frozenset(
        word for word in (line.strip().lower() for line in lines)
        if word and not word.startswith('#')
    )


@lru_cache(maxsize=8)
def load_stopwords(path: Optional[str] = None) -> FrozenSet[str]:
    """
    Load the stopword list once.

    Reads ``path`` when given, otherwise the list bundled with the package.
    Falls back to ``MINIMAL_STOPWORDS`` if the file cannot be read.
    """
    try:
        if path:
            text = Path(path).read_text(encoding='utf-8')
        else:
            text = resources.files('trendwire.trender').joinpath(BUNDLED_STOPWORDS).read_text(encoding='utf-8')
    except (OSError, ValueError) as e:
        logger.warning(f"Could not load stopwords from {path or BUNDLED_STOPWORDS}: {e}; using minimal set")
        return MINIMAL_STOPWORDS

    words = _parse_stopwords(text.splitlines())
    if not words:
        logger.warning(f"Stopword list {path or BUNDLED_STOPWORDS} is empty; using minimal set")
        return MINIMAL_STOPWORDS
    return words


def tokenize(text: str, stopwords: Optional[FrozenSet[str]] = None) -> List[str]:
    """
    Split text into candidate terms.

    Lower-cases, extracts letter runs (with internal hyphens), drops tokens
    shorter than three characters and stopwords.
    """
    if not text:
        return []
    if stopwords is None:
        stopwords = load_stopwords()

    return [
        token for token in TOKEN_RE.findall(text.lower())
        if len(token) >= MIN_TOKEN_LENGTH and token not in stopwords
    ]
