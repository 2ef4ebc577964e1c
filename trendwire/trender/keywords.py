"""Keyword derivation and trending-term selection.

Both operations call the external classifier and never let its failures
escape: a document simply gets no keyword, and term selection falls back to
the first ``desired_count`` frequency candidates in their original order.
"""

import asyncio
import json
import re
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError, field_validator

from trendwire.core.documents import Document
from trendwire.core.logging import get_logger
from trendwire.core.store import DocumentStore
from trendwire.trender.classifier import ClassifierError, TextClassifier

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 20.0
KEYWORD_MAX_WORDS = 3
KEYWORD_MAX_TOKENS = 10
SELECTION_MAX_TOKENS = 200
MAX_SELECTED_TERMS = 10

KEYWORD_INSTRUCTION = (
    "You are a news editor. Summarize the topic of the following news article "
    "in at most 3 words, in the language of the article. Answer with the words "
    "only, without punctuation or explanation."
)

SELECTION_INSTRUCTION = (
    "You are an expert news analyst. You will be given a list of the most frequent "
    "words from news articles published in the last day. Select the {count} most "
    "newsworthy nouns or short phrases that are likely trending topics: proper, "
    "significant nouns (names, places, organizations, events) related to current "
    "events that are not mentioned in the news every day. Keep the selection diverse "
    "and exclude generic words. Answer with JSON only."
)


class TrendingTermsResponse(BaseModel):
    """Schema the selection answer must satisfy."""
    terms: List[str] = Field(..., min_length=1, max_length=MAX_SELECTED_TERMS)

    @field_validator('terms')
    @classmethod
    def validate_terms(cls, v):
        cleaned = [term.strip() for term in v]
        if any(not term for term in cleaned):
            raise ValueError("Terms cannot be empty or whitespace")
        return cleaned


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = re.sub(r"^```(?:json)?", "", text).strip()
    if text.endswith("```"):
        text = text[:-3].strip()
    return text


def parse_selection_response(raw: str) -> TrendingTermsResponse:
    """
    Validate a selection answer.

    Accepts ``{"terms": [...]}`` or a bare JSON array of strings.

    Raises:
        ValueError: if the answer is not valid JSON or fails validation
    """
    try:
        data = json.loads(_strip_code_fence(raw))
    except json.JSONDecodeError as e:
        raise ValueError(f"Selection response is not JSON: {e}") from e

    if isinstance(data, list):
        data = {"terms": data}
    try:
        return TrendingTermsResponse.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Selection response failed validation: {e.error_count()} errors") from e


def _unique_terms(terms: Sequence[str]) -> List[str]:
    seen = set()
    unique = []
    for term in terms:
        key = term.lower()
        if key not in seen:
            seen.add(key)
            unique.append(term)
    return unique


def clean_keyword(raw: Optional[str]) -> Optional[str]:
    """Normalize a keyword answer to at most three lower-case words."""
    if not raw:
        return None
    words = re.findall(r"[^\W_]+(?:[-'][^\W_]+)*", raw.lower())
    if not words:
        return None
    return " ".join(words[:KEYWORD_MAX_WORDS])


async def derive_document_keyword(classifier: TextClassifier, title: str, body: str,
                                  timeout: float = DEFAULT_TIMEOUT_SECONDS) -> Optional[str]:
    """
    Ask the classifier for a short keyword describing one document.

    Best effort: returns None on any failure and never raises.
    """
    payload = f"Title: {title}\n\n{body}".strip()
    try:
        raw = await asyncio.wait_for(
            classifier.classify(KEYWORD_INSTRUCTION, payload, max_tokens=KEYWORD_MAX_TOKENS),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.warning(f"Keyword derivation timed out after {timeout}s")
        return None
    except ClassifierError as e:
        logger.warning(f"Keyword derivation failed: {e}")
        return None

    keyword = clean_keyword(raw)
    if keyword is None:
        logger.warning(f"Classifier returned no usable keyword: {raw!r}")
    return keyword


async def assign_document_keyword(store: DocumentStore, classifier: TextClassifier,
                                  document: Document,
                                  timeout: float = DEFAULT_TIMEOUT_SECONDS) -> Optional[str]:
    """
    Assign a keyword to ``document`` at most once.

    If the document, or its stored copy, already has a keyword, that keyword
    is returned without calling the classifier.
    """
    if document.has_keyword:
        return document.keyword

    try:
        stored = await store.find_by_identity(document.identity)
    except Exception as e:
        logger.error(f"Failed to read stored keyword for {document.identity}: {e}")
        return None
    if stored is not None and stored.has_keyword:
        return stored.keyword

    keyword = await derive_document_keyword(classifier, document.title, document.body, timeout)
    if keyword is None:
        return None

    try:
        written = await store.assign_keyword(document.identity, keyword)
    except Exception as e:
        logger.error(f"Failed to store keyword for {document.identity}: {e}")
        return None

    if not written:
        logger.debug(f"Keyword already present for {document.identity}, left unchanged")
        return None
    logger.info(f"Assigned keyword '{keyword}' to {document.identity}")
    return keyword


def fallback_selection(candidate_terms: Sequence[str], desired_count: int) -> List[str]:
    """Deterministic selection: the first ``desired_count`` candidates in order."""
    return list(candidate_terms[:max(desired_count, 0)])


async def select_trending_terms(classifier: TextClassifier, candidate_terms: Sequence[str],
                                desired_count: int,
                                timeout: float = DEFAULT_TIMEOUT_SECONDS) -> List[str]:
    """
    Select the most newsworthy terms from ``candidate_terms``.

    Args:
        classifier: External classification provider
        candidate_terms: Ranked candidates (most frequent first)
        desired_count: Number of terms wanted
        timeout: Seconds before the call counts as failed

    Returns:
        At most ``desired_count`` distinct terms in the classifier's order, or
        ``candidate_terms[:desired_count]`` if the call fails or its answer is invalid
    """
    if not candidate_terms or desired_count <= 0:
        return []

    instruction = SELECTION_INSTRUCTION.format(count=desired_count)
    payload = (
        f"From this list of the {len(candidate_terms)} most frequent words in today's news, "
        f"select the {desired_count} most newsworthy ones:\n\n"
        f"{', '.join(candidate_terms)}\n\n"
        'Return only JSON like {"terms": ["word1", "word2"]}.'
    )

    try:
        raw = await asyncio.wait_for(
            classifier.classify(
                instruction,
                payload,
                response_schema=TrendingTermsResponse.model_json_schema(),
                max_tokens=SELECTION_MAX_TOKENS,
            ),
            timeout=timeout,
        )
        selected = _unique_terms(parse_selection_response(raw).terms)
    except asyncio.TimeoutError:
        logger.warning(f"Trending selection timed out after {timeout}s, using frequency fallback")
        return fallback_selection(candidate_terms, desired_count)
    except (ClassifierError, ValueError) as e:
        logger.warning(f"Trending selection failed ({e}), using frequency fallback")
        return fallback_selection(candidate_terms, desired_count)

    logger.info(f"{classifier.provider_name} selected: {', '.join(selected)}")
    return selected[:desired_count]
