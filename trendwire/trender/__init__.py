"""Trending topics processing package.

This package contains modules for:
- Tokenization and stopwords (tokenizer.py)
- Term frequency over the analysis window (frequency.py)
- External text classification (classifier.py)
- Keyword derivation and trending-term selection (keywords.py)
- Representative document matching (matcher.py)
- Result cache (cache.py)
- Processing pipeline (pipeline.py)
- Main application (app.py)
"""

from .cache import TrendingCache, TrendingEntry, TrendingResult
from .classifier import ClassifierFactory, NoLLMClassifier, OpenAIChatClassifier, TextClassifier
from .pipeline import CandidateStrategy, TrendingService

__all__ = [
    # Cache
    'TrendingCache',
    'TrendingEntry',
    'TrendingResult',

    # Classification
    'TextClassifier',
    'NoLLMClassifier',
    'OpenAIChatClassifier',
    'ClassifierFactory',

    # Pipeline
    'CandidateStrategy',
    'TrendingService',
]
