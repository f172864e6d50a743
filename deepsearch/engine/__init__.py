"""Search engine: expansion, scoring pipeline and orchestration."""

from .config import EngineConfig, SearchSettings
from .error_handling import (
    CircuitBreaker,
    DeepSearchError,
    ExpansionFailure,
    InvalidQuery,
    StoreUnavailable,
)
from .models import IndexedItem, MatchType, ScoredItem, ScorerContext
from .pipeline import ScorerPipeline
from .scorers import Scorer
from .search import SearchEngine, SearchOutcome

__all__ = [
    "CircuitBreaker",
    "DeepSearchError",
    "EngineConfig",
    "ExpansionFailure",
    "IndexedItem",
    "InvalidQuery",
    "MatchType",
    "ScoredItem",
    "Scorer",
    "ScorerContext",
    "ScorerPipeline",
    "SearchEngine",
    "SearchOutcome",
    "SearchSettings",
    "StoreUnavailable",
]
