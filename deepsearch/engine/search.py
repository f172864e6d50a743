"""
Search orchestrator.

Pipeline per query:
tokenize -> cache lookup -> expand -> candidates -> filter -> score ->
sort -> truncate -> cache store.

Every failure degrades to a smaller-but-valid result set; nothing raises
out of `search()`. Performance target: p50 under 100ms, worst case under
500ms for a local corpus.
"""

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger

from .cache import QueryCache, normalize_query
from .collaborators import (
    HistorySource,
    ItemStore,
    QueryEmbedder,
    SettingsProvider,
    StaticSettingsProvider,
    history_entry_to_item,
)
from .config import EngineConfig, SearchSettings
from .diversity import apply_diversity_filter
from .error_handling import InvalidQuery
from .expansion import ExpandedQuery, QueryExpander
from .ai_expander import AIKeywordExpander
from .metrics import MetricsCollector
from .models import IndexedItem, ScoredItem, ScorerContext
from .pipeline import ScorerPipeline
from .scorers import Scorer
from .synonyms import SynonymTable
from .tokenizer import tokenize


@dataclass
class SearchOutcome:
    """Results of one sequenced search."""
    sequence: int
    query: str
    results: List[IndexedItem] = field(default_factory=list)
    stale: bool = False
    cache_hit: bool = False
    latency_ms: float = 0.0


@dataclass
class RankedSearch:
    """Intermediate ranking state, also used for score explanations."""
    query: str
    expanded: ExpandedQuery
    ranked: List[ScoredItem]
    candidates: List[IndexedItem]
    pipeline: ScorerPipeline
    context: ScorerContext


class SearchSequencer:
    """
    Monotonic sequence numbers for keystroke-driven searches.
    Only the latest sequence's results should be shown.
    """

    def __init__(self):
        self._latest = 0

    def next(self) -> int:
        self._latest += 1
        return self._latest

    @property
    def latest(self) -> int:
        return self._latest

    def is_latest(self, sequence: int) -> bool:
        return sequence == self._latest


def matches_all_tokens(item: IndexedItem, tokens: Sequence[str]) -> bool:
    # A bookmark title is the title the user sees for that item
    haystack = f"{item.title or ''} {item.bookmark_title or ''} {item.url or ''}".lower()
    return all(token in haystack for token in tokens)


def matches_any_token(item: IndexedItem, tokens: Sequence[str]) -> bool:
    haystack = f"{item.title or ''} {item.bookmark_title or ''} {item.url or ''} {item.hostname or ''}".lower()
    return any(token in haystack for token in tokens)


class SearchEngine:
    """Ranks locally indexed browsing items against free-text queries."""

    def __init__(self,
                 store: ItemStore,
                 history: Optional[HistorySource] = None,
                 settings: Optional[SettingsProvider] = None,
                 config: Optional[EngineConfig] = None,
                 expander: Optional[QueryExpander] = None,
                 embedder: Optional[QueryEmbedder] = None,
                 cache: Optional[QueryCache] = None,
                 extra_scorers: Sequence[Scorer] = ()):
        """
        Initialize the search engine.

        Args:
            store: Item store returning the full candidate set
            history: Browser history fallback used when the store is empty
            settings: Settings source, read once per search
            config: Engine configuration; defaults when omitted
            expander: Query expander; built from config when omitted
            embedder: Optional query embedder for semantic scoring
            cache: Result cache; built from config when omitted
            extra_scorers: Additional scorers appended to the pipeline
        """
        self.config = config or EngineConfig()
        self.store = store
        self.history = history
        self.settings = settings or StaticSettingsProvider(self.config.settings)
        self.embedder = embedder
        self.extra_scorers = tuple(extra_scorers)

        if expander is None:
            synonyms = SynonymTable.from_mapping(self.config.custom_synonyms)
            expander = QueryExpander(synonyms, AIKeywordExpander(self.config.expansion))
        self.expander = expander

        self.cache: QueryCache[List[IndexedItem]] = cache if cache is not None else QueryCache(
            max_size=self.config.cache.max_size,
            ttl_seconds=self.config.cache.ttl_seconds,
            name="search",
        )
        self.metrics = MetricsCollector()
        self.sequencer = SearchSequencer()
        self._last_settings: Optional[SearchSettings] = None

    async def start(self) -> None:
        self.cache.start_sweeper(self.config.cache.sweep_interval_seconds)
        logger.info("Search engine started")

    async def stop(self) -> None:
        await self.cache.stop_sweeper()
        logger.info("Search engine stopped")

    async def __aenter__(self) -> "SearchEngine":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def search(self, query: str) -> List[IndexedItem]:
        """Ranked items for `query`; empty list on empty query or total failure."""
        outcome = await self._execute(query, sequence=0)
        return outcome.results

    async def submit(self, query: str) -> SearchOutcome:
        """
        Run a sequenced search.

        The outcome is marked stale when a newer search was submitted
        while this one was in flight; callers should discard it.
        """
        sequence = self.sequencer.next()
        outcome = await self._execute(query, sequence)
        if not self.sequencer.is_latest(sequence):
            outcome.stale = True
            self.metrics.increment_counter("search.stale")
            logger.debug(f"Search #{sequence} for '{outcome.query}' is stale (latest #{self.sequencer.latest})")
        return outcome

    async def _execute(self, query: str, sequence: int) -> SearchOutcome:
        start = time.perf_counter()
        normalized = normalize_query(query)
        outcome = SearchOutcome(sequence=sequence, query=normalized)

        try:
            if not tokenize(normalized):
                raise InvalidQuery(f"No searchable tokens in {query!r}")

            settings = self._snapshot_settings()

            cached = self.cache.get(normalized)
            if cached is not None:
                self.metrics.increment_counter("cache.hit")
                logger.debug(f"Cache hit for '{normalized}'")
                outcome.results = list(cached)
                outcome.cache_hit = True
                return outcome
            self.metrics.increment_counter("cache.miss")

            ranked = await self._rank(normalized, settings)
            results = ranked.ranked
            if settings.diverse_results:
                results = apply_diversity_filter(results)

            outcome.results = [scored.item for scored in results[:self.config.search.max_results]]
            self.cache.set(normalized, list(outcome.results))
            logger.info(
                f"Returning {len(outcome.results)} results for '{normalized}' "
                f"(from {len(ranked.ranked)} matches, {len(ranked.candidates)} candidates)"
            )

        except InvalidQuery as e:
            logger.trace(str(e))
        except Exception as e:
            logger.error(f"Search failed for '{normalized}': {e}")
            outcome.results = []
        finally:
            outcome.latency_ms = (time.perf_counter() - start) * 1000
            if normalized:
                self.metrics.increment_counter("search.count")
                self.metrics.record_latency("search.total", outcome.latency_ms)

        return outcome

    def _snapshot_settings(self) -> SearchSettings:
        settings = self.settings.snapshot()
        if self._last_settings is not None and settings != self._last_settings:
            logger.debug("Settings changed, invalidating result cache")
            self.cache.clear()
        self._last_settings = settings
        return settings

    async def _rank(self, normalized: str, settings: SearchSettings) -> RankedSearch:
        with self.metrics.timer("expansion"):
            expanded = await self.expander.expand(normalized, settings)
        if expanded.ai_expanded:
            self.metrics.increment_counter("expansion.ai")
        elif settings.ollama_enabled:
            self.metrics.increment_counter("expansion.failed")

        query_embedding = None
        if settings.embeddings_enabled and self.embedder is not None:
            query_embedding = await self.embedder.embed(normalized, settings)

        with self.metrics.timer("candidates"):
            candidates = await self._candidates(normalized)

        if settings.strict_matching:
            filtered = [item for item in candidates if matches_all_tokens(item, expanded.original)]
        else:
            filtered = [item for item in candidates if matches_any_token(item, expanded.tokens)]
        logger.debug(f"{len(filtered)}/{len(candidates)} candidates pass the match filter")

        context = ScorerContext(
            expanded_tokens=expanded.tokens,
            ai_expanded=expanded.ai_expanded,
            query_embedding=query_embedding,
        )
        pipeline = ScorerPipeline.build(settings.embeddings_enabled, extra=self.extra_scorers)

        with self.metrics.timer("search.scoring"):
            ranked = pipeline.rank(filtered, normalized, all_items=candidates, context=context)

        return RankedSearch(
            query=normalized,
            expanded=expanded,
            ranked=ranked,
            candidates=candidates,
            pipeline=pipeline,
            context=pipeline.prepare_context(context, candidates),
        )

    async def _candidates(self, normalized: str) -> List[IndexedItem]:
        try:
            items = await self.store.get_all_items()
        except Exception as e:
            self.metrics.increment_counter("store.unavailable")
            logger.warning(f"Item store unavailable: {e}")
            items = []

        if items:
            logger.debug(f"Searching through {len(items)} indexed items")
            return list(items)

        return await self._history_fallback(normalized)

    async def _history_fallback(self, normalized: str) -> List[IndexedItem]:
        if self.history is None:
            logger.warning("No indexed items and no history fallback configured")
            return []

        self.metrics.increment_counter("fallback.history")
        logger.warning("No indexed items found, falling back to browser history")
        try:
            entries = await self.history.search(normalized, self.config.search.history_fallback_limit)
        except Exception as e:
            logger.warning(f"History fallback failed: {e}")
            return []

        now = time.time()
        items = [history_entry_to_item(e, now) for e in entries if isinstance(e, dict) and e.get("url")]
        logger.info(f"History fallback returned {len(items)} items")
        return items

    async def explain(self, query: str, limit: int = 10) -> List[Tuple[IndexedItem, Dict[str, float]]]:
        """Per-scorer contributions for the top results; bypasses the cache."""
        normalized = normalize_query(query)
        if not tokenize(normalized):
            return []

        settings = self._snapshot_settings()
        ranked = await self._rank(normalized, settings)
        results = ranked.ranked
        if settings.diverse_results:
            results = apply_diversity_filter(results)

        limit = min(limit, self.config.search.max_results)
        return [
            (scored.item, ranked.pipeline.breakdown(scored.item, normalized, ranked.candidates, ranked.context))
            for scored in results[:limit]
        ]

    def clear_cache(self) -> None:
        self.cache.clear()
        self.expander.ai_expander.clear_cache()

    def get_stats(self) -> Dict:
        return {
            "cache": self.cache.get_stats(),
            "expansion_cache": self.expander.ai_expander.cache.get_stats(),
            "ollama": self.expander.ai_expander.breaker.health.to_dict(),
            "metrics": self.metrics.snapshot(),
        }
