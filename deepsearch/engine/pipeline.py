"""
Weighted scoring pipeline.

The final score of an item is the unnormalized sum of
`scorer.weight * scorer.score(...)` over all active scorers. Ranking uses
relative order only, so totals may exceed 1.

Pipelines are immutable. A pipeline is built per search from the base
scorer set plus configuration-derived instances (the embedding scorer is
weighted only when semantic search is enabled).
"""

from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from loguru import logger

from . import scorers as builtin
from .models import IndexedItem, ScoredItem, ScorerContext
from .scorers import Scorer


class ScorerPipeline:
    """Aggregates active scorers into one weighted score per item."""

    def __init__(self, scorers: Iterable[Scorer]):
        self._scorers: Tuple[Scorer, ...] = tuple(scorers)
        names = [s.name for s in self._scorers]
        if len(names) != len(set(names)):
            raise ValueError(f"Scorer names must be unique: {names}")

    @classmethod
    def build(
        cls,
        embeddings_enabled: bool = False,
        base: Sequence[Scorer] = builtin.BASE_SCORERS,
        extra: Sequence[Scorer] = (),
    ) -> "ScorerPipeline":
        """
        Assemble the active scorer list for one search.

        Args:
            embeddings_enabled: Give the embedding scorer its semantic weight
            base: Immutable base scorer set
            extra: Additional (plugin) scorers appended after the base set

        Returns:
            A new pipeline; the base scorers are never mutated
        """
        embedding_weight = builtin.EMBEDDING_WEIGHT if embeddings_enabled else 0.0
        active = [
            s.with_weight(embedding_weight) if s.name == builtin.embedding.name else s
            for s in base
        ]
        active.extend(extra)
        return cls(active)

    @property
    def scorers(self) -> Tuple[Scorer, ...]:
        return self._scorers

    def weights(self) -> Dict[str, float]:
        return {s.name: s.weight for s in self._scorers}

    def with_scorer(self, scorer: Scorer) -> "ScorerPipeline":
        """Return a new pipeline with `scorer` added or replaced by name."""
        kept = [s for s in self._scorers if s.name != scorer.name]
        return ScorerPipeline([*kept, scorer])

    def prepare_context(
        self,
        context: Optional[ScorerContext],
        all_items: Optional[Sequence[IndexedItem]],
    ) -> ScorerContext:
        """Return a context copy carrying corpus-wide statistics."""
        context = context or ScorerContext()
        if all_items and context.domain_visits is None:
            context = replace(context, domain_visits=builtin.domain_visit_totals(all_items))
        return context

    def _contribution(self, scorer: Scorer, item, query, all_items, context) -> float:
        if scorer.weight == 0.0:
            return 0.0
        try:
            return scorer.weight * scorer.score(item, query, all_items, context)
        except Exception as e:
            # Malformed item data must never abort a search
            logger.warning(f"Scorer {scorer.name} failed on {getattr(item, 'url', '?')}: {e}")
            return 0.0

    def score(
        self,
        item: IndexedItem,
        query: str,
        all_items: Optional[Sequence[IndexedItem]] = None,
        context: Optional[ScorerContext] = None,
    ) -> float:
        return sum(
            self._contribution(s, item, query, all_items, context)
            for s in self._scorers
        )

    def breakdown(
        self,
        item: IndexedItem,
        query: str,
        all_items: Optional[Sequence[IndexedItem]] = None,
        context: Optional[ScorerContext] = None,
    ) -> Dict[str, float]:
        """Per-scorer weighted contributions plus `total`."""
        context = self.prepare_context(context, all_items)
        parts = {
            s.name: self._contribution(s, item, query, all_items, context)
            for s in self._scorers
        }
        parts["total"] = sum(parts.values())
        return parts

    def rank(
        self,
        items: Sequence[IndexedItem],
        query: str,
        all_items: Optional[Sequence[IndexedItem]] = None,
        context: Optional[ScorerContext] = None,
    ) -> List[ScoredItem]:
        """
        Score and sort items.

        Order is descending score, then `last_visit` descending, then
        `url` ascending, so equal inputs always produce equal output.
        """
        corpus = all_items if all_items is not None else items
        context = self.prepare_context(context, corpus)
        scored = [
            ScoredItem(item=item, score=self.score(item, query, corpus, context))
            for item in items
        ]
        scored.sort(key=ScoredItem.sort_key)
        return scored

    def __len__(self) -> int:
        return len(self._scorers)

    def __repr__(self) -> str:
        return f"ScorerPipeline({', '.join(f'{n}={w}' for n, w in self.weights().items())})"
