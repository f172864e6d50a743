"""
Relevance scorers.

Each scorer is a pure function `(item, query, all_items, context) -> float`
returning a value in [0, 1]. Scorers never mutate the item or context and
treat missing optional fields as empty.
"""

import math
import time
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from .models import MATCH_WEIGHTS, IndexedItem, MatchType, ScorerContext
from .tokenizer import (
    classify_match,
    classify_token_matches,
    count_consecutive_matches,
    graduated_match_score,
    match_position,
    tokenize,
)

ScoreFn = Callable[[IndexedItem, str, Optional[Sequence[IndexedItem]], Optional[ScorerContext]], float]

SECONDS_PER_DAY = 86400.0


@dataclass(frozen=True)
class Scorer:
    """A named, weighted relevance signal."""
    name: str
    weight: float
    score: ScoreFn

    def with_weight(self, weight: float) -> "Scorer":
        return replace(self, weight=weight)


def _search_tokens(query: str, context: Optional[ScorerContext]) -> List[str]:
    if context is not None and context.expanded_tokens:
        return list(context.expanded_tokens)
    return tokenize(query)


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


def multi_token_match_score(item, query, all_items=None, context=None) -> float:
    """
    Reward items matching many of the original query tokens.

    Graduated coverage is raised to 1.3 so partial coverage is penalized,
    then composition and phrase-adjacency bonuses are added.
    """
    original = tokenize(query)
    if len(original) < 2:
        return 0.0

    folders = " ".join(item.bookmark_folders or [])
    haystack = " ".join([
        item.display_title,
        item.url or "",
        item.meta_description or "",
        folders,
    ]).lower()

    graduated = graduated_match_score(original, haystack)
    score = graduated ** 1.3 if graduated > 0 else 0.0

    types = classify_token_matches(original, haystack)
    exact = types.count(MatchType.EXACT)
    prefix = types.count(MatchType.PREFIX)
    matched = len(original) - types.count(MatchType.NONE)

    if matched == len(original):
        exact_ratio = exact / len(original)
        prefix_ratio = prefix / len(original)
        if exact == len(original):
            score += 0.30
        elif exact > 0:
            score += exact_ratio * 0.20 + prefix_ratio * 0.08
        elif prefix > 0:
            score += prefix_ratio * 0.10
        score = min(1.0, score)

    pairs = count_consecutive_matches(original, haystack)
    if pairs > 0:
        score = min(1.0, score + (pairs / (len(original) - 1)) * 0.12)

    return _clamp(score)


def title_score(item, query, all_items=None, context=None) -> float:
    title = item.display_title.lower()
    tokens = _search_tokens(query, context)
    if not title or not tokens:
        return 0.0

    matched = [t for t in tokens if t in title]
    score = len(matched) / len(tokens)

    if any(match_position(t, title) == 0.0 for t in matched):
        score += 0.1
    if len(matched) > 1:
        score += 0.1
    if any(t in title for t in tokenize(query)):
        score += 0.15

    return _clamp(score)


def cross_dimensional_score(item, query, all_items=None, context=None) -> float:
    """Reward distinct tokens matching across different fields."""
    tokens = _search_tokens(query, context)
    if len(tokens) < 2:
        return 0.0

    dimensions = {
        "title": item.display_title.lower(),
        "url": (item.url or "").lower(),
        "hostname": (item.hostname or "").lower(),
        "meta": (item.meta_description or "").lower(),
    }

    best: Dict[str, MatchType] = {}
    fields: Dict[str, set] = {}
    for token in tokens:
        token_best = MatchType.NONE
        token_fields = set()
        for name, content in dimensions.items():
            match = classify_match(token, content)
            if match is not MatchType.NONE:
                token_fields.add(name)
                token_best = max(token_best, match)
        best[token] = token_best
        fields[token] = token_fields

    matched = [t for t in tokens if best[t] is not MatchType.NONE]
    if len(matched) < 2:
        return 0.0

    covered = set()
    for token in matched:
        covered.update(fields[token])
    if len(covered) < 2:
        return 0.0

    total = sum(len(fields[t]) * 0.1 * MATCH_WEIGHTS[best[t]] for t in matched)
    total += (len(covered) - 1) * 0.2

    original_matched = [t for t in tokenize(query) if best.get(t, MatchType.NONE) is not MatchType.NONE]
    if len(original_matched) > 1:
        total += 0.15

    return _clamp(total)


def embedding_score(item, query, all_items=None, context=None) -> float:
    """Cosine similarity between query and item vectors; 0 if either is absent."""
    if context is None or not context.query_embedding or not item.embedding:
        return 0.0

    query_vec = np.asarray(context.query_embedding, dtype=float)
    item_vec = np.asarray(item.embedding, dtype=float)
    if query_vec.shape != item_vec.shape:
        return 0.0

    norm = np.linalg.norm(query_vec) * np.linalg.norm(item_vec)
    if norm == 0 or not np.isfinite(norm):
        return 0.0
    return _clamp(float(np.dot(query_vec, item_vec) / norm))


def recency_score(item, query, all_items=None, context=None) -> float:
    now = context.now if context is not None else time.time()
    days = (now - (item.last_visit or 0.0)) / SECONDS_PER_DAY
    return _clamp(math.exp(-days / 30.0))


def visit_count_score(item, query, all_items=None, context=None) -> float:
    count = max(1, item.visit_count or 1)
    return min(1.0, math.log(count + 1) / math.log(20))


def url_score(item, query, all_items=None, context=None) -> float:
    tokens = _search_tokens(query, context)
    if not tokens:
        return 0.0

    url = (item.url or "").lower()
    hostname = (item.hostname or "").lower()
    path = url.replace(hostname, "", 1) if hostname else url

    url_hits = sum(1 for t in tokens if t in url)
    host_bonus = 0.3 if hostname and any(t in hostname for t in tokens) else 0.0
    path_hits = sum(1 for t in tokens if t in path)

    return _clamp(url_hits / len(tokens) + host_bonus + (path_hits / len(tokens)) * 0.2)


def meta_score(item, query, all_items=None, context=None) -> float:
    text = " ".join([item.meta_description or "", " ".join(item.meta_keywords or [])]).lower()
    if not text.strip():
        return 0.0

    tokens = _search_tokens(query, context)
    if not tokens:
        return 0.0

    score = graduated_match_score(tokens, text)
    original = tokenize(query)
    if original:
        score += 0.15 * graduated_match_score(original, text)
    return _clamp(score)


def domain_visit_totals(items: Sequence[IndexedItem]) -> Dict[str, int]:
    totals: Dict[str, int] = {}
    for item in items:
        if item.hostname:
            totals[item.hostname] = totals.get(item.hostname, 0) + max(1, item.visit_count or 1)
    return totals


def domain_familiarity_score(item, query, all_items=None, context=None) -> float:
    """Slight preference for hostnames the user visits often; capped at 0.2."""
    if not all_items or not item.hostname:
        return 0.0

    if context is not None and context.domain_visits is not None:
        visits = context.domain_visits.get(item.hostname, 0)
    else:
        visits = domain_visit_totals(all_items).get(item.hostname, 0)
    return min(0.2, math.log(visits + 1) / math.log(50))


EMBEDDING_WEIGHT = 0.4

multi_token_match = Scorer("multiTokenMatch", 0.35, multi_token_match_score)
title = Scorer("title", 0.35, title_score)
cross_dimensional = Scorer("crossDimensional", 0.15, cross_dimensional_score)
embedding = Scorer("embedding", 0.0, embedding_score)
recency = Scorer("recency", 0.20, recency_score)
visit_count = Scorer("visitCount", 0.15, visit_count_score)
url = Scorer("url", 0.15, url_score)
meta = Scorer("meta", 0.10, meta_score)
domain_familiarity = Scorer("domainFamiliarity", 0.05, domain_familiarity_score)

BASE_SCORERS = (
    multi_token_match,
    title,
    url,
    cross_dimensional,
    embedding,
    recency,
    visit_count,
    meta,
    domain_familiarity,
)
