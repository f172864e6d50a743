"""
Tokenizer and graduated match classifier.

Match classes, strongest to weakest:
- EXACT:     token sits between word boundaries ("rar" in "RAR-My-All")
- PREFIX:    token starts a word ("iss" in "Issue")
- SUBSTRING: token appears inside a word ("aviga" in "Navigator")
- NONE:      no occurrence

Only [a-z0-9] count as word characters; everything else separates.
"""

import re
from functools import lru_cache
from typing import List, Pattern, Sequence, Tuple

from .models import MATCH_WEIGHTS, MatchType

_NON_TOKEN_CHARS = re.compile(r"[^a-z0-9.\-/]+")


def tokenize(text: str) -> List[str]:
    """Lowercase, replace anything outside [a-z0-9.-/] with spaces, split."""
    if not text:
        return []
    return _NON_TOKEN_CHARS.sub(" ", text.lower()).split()


@lru_cache(maxsize=2048)
def _boundary_patterns(token: str) -> Tuple[Pattern, Pattern]:
    escaped = re.escape(token)
    exact = re.compile(rf"(?:^|[^a-z0-9]){escaped}(?:[^a-z0-9]|$)")
    prefix = re.compile(rf"(?:^|[^a-z0-9]){escaped}")
    return exact, prefix


@lru_cache(maxsize=2048)
def _consecutive_pattern(first: str, second: str) -> Pattern:
    return re.compile(rf"{re.escape(first)}[^a-z0-9]{{0,3}}{re.escape(second)}")


def classify_match(token: str, text: str) -> MatchType:
    """
    Classify how `token` occurs in `text`, returning the strongest class.

    EXACT is tested before PREFIX since a boundary match also satisfies
    the prefix pattern.
    """
    if not token or not text:
        return MatchType.NONE

    lower_token = token.lower()
    lower_text = text.lower()

    if lower_token not in lower_text:
        return MatchType.NONE

    exact, prefix = _boundary_patterns(lower_token)
    if exact.search(lower_text):
        return MatchType.EXACT
    if prefix.search(lower_text):
        return MatchType.PREFIX
    return MatchType.SUBSTRING


def classify_token_matches(tokens: Sequence[str], text: str) -> List[MatchType]:
    return [classify_match(token, text) for token in tokens]


def graduated_match_score(tokens: Sequence[str], text: str) -> float:
    """
    Mean match weight of `tokens` over `text`, in [0, 1].

    Example: 2 EXACT + 1 PREFIX of 3 tokens -> (1.0 + 1.0 + 0.75) / 3
    """
    if not tokens:
        return 0.0
    total = sum(MATCH_WEIGHTS[t] for t in classify_token_matches(tokens, text))
    return total / len(tokens)


def count_consecutive_matches(tokens: Sequence[str], text: str) -> int:
    """
    Count adjacent token pairs appearing in order, separated by 0-3
    non-alphanumeric characters ("my issue" in "My-Issue").
    """
    if len(tokens) < 2 or not text:
        return 0

    lower_text = text.lower()
    count = 0
    for first, second in zip(tokens, tokens[1:]):
        if _consecutive_pattern(first.lower(), second.lower()).search(lower_text):
            count += 1
    return count


def match_position(token: str, text: str) -> float:
    """Normalized position of the first occurrence; 1.0 when absent."""
    lower_text = text.lower()
    idx = lower_text.find(token.lower())
    if idx < 0 or not lower_text:
        return 1.0
    return idx / len(lower_text)
