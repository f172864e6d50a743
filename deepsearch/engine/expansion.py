"""Query expansion: synonym table plus optional AI keywords."""

from dataclasses import dataclass, field
from typing import List, Optional

from loguru import logger

from .ai_expander import AIKeywordExpander
from .config import SearchSettings
from .synonyms import SynonymTable
from .tokenizer import tokenize


@dataclass
class ExpandedQuery:
    original: List[str]
    tokens: List[str] = field(default_factory=list)
    ai_expanded: bool = False

    @property
    def added(self) -> List[str]:
        return [t for t in self.tokens if t not in self.original]


class QueryExpander:
    """
    Produces the expanded token set consumed by scorers.

    The result always starts with the original tokens, in query order,
    followed by synonym expansions and then AI-suggested keywords.
    """

    def __init__(self,
                 synonyms: Optional[SynonymTable] = None,
                 ai_expander: Optional[AIKeywordExpander] = None):
        self.synonyms = synonyms if synonyms is not None else SynonymTable.default()
        self.ai_expander = ai_expander or AIKeywordExpander()

    async def expand(self, query: str, settings: SearchSettings) -> ExpandedQuery:
        original = tokenize(query)
        if not original:
            return ExpandedQuery(original=[], tokens=[])

        merged = dict.fromkeys(original)

        if settings.synonym_expansion:
            for term in self.synonyms.expand_tokens(original):
                merged.setdefault(term, None)

        ai = await self.ai_expander.expand(query, settings)
        for term in ai.tokens:
            merged.setdefault(term, None)

        result = ExpandedQuery(original=original, tokens=list(merged), ai_expanded=ai.ai_expanded)
        if result.added:
            logger.debug(f"Expanded {original} with {len(result.added)} terms (ai={ai.ai_expanded})")
        return result
