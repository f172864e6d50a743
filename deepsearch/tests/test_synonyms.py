"""Tests for the synonym table and query expander."""

import pytest

from deepsearch.engine.ai_expander import AIExpansion
from deepsearch.engine.config import SearchSettings
from deepsearch.engine.expansion import QueryExpander
from deepsearch.engine.synonyms import SynonymTable


class TestSynonymTable:
    """Test bidirectional lookup."""

    def test_forward_lookup(self):
        table = SynonymTable.default()
        assert "js" in table.lookup("javascript")

    def test_reverse_lookup_includes_siblings(self):
        table = SynonymTable.default()
        related = table.lookup("js")
        assert "javascript" in related
        assert "nodejs" in related
        assert "js" not in related

    def test_unknown_term(self):
        assert SynonymTable.default().expand_term("zebra") == ["zebra"]

    def test_add_is_bidirectional(self):
        table = SynonymTable()
        table.add("K8s", ["Kubernetes"])
        assert table.lookup("k8s") == ["kubernetes"]
        assert table.lookup("kubernetes") == ["k8s"]

    def test_tables_are_independent(self):
        first = SynonymTable.default()
        first.add("foo", ["bar"])
        assert "foo" not in SynonymTable.default()

    def test_from_mapping_merges_defaults(self):
        table = SynonymTable.from_mapping({"python": ["pypi"]})
        assert {"py", "pypi"} <= set(table.lookup("python"))

    def test_expand_tokens_keeps_originals_first(self):
        expanded = SynonymTable.default().expand_tokens(["repo", "fix"])
        assert expanded[:2] == ["repo", "fix"]
        assert "repository" in expanded
        assert len(expanded) == len(set(expanded))


class StubAIExpander:
    def __init__(self, tokens=None, ai_expanded=False):
        self.tokens = tokens
        self.ai_expanded = ai_expanded
        self.calls = 0

    async def expand(self, query, settings):
        self.calls += 1
        return AIExpansion(tokens=self.tokens or query.split(), ai_expanded=self.ai_expanded)


class TestQueryExpander:
    """Test synonym and AI expansion merging."""

    @pytest.mark.asyncio
    async def test_originals_then_synonyms_then_ai(self):
        ai = StubAIExpander(tokens=["repo", "codebase"], ai_expanded=True)
        expander = QueryExpander(SynonymTable.default(), ai)

        result = await expander.expand("Repo", SearchSettings(ollama_enabled=True, synonym_expansion=True))

        assert result.original == ["repo"]
        assert result.tokens == ["repo", "repository", "codebase"]
        assert result.added == ["repository", "codebase"]
        assert result.ai_expanded

    @pytest.mark.asyncio
    async def test_synonyms_can_be_disabled(self):
        expander = QueryExpander(SynonymTable.default(), StubAIExpander())
        result = await expander.expand("repo", SearchSettings(synonym_expansion=False))
        assert result.tokens == ["repo"]
        assert not result.ai_expanded

    @pytest.mark.asyncio
    async def test_empty_query(self):
        ai = StubAIExpander()
        result = await QueryExpander(SynonymTable(), ai).expand("   ", SearchSettings())
        assert result.tokens == []
        assert ai.calls == 0
