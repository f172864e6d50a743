"""Tests for individual relevance scorers."""

import math
import time

import pytest

from deepsearch.engine import scorers
from deepsearch.engine.models import ScorerContext

DAY = 86400.0


@pytest.fixture
def github_docs(make_item):
    return make_item(
        "https://docs.github.com/rest",
        "GitHub REST API Docs",
        visit_count=10,
    )


class TestMultiTokenMatch:
    """Test coverage scoring over original query tokens."""

    def test_all_exact_scores_full(self, github_docs):
        assert scorers.multi_token_match_score(github_docs, "github api") == pytest.approx(1.0)

    def test_partial_coverage_penalized(self, make_item):
        item = make_item("https://github.com/trending", "Trending on GitHub")
        score = scorers.multi_token_match_score(item, "github api")
        assert score == pytest.approx(0.5 ** 1.3)

    def test_single_token_query_is_zero(self, github_docs):
        assert scorers.multi_token_match_score(github_docs, "github") == 0.0

    def test_adjacent_tokens_bonus(self, make_item):
        adjacent = make_item("https://x.example/a", "my-issues list")
        apart = make_item("https://x.example/b", "issues for my team")
        assert scorers.multi_token_match_score(adjacent, "my issue") > \
            scorers.multi_token_match_score(apart, "my issue")

    def test_bookmark_folders_searched(self, make_item):
        item = make_item("https://x.example/c", "Untitled", bookmark_folders=["Recipes", "Dinner"])
        assert scorers.multi_token_match_score(item, "recipes dinner") > 0.9


class TestTitleScore:
    """Test title matching bonuses."""

    def test_full_title_match(self, github_docs):
        assert scorers.title_score(github_docs, "github api") == pytest.approx(1.0)

    def test_no_match(self, github_docs):
        assert scorers.title_score(github_docs, "python") == 0.0

    def test_substring_counts_toward_coverage(self, make_item):
        item = make_item("https://x.example/hub", "GitHub")
        assert scorers.title_score(item, "hub") == pytest.approx(1.0)

    def test_partial_coverage_is_ratio(self, make_item):
        item = make_item("https://x.example/notes", "Meeting notes")
        assert scorers.title_score(item, "zebra notes") == pytest.approx(0.5 + 0.15)

    def test_uses_expanded_tokens(self, make_item):
        item = make_item("https://x.example/war", "Famous battle history")
        context = ScorerContext(expanded_tokens=["war", "battle", "combat"])
        assert scorers.title_score(item, "war") == 0.0
        assert scorers.title_score(item, "war", context=context) > 0.0

    def test_bookmark_title_preferred(self, make_item):
        item = make_item("https://x.example/d", "index.html", bookmark_title="Team handbook")
        assert scorers.title_score(item, "handbook") > 0.5


class TestCrossDimensional:
    """Test multi-field coverage scoring."""

    def test_tokens_across_fields(self, github_docs):
        assert scorers.cross_dimensional_score(github_docs, "github rest") > 0.5

    def test_single_token_is_zero(self, github_docs):
        assert scorers.cross_dimensional_score(github_docs, "github") == 0.0

    def test_one_matching_token_is_zero(self, github_docs):
        assert scorers.cross_dimensional_score(github_docs, "github zzzz") == 0.0


class TestEmbeddingScore:
    """Test cosine similarity scoring."""

    def test_missing_item_embedding_is_zero(self, github_docs):
        context = ScorerContext(query_embedding=[0.1, 0.2, 0.3])
        assert scorers.embedding_score(github_docs, "github", context=context) == 0.0

    def test_missing_query_embedding_is_zero(self, make_item):
        item = make_item("https://x.example/e", "Vectors", embedding=[1.0, 0.0])
        assert scorers.embedding_score(item, "vectors", context=ScorerContext()) == 0.0

    def test_identical_vectors(self, make_item):
        item = make_item("https://x.example/e", "Vectors", embedding=[0.3, 0.4])
        context = ScorerContext(query_embedding=[0.3, 0.4])
        assert scorers.embedding_score(item, "vectors", context=context) == pytest.approx(1.0)

    def test_opposite_vectors_clamped(self, make_item):
        item = make_item("https://x.example/e", "Vectors", embedding=[1.0, 0.0])
        context = ScorerContext(query_embedding=[-1.0, 0.0])
        assert scorers.embedding_score(item, "vectors", context=context) == 0.0

    def test_shape_mismatch_or_zero_norm(self, make_item):
        item = make_item("https://x.example/e", "Vectors", embedding=[1.0, 0.0, 0.0])
        assert scorers.embedding_score(item, "v", context=ScorerContext(query_embedding=[1.0, 0.0])) == 0.0
        zero = make_item("https://x.example/f", "Zero", embedding=[0.0, 0.0])
        assert scorers.embedding_score(zero, "v", context=ScorerContext(query_embedding=[1.0, 0.0])) == 0.0


class TestUsageSignals:
    """Test recency, visit count and domain familiarity."""

    def test_recency_decay(self, make_item):
        now = time.time()
        context = ScorerContext(now=now)
        fresh = make_item("https://x.example/1", last_visit=now)
        month = make_item("https://x.example/2", last_visit=now - 30 * DAY)
        assert scorers.recency_score(fresh, "", context=context) == pytest.approx(1.0)
        assert scorers.recency_score(month, "", context=context) == pytest.approx(math.exp(-1))

    def test_visit_count_saturates(self, make_item):
        assert scorers.visit_count_score(make_item("https://x.example/1", visit_count=19), "") == pytest.approx(1.0)
        assert scorers.visit_count_score(make_item("https://x.example/1", visit_count=500), "") == 1.0
        once = scorers.visit_count_score(make_item("https://x.example/1", visit_count=1), "")
        assert once == pytest.approx(math.log(2) / math.log(20))

    def test_domain_familiarity_capped(self, make_item):
        items = [make_item(f"https://busy.example/{i}", visit_count=10) for i in range(10)]
        assert scorers.domain_familiarity_score(items[0], "", items) == pytest.approx(0.2)

    def test_domain_familiarity_uses_precomputed_totals(self, make_item):
        item = make_item("https://quiet.example/", visit_count=1)
        context = ScorerContext(domain_visits={"quiet.example": 1})
        assert scorers.domain_familiarity_score(item, "", [item], context) == pytest.approx(math.log(2) / math.log(50))

    def test_domain_familiarity_without_corpus(self, make_item):
        assert scorers.domain_familiarity_score(make_item("https://x.example/"), "", None) == 0.0


class TestUrlAndMeta:
    """Test URL and metadata scorers."""

    def test_hostname_bonus(self, github_docs):
        assert scorers.url_score(github_docs, "github") == pytest.approx(1.0)

    def test_partial_url_match(self, github_docs):
        # 1 of 2 tokens in url, also in path
        assert scorers.url_score(github_docs, "rest zzz") == pytest.approx(0.5 + 0.5 * 0.2)

    def test_meta_empty_is_zero(self, github_docs):
        assert scorers.meta_score(github_docs, "github") == 0.0

    def test_meta_keywords(self, make_item):
        item = make_item("https://x.example/js", "MDN", meta_keywords=["javascript", "reference"])
        assert scorers.meta_score(item, "javascript") == pytest.approx(1.0)


class TestMalformedItems:
    """Scorers treat missing optional fields as empty."""

    @pytest.mark.parametrize("scorer", scorers.BASE_SCORERS, ids=lambda s: s.name)
    def test_bare_item(self, scorer, make_item):
        item = make_item("", "", hostname="", last_visit=0.0)
        value = scorer.score(item, "github api", [item], ScorerContext(query_embedding=[1.0]))
        assert 0.0 <= value <= 1.0
