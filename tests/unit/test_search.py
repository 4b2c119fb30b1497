"""
Unit tests for QueryEngine ranking.
"""

import math

import pytest
from keyword_search.bm25.index_builder import build_bm25_index
from keyword_search.bm25.scorer import BM25Scorer
from keyword_search.errors import IndexNotFound, InvalidQuery
from keyword_search.search import Query, QueryEngine, rank


@pytest.fixture
def engine(registry):
    return QueryEngine(registry)


@pytest.fixture
def capitals(registry, capitals_store):
    name, _ = registry.create("capitals", capitals_store)
    return name


class TestQueryEngine:
    """Top-k retrieval through the registry"""

    def test_best_match_first(self, engine, capitals):
        hits = engine.search(Query("Paris capital", top_k=5, index_name=capitals))

        assert [h.title for h in hits] == ["paris.txt", "rome.txt"]
        assert hits[0].content == "Paris is the capital of France."
        assert hits[0].score == pytest.approx(math.log(2.4))
        assert hits[1].score == pytest.approx(math.log(1.2))

    def test_scores_descending(self, registry, engine, make_store):
        name, _ = registry.create(None, make_store(
            "python packaging guide",
            "python python python tutorial",
            "rust ownership",
            "python",
        ))
        hits = engine.search(Query("python", top_k=10, index_name=name))
        scores = [h.score for h in hits]
        assert scores == sorted(scores, reverse=True)
        assert len(hits) == 3  # the rust doc has no query term

    def test_top_k_limits_results(self, registry, engine, make_store):
        name, _ = registry.create(None, make_store(*[f"shared term {i}" for i in range(10)]))
        assert len(engine.search(Query("shared", top_k=3, index_name=name))) == 3

    def test_top_k_larger_than_corpus(self, engine, capitals):
        hits = engine.search(Query("capital", top_k=100, index_name=capitals))
        assert len(hits) == 2

    def test_top_k_zero(self, engine, capitals):
        assert engine.search(Query("Paris", top_k=0, index_name=capitals)) == []

    def test_negative_top_k(self, engine, capitals):
        with pytest.raises(InvalidQuery):
            engine.search(Query("Paris", top_k=-1, index_name=capitals))

    def test_unknown_index_with_top_k_zero(self, engine):
        """Index existence is checked before top_k == 0 short-circuits"""
        with pytest.raises(IndexNotFound):
            engine.search(Query("Paris", top_k=0, index_name="does-not-exist"))

    def test_blank_index_name(self, engine):
        with pytest.raises(InvalidQuery):
            engine.search(Query("Paris", top_k=5, index_name="  "))

    def test_unknown_index(self, engine):
        with pytest.raises(IndexNotFound) as exc_info:
            engine.search(Query("Paris", top_k=5, index_name="does-not-exist"))
        assert exc_info.value.name == "does-not-exist"

    def test_empty_query(self, engine, capitals):
        assert engine.search(Query("", top_k=5, index_name=capitals)) == []
        assert engine.search(Query("the of and", top_k=5, index_name=capitals)) == []

    def test_no_matching_terms(self, engine, capitals):
        assert engine.search(Query("quantum chromodynamics", top_k=5, index_name=capitals)) == []

    def test_ties_broken_by_upload_order(self, registry, engine, make_store):
        name, _ = registry.create(None, make_store(
            ("first.txt", "identical text about search"),
            ("second.txt", "identical text about search"),
            ("third.txt", "identical text about search"),
        ))
        hits = engine.search(Query("search", top_k=3, index_name=name))

        assert [h.title for h in hits] == ["first.txt", "second.txt", "third.txt"]
        assert [h.doc_id for h in hits] == [0, 1, 2]
        assert hits[0].score == hits[1].score == hits[2].score

    def test_tie_break_with_top_k_cut(self, registry, engine, make_store):
        name, _ = registry.create(None, make_store(*["same words here"] * 5))
        hits = engine.search(Query("words", top_k=2, index_name=name))
        assert [h.doc_id for h in hits] == [0, 1]

    def test_repeatable(self, engine, capitals):
        query = Query("capital of Italy", top_k=5, index_name=capitals)
        assert engine.search(query) == engine.search(query)

    def test_custom_scorer_parameters(self, registry, capitals):
        engine = QueryEngine(registry, BM25Scorer(k1=2.0, b=0.0))
        hits = engine.search(Query("Paris", top_k=1, index_name=capitals))
        assert hits[0].title == "paris.txt"


class TestRank:
    """Ranking a standalone index (no registry)"""

    def test_uses_index_tokenizer(self, make_store):
        index = build_bm25_index("standalone", make_store("Deployments of services"))
        hits = rank(index, "deploying service", top_k=5, scorer=BM25Scorer())
        assert len(hits) == 1

    def test_zero_top_k(self, capitals_store):
        index = build_bm25_index("standalone", capitals_store)
        assert rank(index, "Paris", top_k=0, scorer=BM25Scorer()) == []
