"""
Unit tests for BM25Scorer.
"""

import math

import pytest
from keyword_search.bm25.index_builder import build_inverted_index
from keyword_search.bm25.scorer import BM25Scorer
from keyword_search.bm25.tokenizer import tokenize


@pytest.fixture
def capitals_index(capitals_store):
    return build_inverted_index(capitals_store)


class TestIDF:
    """Inverse document frequency"""

    def test_rare_term_weighs_more(self, capitals_index):
        scorer = BM25Scorer()
        # "pari" in 1 of 2 docs, "capit" in both
        assert scorer.idf(capitals_index, "pari") > scorer.idf(capitals_index, "capit")

    def test_idf_formula(self, capitals_index):
        scorer = BM25Scorer()
        assert scorer.idf(capitals_index, "pari") == pytest.approx(math.log(1 + 1.5 / 1.5))
        assert scorer.idf(capitals_index, "capit") == pytest.approx(math.log(1 + 0.5 / 2.5))

    def test_idf_positive_for_term_in_every_document(self, capitals_index):
        assert BM25Scorer().idf(capitals_index, "capit") > 0


class TestBM25Scorer:
    """Test BM25 scoring logic"""

    def test_known_score(self, capitals_index):
        """Both docs have avgdl length, so tf_norm == 1 and the score is a sum of idfs"""
        scorer = BM25Scorer()
        query = tokenize("Paris capital")

        assert scorer.score(capitals_index, 0, query) == pytest.approx(math.log(2.4))
        assert scorer.score(capitals_index, 0, query) == pytest.approx(0.875469, abs=1e-6)
        assert scorer.score(capitals_index, 1, query) == pytest.approx(math.log(1.2))

    def test_zero_score_no_matches(self, capitals_index):
        """Test that score is zero when no query terms match"""
        scorer = BM25Scorer()
        assert scorer.score(capitals_index, 0, ["nonexistent", "terms"]) == 0.0
        assert scorer.score_all(capitals_index, ["nonexistent"]) == {}

    def test_empty_query(self, capitals_index):
        scorer = BM25Scorer()
        assert scorer.score(capitals_index, 0, []) == 0.0
        assert scorer.score_all(capitals_index, []) == {}

    def test_query_term_multiplicity(self, capitals_index):
        """A term repeated in the query counts once per occurrence"""
        scorer = BM25Scorer()
        once = scorer.score(capitals_index, 0, ["pari"])
        twice = scorer.score(capitals_index, 0, ["pari", "pari"])
        assert twice == pytest.approx(2 * once)

    def test_term_frequency_saturation(self, make_store):
        """More occurrences help, but with diminishing returns"""
        index = build_inverted_index(make_store(
            "kubernetes pods",
            "kubernetes kubernetes pods",
            "kubernetes kubernetes kubernetes pods",
            "unrelated text here",
        ))
        scorer = BM25Scorer(b=0.0)  # isolate tf from length normalization

        s1, s2, s3 = (scorer.score(index, i, ["kubernet"]) for i in range(3))
        assert s1 < s2 < s3
        assert (s3 - s2) < (s2 - s1)

    def test_length_normalization(self, make_store):
        """Same tf, longer document scores lower when b > 0"""
        index = build_inverted_index(make_store(
            "database index",
            "database index tuning vacuum replication sharding",
        ))
        scorer = BM25Scorer()
        assert scorer.score(index, 0, ["databas"]) > scorer.score(index, 1, ["databas"])

    def test_no_length_normalization(self, make_store):
        index = build_inverted_index(make_store(
            "database index",
            "database index tuning vacuum replication sharding",
        ))
        scorer = BM25Scorer(b=0.0)
        assert scorer.score(index, 0, ["databas"]) == pytest.approx(scorer.score(index, 1, ["databas"]))

    def test_score_all_matches_score(self, make_store):
        """Postings traversal produces exactly the per-document scores"""
        index = build_inverted_index(make_store(
            "error code E42 in payment service",
            "payment gateway timeout error error",
            "service mesh configuration",
            "error budget and service level objectives",
        ))
        scorer = BM25Scorer()
        query = tokenize("payment service error error")

        scores = scorer.score_all(index, query)
        assert set(scores) == {0, 1, 2, 3}
        for doc_id, value in scores.items():
            assert value == scorer.score(index, doc_id, query)
            assert value > 0

    def test_scores_non_negative(self, capitals_index):
        scorer = BM25Scorer()
        for value in scorer.score_all(capitals_index, ["capit", "franc", "itali"]).values():
            assert value >= 0.0

    def test_invalid_parameters(self):
        with pytest.raises(ValueError):
            BM25Scorer(k1=-0.1)
        with pytest.raises(ValueError):
            BM25Scorer(b=1.5)
