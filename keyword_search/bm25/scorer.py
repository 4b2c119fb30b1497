"""
BM25 (Okapi) scorer over a built inverted index.

Formula, summed over distinct query terms t:
    idf(t)   = ln(1 + (N - df(t) + 0.5) / (df(t) + 0.5))
    tf_norm  = (tf × (k1 + 1)) / (tf + k1 × (1 - b + b × dl/avgdl))
    score   += qtf(t) × idf(t) × tf_norm

Where:
    N     = number of documents in the index
    df(t) = number of documents containing t
    tf    = occurrences of t in the candidate document
    qtf   = occurrences of t in the query ("error error code" weighs "error" twice)
    dl    = candidate document length (tokens)
    avgdl = average document length across the index
    k1    = term frequency saturation (default 1.2)
    b     = length normalization (default 0.75)

The "1 +" inside the logarithm keeps idf positive even for terms present in
every document, so scores are always finite and non-negative. Terms missing
from the index contribute 0.
"""

import math
from collections import Counter
from typing import Dict, Iterable, List, Tuple

from .index_builder import InvertedIndex


class BM25Scorer:
    """
    Stateless BM25 scoring. Safe to share between threads.

    Args:
        k1: Term frequency saturation parameter
            Higher = more weight to repeated terms
            Default: 1.2 (standard)

        b: Length normalization parameter
            0.0 = no length penalty, 1.0 = full normalization
            Default: 0.75 (standard)
    """

    def __init__(self, k1: float = 1.2, b: float = 0.75):
        if k1 < 0:
            raise ValueError(f"k1 must be >= 0, got {k1}")
        if not 0.0 <= b <= 1.0:
            raise ValueError(f"b must be within [0, 1], got {b}")
        self.k1 = k1
        self.b = b

    def idf(self, index: InvertedIndex, term: str) -> float:
        df = index.document_frequency(term)
        n = index.doc_count
        return math.log(1.0 + (n - df + 0.5) / (df + 0.5))

    def _length_norm(self, index: InvertedIndex, doc_length: int) -> float:
        # avgdl == 0 only for an empty index, which the builder refuses to produce
        ratio = doc_length / index.avg_doc_length if index.avg_doc_length > 0 else 0.0
        return self.k1 * (1.0 - self.b + self.b * ratio)

    def _weighted_terms(self, index: InvertedIndex, query_terms: Iterable[str]) -> List[Tuple[str, int, float]]:
        """Distinct indexed query terms in first-occurrence order as (term, qtf, idf)"""
        return [
            (term, qtf, self.idf(index, term))
            for term, qtf in Counter(query_terms).items()
            if term in index.postings
        ]

    def score(self, index: InvertedIndex, doc_id: int, query_terms: Iterable[str]) -> float:
        """
        BM25 score of one document for a tokenized query.

        Example:
            >>> scorer = BM25Scorer()
            >>> scorer.score(index, 0, ["pari", "capit"])
            0.8754...
        """
        doc_length = index.doc_lengths[doc_id]
        norm = self._length_norm(index, doc_length)

        score = 0.0
        for term, qtf, idf in self._weighted_terms(index, query_terms):
            tf = index.term_frequency(term, doc_id)
            if tf == 0:
                continue
            score += qtf * idf * (tf * (self.k1 + 1.0)) / (tf + norm)
        return score

    def score_all(self, index: InvertedIndex, query_terms: Iterable[str]) -> Dict[int, float]:
        """
        Scores for every document matching at least one query term.

        Walks postings lists instead of documents. Contributions are added in
        the same term order as score(), so both produce identical floats.

        Returns:
            {doc_id: score} for matching documents only
        """
        scores: Dict[int, float] = {}
        for term, qtf, idf in self._weighted_terms(index, query_terms):
            for doc_id, tf in index.postings[term]:
                norm = self._length_norm(index, index.doc_lengths[doc_id])
                contribution = qtf * idf * (tf * (self.k1 + 1.0)) / (tf + norm)
                scores[doc_id] = scores.get(doc_id, 0.0) + contribution
        return scores
