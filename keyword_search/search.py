"""
Query engine - top-k BM25 retrieval against a named index.

    Query("Paris capital", top_k=5, index_name="index-5f0c...")
        → tokenize with the index's own tokenizer
        → BM25 score every document matching at least one term
        → top_k by (score desc, doc id asc)

top_k == 0 returns no hits for an existing index (not an error). Ties are
always broken by the lower document id, so identical documents come back in
upload order.
"""

import heapq
import logging
from dataclasses import dataclass
from typing import List, Optional

from .bm25.index_builder import Index
from .bm25.scorer import BM25Scorer
from .errors import IndexNotFound, InvalidQuery
from .registry import IndexRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Query:
    text: str
    top_k: int
    index_name: str


@dataclass(frozen=True)
class Hit:
    title: str
    content: str
    score: float
    doc_id: int


def rank(index: Index, text: str, top_k: int, scorer: BM25Scorer) -> List[Hit]:
    """
    Score `text` against one index and return the best `top_k` hits.

    Documents that match no query term are never returned, so the result
    may be shorter than top_k.
    """
    if top_k <= 0:
        return []

    terms = index.tokenizer.tokenize(text)
    if not terms:
        return []

    scores = scorer.score_all(index.inverted, terms)
    best = heapq.nsmallest(top_k, scores.items(), key=lambda item: (-item[1], item[0]))

    hits = []
    for doc_id, score in best:
        doc = index.documents[doc_id]
        hits.append(Hit(title=doc.title, content=doc.content, score=score, doc_id=doc_id))
    return hits


class QueryEngine:
    """
    Resolves indexes through the registry and ranks their documents.

    Stateless apart from its collaborators; safe to call from many threads.
    """

    def __init__(self, registry: IndexRegistry, scorer: Optional[BM25Scorer] = None):
        self.registry = registry
        self.scorer = scorer or BM25Scorer()

    def search(self, query: Query) -> List[Hit]:
        """
        Run a query.

        Raises:
            InvalidQuery: negative top_k or blank index name
            IndexNotFound: no index published under query.index_name
        """
        if query.top_k < 0:
            raise InvalidQuery(f"top_k must be >= 0, got {query.top_k}")
        if not query.index_name or not query.index_name.strip():
            raise InvalidQuery("Index name is required")
        index = self.registry.lookup(query.index_name)
        if index is None:
            raise IndexNotFound(query.index_name)
        if query.top_k == 0:
            return []

        hits = rank(index, query.text, query.top_k, self.scorer)
        logger.debug(
            f"Query {query.text!r} on {query.index_name}: {len(hits)} hits "
            f"(top_k={query.top_k}, docs={index.doc_count})"
        )
        return hits
