"""
BM25 index builder - term → postings aggregation over a document store.

Structure of a built index:
    postings:     {"kubernet": (Posting(0, 3), Posting(2, 1)), ...}
    doc_lengths:  (120, 87, 340)      # token count per doc id
    doc_count:    3
    avg_doc_length: 182.33...

Postings lists are ascending by doc id with one entry per document. Documents
are consumed in id order, so appending produces sorted lists without a sort
pass. Document frequency is never stored: it is the postings list length.
"""

import logging
from bisect import bisect_left
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Dict, List, Mapping, NamedTuple, Optional, Tuple

from ..errors import EmptyIndex
from .document_store import DocumentRecord, DocumentStore
from .tokenizer import Tokenizer

logger = logging.getLogger(__name__)


class Posting(NamedTuple):
    doc_id: int
    term_frequency: int


@dataclass(frozen=True)
class InvertedIndex:
    """Immutable term → postings mapping plus corpus statistics"""
    postings: Mapping[str, Tuple[Posting, ...]]
    doc_lengths: Tuple[int, ...]
    doc_count: int
    avg_doc_length: float

    def document_frequency(self, term: str) -> int:
        return len(self.postings.get(term, ()))

    def term_frequency(self, term: str, doc_id: int) -> int:
        """Occurrences of `term` in document `doc_id` (0 if absent)"""
        postings = self.postings.get(term)
        if not postings:
            return 0
        i = bisect_left(postings, doc_id, key=lambda p: p.doc_id)
        if i < len(postings) and postings[i].doc_id == doc_id:
            return postings[i].term_frequency
        return 0

    @property
    def vocabulary_size(self) -> int:
        return len(self.postings)

    def check_invariants(self) -> None:
        """
        Verify structural invariants, raising ValueError on the first violation.

        Used when loading artifacts that were not built in this process.
        """
        if self.doc_count != len(self.doc_lengths):
            raise ValueError(
                f"doc_count={self.doc_count} but {len(self.doc_lengths)} document lengths"
            )
        if self.doc_count == 0:
            raise ValueError("index contains no documents")
        if any(length <= 0 for length in self.doc_lengths):
            raise ValueError("document with non-positive token count")

        for term, postings in self.postings.items():
            if not postings:
                raise ValueError(f"term '{term}' has an empty postings list")
            previous = -1
            for posting in postings:
                if posting.doc_id <= previous:
                    raise ValueError(f"postings for '{term}' not strictly ascending by doc id")
                if not 0 <= posting.doc_id < self.doc_count:
                    raise ValueError(f"postings for '{term}' reference unknown doc {posting.doc_id}")
                if posting.term_frequency <= 0:
                    raise ValueError(f"postings for '{term}' contain non-positive frequency")
                previous = posting.doc_id


@dataclass(frozen=True)
class Index:
    """A named, published index. Never mutated after construction."""
    name: str
    created_at: str
    documents: Tuple[DocumentRecord, ...]
    inverted: InvertedIndex
    tokenizer: Tokenizer

    @property
    def doc_count(self) -> int:
        return self.inverted.doc_count


def build_inverted_index(store: DocumentStore) -> InvertedIndex:
    """
    Build the postings map and statistics from every document in `store`.

    Raises:
        EmptyIndex: store has no accepted documents
    """
    if len(store) == 0:
        raise EmptyIndex("No documents could be indexed")

    postings: Dict[str, List[Posting]] = {}
    doc_lengths: List[int] = []

    for record, tokens in store.tokenized():
        doc_lengths.append(record.token_count)
        # Counter keeps first-occurrence order, so term order is deterministic
        for term, tf in Counter(tokens).items():
            postings.setdefault(term, []).append(Posting(record.id, tf))

    doc_count = len(doc_lengths)
    avg_doc_length = sum(doc_lengths) / doc_count

    frozen = MappingProxyType({term: tuple(plist) for term, plist in postings.items()})

    logger.debug(
        f"Built inverted index: {len(frozen)} unique terms from {doc_count} documents "
        f"(avgdl={avg_doc_length:.2f})"
    )

    return InvertedIndex(
        postings=frozen,
        doc_lengths=tuple(doc_lengths),
        doc_count=doc_count,
        avg_doc_length=avg_doc_length,
    )


def build_bm25_index(name: str, store: DocumentStore, created_at: Optional[str] = None) -> Index:
    """
    Build a complete named Index from a document store.

    Args:
        name: Registry-assigned index name
        store: Accepted documents (ids 0..N-1)
        created_at: ISO-8601 timestamp, defaults to now (UTC)

    Raises:
        EmptyIndex: store has no accepted documents
    """
    inverted = build_inverted_index(store)
    if created_at is None:
        created_at = datetime.now(timezone.utc).isoformat(timespec="seconds")

    return Index(
        name=name,
        created_at=created_at,
        documents=store.records,
        inverted=inverted,
        tokenizer=store.tokenizer,
    )
