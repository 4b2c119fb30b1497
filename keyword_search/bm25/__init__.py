"""
BM25 (Best Match 25) ranking for keyword search.

Each index carries its own corpus statistics (document frequencies, average
document length), computed once at build time. Indexes never change after
publication, so scoring needs no locks and no global state.

Components:
- tokenizer: Text normalization (casefold, split, stopwords, stemming)
- stemmer: Snowball stemming with a shared cache
- document_store: Accepted documents with sequential ids
- index_builder: Inverted index construction
- scorer: Okapi BM25 with the non-negative IDF variant
"""

from .tokenizer import DEFAULT_TOKENIZER, Tokenizer, tokenize
from .stemmer import stem
from .document_store import DocumentRecord, DocumentStore
from .index_builder import Index, InvertedIndex, Posting, build_bm25_index, build_inverted_index
from .scorer import BM25Scorer

__all__ = [
    "DEFAULT_TOKENIZER",
    "Tokenizer",
    "tokenize",
    "stem",
    "DocumentRecord",
    "DocumentStore",
    "Index",
    "InvertedIndex",
    "Posting",
    "build_bm25_index",
    "build_inverted_index",
    "BM25Scorer",
]
