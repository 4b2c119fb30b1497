"""
Document store - per-index chunk records with sequential ids.

Every accepted (title, content) pair becomes a DocumentRecord with an id local
to the index being built (0, 1, 2, ... in acceptance order). Content is
tokenized exactly once here; the index builder consumes the stored tokens.
"""

import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from ..errors import EmptyDocument
from .tokenizer import DEFAULT_TOKENIZER, Tokenizer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentRecord:
    """One indexed chunk. Owned by exactly one index."""
    id: int
    title: str
    content: str
    token_count: int


class DocumentStore:
    """
    Accumulates documents for a single index build.

    Not thread-safe: a store belongs to one build job.
    """

    def __init__(self, tokenizer: Optional[Tokenizer] = None):
        self.tokenizer = tokenizer or DEFAULT_TOKENIZER
        self._records: List[DocumentRecord] = []
        self._tokens: List[List[str]] = []

    def add(self, title: str, content: str) -> DocumentRecord:
        """
        Tokenize and store one document.

        Raises:
            EmptyDocument: content has no terms after tokenization
                (blank, punctuation-only or stopwords-only). The store is
                unchanged and the next accepted document takes the id.
        """
        tokens = self.tokenizer.tokenize(content)
        if not tokens:
            raise EmptyDocument(f"Document '{title}' has no indexable text")

        record = DocumentRecord(
            id=len(self._records),
            title=title,
            content=content,
            token_count=len(tokens),
        )
        self._records.append(record)
        self._tokens.append(tokens)
        logger.debug(f"Stored document {record.id} '{title}' ({record.token_count} tokens)")
        return record

    @property
    def records(self) -> Tuple[DocumentRecord, ...]:
        return tuple(self._records)

    def tokenized(self) -> Iterator[Tuple[DocumentRecord, List[str]]]:
        """Yield (record, tokens) pairs in ascending id order"""
        return zip(self._records, self._tokens)

    def __len__(self) -> int:
        return len(self._records)
