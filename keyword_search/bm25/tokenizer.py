"""
Tokenizer for BM25 indexing and querying.

Tokenization pipeline:
1. Case folding (Unicode aware: "Straße" → "strasse")
2. Split on every non-alphanumeric character (punctuation, underscore, whitespace)
3. Filter stopwords (Lucene English list)
4. Apply Snowball stemming ("deployments" → "deploy")

Numbers are kept as terms: part numbers, error codes and versions are exactly
the queries where lexical search beats embeddings.

The tokenizer settings are stored inside every index artifact, and queries
against an index are always tokenized with the settings that built it.
"""

import re
from typing import Dict, List

from .stemmer import stem

# English stopwords (based on Elasticsearch/Lucene standard list)
STOPWORDS = frozenset([
    'a', 'an', 'and', 'are', 'as', 'at', 'be', 'but', 'by',
    'for', 'if', 'in', 'into', 'is', 'it',
    'no', 'not', 'of', 'on', 'or', 'such',
    'that', 'the', 'their', 'then', 'there', 'these',
    'they', 'this', 'to', 'was', 'will', 'with'
])

# Maximal runs of Unicode letters/digits (\w minus underscore)
_TOKEN_PATTERN = re.compile(r"[^\W_]+")


class Tokenizer:
    """
    Deterministic text → terms converter.

    Args:
        stem: Apply Snowball stemming to every token
        remove_stopwords: Drop tokens from STOPWORDS (checked before stemming)
    """

    def __init__(self, stem: bool = True, remove_stopwords: bool = True):
        self.stem = stem
        self.remove_stopwords = remove_stopwords

    def tokenize(self, text: str) -> List[str]:
        """
        Tokenize text into an ordered list of terms.

        Examples:
            >>> Tokenizer().tokenize("Kubernetes deployment strategies!")
            ['kubernet', 'deploy', 'strategi']

            >>> Tokenizer().tokenize("Error E1234 in module_x")
            ['error', 'e1234', 'modul', 'x']

            >>> Tokenizer().tokenize("   ")
            []
        """
        if not text:
            return []

        tokens = _TOKEN_PATTERN.findall(text.casefold())

        if self.remove_stopwords:
            tokens = [t for t in tokens if t not in STOPWORDS]

        if self.stem:
            tokens = [stem(t) for t in tokens]

        return tokens

    def settings(self) -> Dict[str, bool]:
        """Serializable settings, stored in index artifacts"""
        return {"stem": self.stem, "remove_stopwords": self.remove_stopwords}

    @classmethod
    def from_settings(cls, settings: Dict[str, bool]) -> "Tokenizer":
        return cls(
            stem=bool(settings.get("stem", True)),
            remove_stopwords=bool(settings.get("remove_stopwords", True)),
        )

    def __eq__(self, other) -> bool:
        if not isinstance(other, Tokenizer):
            return NotImplemented
        return self.settings() == other.settings()

    def __hash__(self) -> int:
        return hash((self.stem, self.remove_stopwords))

    def __repr__(self) -> str:
        return f"Tokenizer(stem={self.stem}, remove_stopwords={self.remove_stopwords})"


DEFAULT_TOKENIZER = Tokenizer()


def tokenize(text: str) -> List[str]:
    """Tokenize with the default settings (stemming + stopword removal)"""
    return DEFAULT_TOKENIZER.tokenize(text)
