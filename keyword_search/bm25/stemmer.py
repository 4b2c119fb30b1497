"""
English stemming for index terms (NLTK Snowball / Porter2).

Stemming collapses inflected forms onto one index term so that a query for
"deploy" also matches "deployments":
- "architectures" → "architectur"
- "strategies" → "strategi"
- "running" → "run"

The same stemmer is applied when building an index and when tokenizing a
query against it.
"""

from functools import lru_cache

from nltk.stem.snowball import SnowballStemmer

_stemmer = SnowballStemmer("english")

# Vocabulary is heavily skewed (Zipf), so a bounded cache absorbs most calls
STEM_CACHE_SIZE = 65536


@lru_cache(maxsize=STEM_CACHE_SIZE)
def stem(word: str) -> str:
    """
    Stem a single lowercase word.

    Examples:
        >>> stem("architectures")
        'architectur'
        >>> stem("searching")
        'search'
    """
    return _stemmer.stem(word)
