"""
Exception hierarchy for the keyword search service.

Two families:
- IngestionError: a single uploaded item could not be used. These are captured
  per item and reported in the `results` array of a create call; they never
  abort sibling items.
- Everything else: request-level failures mapped to HTTP status codes by the
  exception handlers in main.py.
"""

from typing import Optional


class KeywordSearchError(Exception):
    """Base class for all service errors"""

    #: Short machine-readable kind, returned as `error` in JSON error bodies
    kind = "keyword_search_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# ---------------------------------------------------------------------------
# Per-item ingestion failures
# ---------------------------------------------------------------------------


class IngestionError(KeywordSearchError):
    """A single input item was rejected"""

    kind = "ingestion_error"


class UnsupportedFileType(IngestionError):
    kind = "unsupported_file_type"


class EmptyDocument(IngestionError):
    """Item has no indexable text after tokenization"""

    kind = "empty_document"


class DocumentTooLarge(IngestionError):
    kind = "document_too_large"


class DocumentDecodeError(IngestionError):
    kind = "document_decode_error"


# ---------------------------------------------------------------------------
# Request-level failures
# ---------------------------------------------------------------------------


class EmptyIndex(KeywordSearchError):
    """
    Batch produced zero usable documents, nothing was published.

    `report` carries the per-item results so callers can still tell the
    client why every item failed.
    """

    kind = "empty_index"

    def __init__(self, message: str, report=None):
        super().__init__(message)
        self.report = report


class IndexNotFound(KeywordSearchError):
    kind = "index_not_found"

    def __init__(self, name: str):
        super().__init__(f"Index '{name}' not found")
        self.name = name


class IndexAlreadyExists(KeywordSearchError):
    kind = "index_already_exists"

    def __init__(self, name: str):
        super().__init__(f"Index '{name}' already exists")
        self.name = name


class InvalidQuery(KeywordSearchError):
    kind = "invalid_query"


class NameCollision(KeywordSearchError):
    """Generated index name already taken. Internal only, always retried."""

    kind = "name_collision"


class PersistenceFailure(KeywordSearchError):
    """Artifact storage read/write failed"""

    kind = "persistence_failure"

    def __init__(self, message: str, name: Optional[str] = None):
        super().__init__(message)
        self.name = name


class ArtifactFormatError(PersistenceFailure):
    """Artifact bytes are unreadable or were written by an incompatible version"""

    kind = "artifact_format_error"


class ResourceExhausted(KeywordSearchError):
    """Too many index builds are already queued"""

    kind = "resource_exhausted"


class ConfigurationError(KeywordSearchError):
    kind = "configuration_error"
