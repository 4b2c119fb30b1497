"""
Indexing input normalization.

A create request carries either uploaded files or pre-chunked JSON text:

    IndexingInput = FileBatch(files) | ChunkBatch(chunks)

normalize_input() turns both into one list of NormalizedItem, in input order.
Items that cannot be used carry the IngestionError instead of content, so the
caller can report them without touching their siblings.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Union

from .errors import IngestionError
from .file_validator import FileValidator

UNKNOWN_TITLE = "Unknown"


@dataclass(frozen=True)
class UploadedFile:
    filename: str
    content: bytes


@dataclass(frozen=True)
class ChunkInput:
    content: str
    title: Optional[str] = None


@dataclass(frozen=True)
class FileBatch:
    files: List[UploadedFile] = field(default_factory=list)


@dataclass(frozen=True)
class ChunkBatch:
    chunks: List[ChunkInput] = field(default_factory=list)


IndexingInput = Union[FileBatch, ChunkBatch]


@dataclass(frozen=True)
class NormalizedItem:
    """
    One input item ready for the document store.

    label: name reported back in `results` (filename or chunk title)
    """
    label: str
    title: str
    content: Optional[str] = None
    error: Optional[IngestionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def normalize_input(batch: IndexingInput, validator: FileValidator) -> List[NormalizedItem]:
    """
    Convert files or chunks into (label, title, content) items.

    Files are validated (size, extension, UTF-8) and titled by filename.
    Chunks are taken as-is, titled by their title or "Unknown".
    """
    items: List[NormalizedItem] = []

    if isinstance(batch, FileBatch):
        for upload in batch.files:
            filename = upload.filename or UNKNOWN_TITLE
            try:
                text = validator.validate(filename, upload.content)
            except IngestionError as e:
                items.append(NormalizedItem(label=filename, title=filename, error=e))
                continue
            items.append(NormalizedItem(label=filename, title=filename, content=text))

    elif isinstance(batch, ChunkBatch):
        for chunk in batch.chunks:
            title = chunk.title or UNKNOWN_TITLE
            items.append(NormalizedItem(label=title, title=title, content=chunk.content))

    else:
        raise TypeError(f"Unsupported indexing input: {type(batch).__name__}")

    return items
