"""
Versioned index artifact format.

An artifact is a single UTF-8 JSON document, written once at index creation
and served byte-for-byte by the download endpoint:

    {
      "format": "keyword-search-index",
      "version": 1,
      "name": "index-5f0c...",
      "created_at": "2026-10-19T12:00:00+00:00",
      "tokenizer": {"remove_stopwords": true, "stem": true},
      "stats": {"avg_doc_length": 3.0, "doc_count": 2},
      "documents": [
        {"content": "...", "id": 0, "title": "paris.txt", "token_count": 3},
        ...
      ],
      "postings": {"capit": [[0, 1], [1, 1]], "pari": [[0, 1]], ...}
    }

Keys are sorted and separators compact, so serialization is deterministic.
Document frequencies and document lengths are not stored: they are derived
from postings lengths and `token_count` on load.

Loading checks `format` and `version` first; anything else is rejected with
ArtifactFormatError instead of being half-loaded.
"""

import json
from types import MappingProxyType
from typing import Any, Dict

from .bm25.document_store import DocumentRecord
from .bm25.index_builder import Index, InvertedIndex, Posting
from .bm25.tokenizer import Tokenizer
from .errors import ArtifactFormatError

ARTIFACT_FORMAT = "keyword-search-index"
ARTIFACT_VERSION = 1
ARTIFACT_MEDIA_TYPE = "application/json"
ARTIFACT_EXTENSION = ".json"


def serialize_index(index: Index) -> bytes:
    """Encode an index as artifact bytes"""
    payload = {
        "format": ARTIFACT_FORMAT,
        "version": ARTIFACT_VERSION,
        "name": index.name,
        "created_at": index.created_at,
        "tokenizer": index.tokenizer.settings(),
        "stats": {
            "doc_count": index.inverted.doc_count,
            "avg_doc_length": index.inverted.avg_doc_length,
        },
        "documents": [
            {
                "id": doc.id,
                "title": doc.title,
                "content": doc.content,
                "token_count": doc.token_count,
            }
            for doc in index.documents
        ],
        "postings": {
            term: [[p.doc_id, p.term_frequency] for p in postings]
            for term, postings in index.inverted.postings.items()
        },
    }
    return json.dumps(
        payload,
        ensure_ascii=False,
        sort_keys=True,
        separators=(",", ":"),
        allow_nan=False,
    ).encode("utf-8")


def read_header(data: bytes) -> Dict[str, Any]:
    """
    Parse artifact bytes and check the format tag and version.

    Returns:
        The decoded JSON object

    Raises:
        ArtifactFormatError: not JSON, wrong format tag or unsupported version
    """
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ArtifactFormatError(f"Artifact is not valid UTF-8 JSON: {e}")

    if not isinstance(payload, dict) or payload.get("format") != ARTIFACT_FORMAT:
        raise ArtifactFormatError(f"Not a {ARTIFACT_FORMAT} artifact")

    version = payload.get("version")
    if version != ARTIFACT_VERSION:
        raise ArtifactFormatError(
            f"Unsupported artifact version {version!r} (this build reads version {ARTIFACT_VERSION})",
            name=payload.get("name"),
        )
    return payload


def deserialize_index(data: bytes) -> Index:
    """
    Decode artifact bytes back into an Index.

    Raises:
        ArtifactFormatError: bad header, missing fields or broken invariants
    """
    payload = read_header(data)
    name = payload.get("name")

    try:
        documents = tuple(
            DocumentRecord(
                id=int(doc["id"]),
                title=str(doc["title"]),
                content=str(doc["content"]),
                token_count=int(doc["token_count"]),
            )
            for doc in payload["documents"]
        )
        postings = MappingProxyType({
            term: tuple(Posting(int(doc_id), int(tf)) for doc_id, tf in plist)
            for term, plist in payload["postings"].items()
        })
        stats = payload["stats"]
        inverted = InvertedIndex(
            postings=postings,
            doc_lengths=tuple(doc.token_count for doc in documents),
            doc_count=int(stats["doc_count"]),
            avg_doc_length=float(stats["avg_doc_length"]),
        )
        index = Index(
            name=str(name),
            created_at=str(payload["created_at"]),
            documents=documents,
            inverted=inverted,
            tokenizer=Tokenizer.from_settings(payload["tokenizer"]),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise ArtifactFormatError(f"Malformed artifact: {e!r}", name=name)

    if any(doc.id != position for position, doc in enumerate(documents)):
        raise ArtifactFormatError("Document ids are not dense and ordered", name=name)
    try:
        inverted.check_invariants()
    except ValueError as e:
        raise ArtifactFormatError(f"Corrupted artifact: {e}", name=name)

    return index
