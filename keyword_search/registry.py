"""
Index registry - the process-wide map of published indexes.

The registry is append-only: entries are added once, fully built and already
persisted, and never modified. Readers (search, download) take a reference to
an immutable Index without locking. The lock only guards name reservation and
the final insert, so concurrent builds never wait on each other.

Creation pipeline:
    reserve name → build postings → serialize → storage.write → publish

A failure at any step releases the reservation and publishes nothing.
"""

import dataclasses
import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple

from .artifact import deserialize_index, serialize_index
from .bm25.document_store import DocumentStore
from .bm25.index_builder import Index, build_bm25_index
from .errors import (
    EmptyIndex,
    IndexAlreadyExists,
    InvalidQuery,
    NameCollision,
    PersistenceFailure,
)
from .storage import ArtifactStorage
from .utils import calculate_file_hash, is_valid_index_name

logger = logging.getLogger(__name__)

MAX_NAME_ATTEMPTS = 8


def generate_index_name() -> str:
    return f"index-{uuid.uuid4()}"


@dataclass(frozen=True)
class PublishedIndex:
    """Registry entry: the index plus facts about its stored artifact"""
    index: Index
    artifact_sha256: str
    artifact_size: int


class IndexRegistry:
    """
    Thread-safe registry of named, immutable indexes.

    Args:
        storage: Artifact storage backend
        name_generator: Produces candidate names when the caller gives none
    """

    def __init__(
        self,
        storage: ArtifactStorage,
        name_generator: Callable[[], str] = generate_index_name,
        max_name_attempts: int = MAX_NAME_ATTEMPTS,
    ):
        self.storage = storage
        self._name_generator = name_generator
        self._max_name_attempts = max_name_attempts
        self._indexes: Dict[str, PublishedIndex] = {}
        self._reserved: Set[str] = set()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Name reservation
    # ------------------------------------------------------------------

    def _reserve(self, name: str) -> None:
        """Claim `name` for an in-flight build, or raise NameCollision"""
        with self._lock:
            if name in self._indexes or name in self._reserved:
                raise NameCollision(f"Index name '{name}' is already in use")
            self._reserved.add(name)

        # Artifacts may exist from a previous run that was not reloaded
        try:
            taken = self.storage.exists(name)
        except BaseException:
            self._release(name)
            raise
        if taken:
            self._release(name)
            raise NameCollision(f"Artifact '{name}' already exists in storage")

    def _release(self, name: str) -> None:
        with self._lock:
            self._reserved.discard(name)

    def _reserve_generated(self) -> str:
        for attempt in range(1, self._max_name_attempts + 1):
            name = self._name_generator()
            try:
                self._reserve(name)
                return name
            except NameCollision as e:
                logger.warning(f"Generated index name collision (attempt {attempt}): {e}")
        raise PersistenceFailure(
            f"Could not generate a unique index name after {self._max_name_attempts} attempts"
        )

    def _reserve_requested(self, name: str) -> str:
        if not is_valid_index_name(name):
            raise InvalidQuery(
                f"Invalid index name {name!r}: use letters, digits, '.', '_' or '-' "
                f"(max 128 characters, starting with a letter or digit)"
            )
        try:
            self._reserve(name)
        except NameCollision:
            raise IndexAlreadyExists(name)
        return name

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create(self, name_hint: Optional[str], store: DocumentStore) -> Tuple[str, Index]:
        """
        Build, persist and publish an index from the accepted documents.

        Args:
            name_hint: Caller-chosen name, or None to generate one
            store: Accepted documents

        Returns:
            (index_name, index)

        Raises:
            EmptyIndex: store holds no documents
            InvalidQuery: name_hint is not a valid index name
            IndexAlreadyExists: name_hint is already taken
            PersistenceFailure: artifact could not be written
        """
        if len(store) == 0:
            raise EmptyIndex("No documents could be indexed")

        name = self._reserve_requested(name_hint) if name_hint else self._reserve_generated()
        try:
            index = build_bm25_index(name, store)
            while True:
                data = serialize_index(index)
                try:
                    self.storage.write(name, data)
                    break
                except NameCollision as e:
                    # Another process wrote this name between reservation and write
                    if name_hint:
                        raise IndexAlreadyExists(name)
                    logger.warning(f"Artifact name collision on write, regenerating: {e}")
                    self._release(name)
                    name = self._reserve_generated()
                    index = dataclasses.replace(index, name=name)

            entry = PublishedIndex(
                index=index,
                artifact_sha256=calculate_file_hash(data),
                artifact_size=len(data),
            )
            with self._lock:
                self._reserved.discard(name)
                self._indexes[name] = entry
        except BaseException:
            self._release(name)
            raise

        logger.info(
            f"Published index {name}: {index.doc_count} documents, "
            f"{index.inverted.vocabulary_size} terms, {entry.artifact_size} bytes"
        )
        return name, index

    # ------------------------------------------------------------------
    # Lookup and download
    # ------------------------------------------------------------------

    def get_entry(self, name: str) -> Optional[PublishedIndex]:
        # Single dict read; entries are inserted whole and never changed
        return self._indexes.get(name)

    def lookup(self, name: str) -> Optional[Index]:
        entry = self.get_entry(name)
        return entry.index if entry else None

    def download_bytes(self, name: str) -> Optional[bytes]:
        """
        Exact artifact bytes written when `name` was created.

        Returns:
            Artifact bytes, or None if no such index is published

        Raises:
            PersistenceFailure: storage read failed
        """
        if self.get_entry(name) is None:
            return None
        return self.storage.read(name)

    def open_download(self, name: str) -> Optional[Iterator[bytes]]:
        """Artifact bytes as chunks for streaming, or None if unknown"""
        if self.get_entry(name) is None:
            return None
        return self.storage.iter_chunks(name)

    def names(self) -> List[str]:
        with self._lock:
            snapshot = list(self._indexes)
        return sorted(snapshot)

    def __contains__(self, name: str) -> bool:
        return name in self._indexes

    def __len__(self) -> int:
        return len(self._indexes)

    # ------------------------------------------------------------------
    # Startup reload
    # ------------------------------------------------------------------

    def load_persisted(self) -> int:
        """
        Publish every readable artifact found in storage.

        Artifacts with an unknown format/version or broken contents are
        skipped (logged), never partially loaded.

        Returns:
            Number of indexes loaded
        """
        loaded = 0
        for name in self.storage.list_names():
            if name in self:
                continue
            try:
                data = self.storage.read(name)
                index = deserialize_index(data)
            except PersistenceFailure as e:
                logger.error(f"Skipping artifact '{name}': {e}")
                continue
            if index.name != name:
                logger.error(f"Skipping artifact '{name}': it declares name '{index.name}'")
                continue

            entry = PublishedIndex(
                index=index,
                artifact_sha256=calculate_file_hash(data),
                artifact_size=len(data),
            )
            with self._lock:
                if name in self._indexes or name in self._reserved:
                    continue
                self._indexes[name] = entry
            loaded += 1
            logger.debug(f"Reloaded index {name} ({index.doc_count} documents)")

        logger.info(f"Reloaded {loaded} persisted indexes from {self.storage!r}")
        return loaded
