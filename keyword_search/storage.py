"""
Artifact storage for built indexes

One artifact per index, keyed by index name. Artifacts are write-once: a
write never replaces an existing artifact, so the bytes served by a download
are always the bytes produced when the index was created.

Backends:
- LocalArtifactStorage: directory on local disk (default)
    {root}/
    ├── index-5f0c....json
    └── my-handbook.json
- GCSArtifactStorage: Google Cloud Storage bucket
    gs://bucket/{prefix}/index-5f0c....json
"""

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterator, List

from google.api_core import exceptions as gcs_exceptions
from google.cloud import storage

from .artifact import ARTIFACT_EXTENSION, ARTIFACT_MEDIA_TYPE
from .errors import NameCollision, PersistenceFailure
from .utils import is_valid_index_name

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


class ArtifactStorage(ABC):
    """
    Abstract artifact store.

    Implementations must be safe to call from several worker threads at once.
    """

    @abstractmethod
    def write(self, name: str, data: bytes) -> None:
        """
        Persist artifact bytes under `name`.

        Raises:
            NameCollision: an artifact with this name already exists
            PersistenceFailure: the write failed; nothing is visible under `name`
        """
        pass

    @abstractmethod
    def read(self, name: str) -> bytes:
        """
        Raises:
            PersistenceFailure: artifact missing or unreadable
        """
        pass

    @abstractmethod
    def exists(self, name: str) -> bool:
        pass

    @abstractmethod
    def list_names(self) -> List[str]:
        """Names of all stored artifacts, sorted"""
        pass

    def iter_chunks(self, name: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        """Artifact bytes as a sequence of chunks (for streaming responses)"""
        data = self.read(name)
        return (data[i:i + chunk_size] for i in range(0, len(data), chunk_size))

    @staticmethod
    def _check_name(name: str) -> None:
        if not is_valid_index_name(name):
            raise PersistenceFailure(f"Invalid artifact name: {name!r}", name=name)


class LocalArtifactStorage(ArtifactStorage):
    """Artifacts as `{name}.json` files in a local directory"""

    def __init__(self, root_dir: str = "index_storage"):
        self.root = Path(root_dir)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, name: str) -> Path:
        self._check_name(name)
        return self.root / f"{name}{ARTIFACT_EXTENSION}"

    def write(self, name: str, data: bytes) -> None:
        path = self._path(name)
        fd, tmp_path = tempfile.mkstemp(dir=self.root, prefix=f".{name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            # link() is atomic and refuses to replace an existing file
            os.link(tmp_path, path)
        except FileExistsError:
            raise NameCollision(f"Artifact '{name}' already exists")
        except OSError as e:
            logger.error(f"Failed to write artifact {path}: {e}")
            raise PersistenceFailure(f"Failed to write artifact '{name}': {e}", name=name)
        finally:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass

        logger.debug(f"Wrote artifact {path} ({len(data)} bytes)")

    def read(self, name: str) -> bytes:
        path = self._path(name)
        try:
            return path.read_bytes()
        except OSError as e:
            raise PersistenceFailure(f"Failed to read artifact '{name}': {e}", name=name)

    def exists(self, name: str) -> bool:
        return self._path(name).is_file()

    def list_names(self) -> List[str]:
        return sorted(
            p.stem for p in self.root.glob(f"*{ARTIFACT_EXTENSION}")
            if p.is_file() and is_valid_index_name(p.stem)
        )

    def iter_chunks(self, name: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        path = self._path(name)
        # Open eagerly so a missing file fails before the response starts
        try:
            f = open(path, "rb")
        except OSError as e:
            raise PersistenceFailure(f"Failed to open artifact '{name}': {e}", name=name)

        def _stream() -> Iterator[bytes]:
            with f:
                while True:
                    chunk = f.read(chunk_size)
                    if not chunk:
                        break
                    yield chunk

        return _stream()

    def __repr__(self) -> str:
        return f"LocalArtifactStorage(root={str(self.root)!r})"


class GCSArtifactStorage(ArtifactStorage):
    """Artifacts as blobs in a Google Cloud Storage bucket"""

    def __init__(self, bucket_name: str, prefix: str = "indexes"):
        """
        Args:
            bucket_name: GCS bucket name (same region as the service)
            prefix: Object name prefix for artifacts
        """
        self.client = storage.Client()
        self.bucket = self.client.bucket(bucket_name)
        self.bucket_name = bucket_name
        self.prefix = prefix.strip("/")

    def _blob_name(self, name: str) -> str:
        self._check_name(name)
        if self.prefix:
            return f"{self.prefix}/{name}{ARTIFACT_EXTENSION}"
        return f"{name}{ARTIFACT_EXTENSION}"

    def write(self, name: str, data: bytes) -> None:
        blob = self.bucket.blob(self._blob_name(name))
        try:
            # Generation 0 precondition: only succeeds if the object does not exist
            blob.upload_from_string(data, content_type=ARTIFACT_MEDIA_TYPE, if_generation_match=0)
        except gcs_exceptions.PreconditionFailed:
            raise NameCollision(f"Artifact '{name}' already exists")
        except gcs_exceptions.GoogleAPIError as e:
            logger.error(f"Failed to upload artifact gs://{self.bucket_name}/{blob.name}: {e}")
            raise PersistenceFailure(f"Failed to write artifact '{name}': {e}", name=name)

        logger.debug(f"Uploaded artifact gs://{self.bucket_name}/{blob.name} ({len(data)} bytes)")

    def read(self, name: str) -> bytes:
        blob = self.bucket.blob(self._blob_name(name))
        try:
            return blob.download_as_bytes()
        except gcs_exceptions.GoogleAPIError as e:
            raise PersistenceFailure(f"Failed to read artifact '{name}': {e}", name=name)

    def exists(self, name: str) -> bool:
        try:
            return self.bucket.blob(self._blob_name(name)).exists()
        except gcs_exceptions.GoogleAPIError as e:
            raise PersistenceFailure(f"Failed to check artifact '{name}': {e}", name=name)

    def list_names(self) -> List[str]:
        list_prefix = f"{self.prefix}/" if self.prefix else ""
        names = []
        for blob in self.client.list_blobs(self.bucket_name, prefix=list_prefix):
            relative = blob.name[len(list_prefix):]
            if "/" in relative or not relative.endswith(ARTIFACT_EXTENSION):
                continue
            name = relative[:-len(ARTIFACT_EXTENSION)]
            if is_valid_index_name(name):
                names.append(name)
        return sorted(names)

    def __repr__(self) -> str:
        return f"GCSArtifactStorage(bucket={self.bucket_name!r}, prefix={self.prefix!r})"


def create_storage(settings) -> ArtifactStorage:
    """Create the storage backend selected by settings.storage_backend"""
    backend = settings.storage_backend
    if backend == "local":
        logger.info(f"Using local artifact storage: {Path(settings.storage_dir).resolve()}")
        return LocalArtifactStorage(settings.storage_dir)
    if backend == "gcs":
        logger.info(f"Using GCS artifact storage: gs://{settings.gcs_bucket}/{settings.gcs_prefix}")
        return GCSArtifactStorage(settings.gcs_bucket, prefix=settings.gcs_prefix)
    raise ValueError(f"Unknown storage backend: {backend}. Valid options: local, gcs")
