"""
Index creation service and build worker pool.

Index builds are CPU-bound (tokenizing + stemming every document), so they run
on a small thread pool instead of the event loop. The pool admits a bounded
number of jobs (running + queued); past that, new requests fail fast with
ResourceExhausted instead of piling up uploads in memory.

Per-item failures (bad file type, empty text, ...) are recorded in the report
and never abort the batch. Only an all-failed batch (EmptyIndex) or a storage
failure aborts the whole request.
"""

import asyncio
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional, TypeVar

from .bm25.document_store import DocumentStore
from .bm25.index_builder import Index
from .bm25.tokenizer import DEFAULT_TOKENIZER, Tokenizer
from .errors import EmptyDocument, EmptyIndex, IndexAlreadyExists, InvalidQuery, ResourceExhausted
from .file_validator import FileValidator
from .ingestion import IndexingInput, normalize_input
from .registry import IndexRegistry
from .utils import is_valid_index_name

logger = logging.getLogger(__name__)

STATUS_INDEXED = "indexed"
STATUS_ERROR = "error"

T = TypeVar("T")


@dataclass(frozen=True)
class ItemResult:
    filename: str
    status: str
    error: Optional[str] = None


@dataclass
class IndexingReport:
    """Outcome of one create request"""
    results: List[ItemResult] = field(default_factory=list)
    index_name: Optional[str] = None
    index: Optional[Index] = None

    @property
    def indexed_count(self) -> int:
        return sum(1 for r in self.results if r.status == STATUS_INDEXED)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if r.status == STATUS_ERROR)


class BuildWorkerPool:
    """
    Bounded thread pool for index builds.

    Args:
        max_workers: Builds running in parallel
        max_pending: Builds admitted at once (running + waiting for a worker)
    """

    def __init__(self, max_workers: int = 2, max_pending: int = 8):
        if max_workers < 1 or max_pending < 1:
            raise ValueError("max_workers and max_pending must be >= 1")
        self.max_workers = max_workers
        self.max_pending = max_pending
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="index-build")
        self._in_flight = 0
        self._lock = threading.Lock()

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def _acquire(self) -> None:
        with self._lock:
            if self._in_flight >= self.max_pending:
                raise ResourceExhausted(
                    f"Too many index builds in progress (limit {self.max_pending}), retry later"
                )
            self._in_flight += 1

    def _release(self, _future: Optional[Future] = None) -> None:
        with self._lock:
            self._in_flight -= 1

    async def submit(self, fn: Callable[..., T], *args) -> T:
        """
        Run fn(*args) on the pool and await its result.

        The slot is released when the job itself finishes. If the awaiting
        request is cancelled, a job that already started runs to completion
        on its worker; a job still queued is dropped.

        Raises:
            ResourceExhausted: max_pending jobs already admitted
        """
        self._acquire()
        try:
            future = self._executor.submit(fn, *args)
        except BaseException:
            self._release()
            raise
        future.add_done_callback(self._release)
        return await asyncio.wrap_future(future)

    def shutdown(self, wait: bool = True) -> None:
        logger.info(f"Shutting down build pool ({self._in_flight} builds in flight)")
        self._executor.shutdown(wait=wait)


class IndexingService:
    """
    Turns an IndexingInput into a published index.

    Args:
        registry: Where finished indexes are published
        validator: Upload validator (size, extension, encoding)
        tokenizer: Tokenizer for new indexes
        pool: Worker pool for submit(); index_batch() works without one
    """

    def __init__(
        self,
        registry: IndexRegistry,
        validator: Optional[FileValidator] = None,
        tokenizer: Optional[Tokenizer] = None,
        pool: Optional[BuildWorkerPool] = None,
    ):
        self.registry = registry
        self.validator = validator or FileValidator()
        self.tokenizer = tokenizer or DEFAULT_TOKENIZER
        self.pool = pool

    def _check_name_hint(self, name_hint: Optional[str]) -> None:
        # Cheap early rejection; registry.create re-checks under its lock
        if name_hint is None:
            return
        if not is_valid_index_name(name_hint):
            raise InvalidQuery(f"Invalid index name {name_hint!r}")
        if name_hint in self.registry:
            raise IndexAlreadyExists(name_hint)

    def index_batch(self, batch: IndexingInput, name_hint: Optional[str] = None) -> IndexingReport:
        """
        Validate, tokenize, build and publish (blocking).

        Returns:
            Report with one result per input item, in input order

        Raises:
            EmptyIndex: no item was usable (report attached as `.report`)
            InvalidQuery / IndexAlreadyExists: bad or taken name_hint
            PersistenceFailure: artifact write failed
        """
        self._check_name_hint(name_hint)

        items = normalize_input(batch, self.validator)
        store = DocumentStore(self.tokenizer)
        report = IndexingReport()

        for position, item in enumerate(items, start=1):
            error = item.error
            if error is None:
                try:
                    store.add(item.title, item.content)
                except EmptyDocument as e:
                    error = e

            if error is None:
                report.results.append(ItemResult(filename=item.label, status=STATUS_INDEXED))
            else:
                logger.warning(f"Item {position}/{len(items)} '{item.label}' rejected: {error}")
                report.results.append(
                    ItemResult(filename=item.label, status=STATUS_ERROR, error=str(error))
                )

        logger.info(
            f"Batch processed: {report.indexed_count} indexed, {report.failed_count} failed"
        )

        if len(store) == 0:
            raise EmptyIndex("No documents could be indexed", report=report)

        report.index_name, report.index = self.registry.create(name_hint, store)
        return report

    async def submit(self, batch: IndexingInput, name_hint: Optional[str] = None) -> IndexingReport:
        """index_batch() on the build pool, without blocking the event loop"""
        if self.pool is None:
            return await asyncio.to_thread(self.index_batch, batch, name_hint)
        return await self.pool.submit(self.index_batch, batch, name_hint)
