"""
Keyword Search Server - FastAPI application

Lexical (BM25) retrieval service for RAG pipelines:
- POST /v1/index/create              build a named index from files or JSON chunks
- POST /v1/search                    top-k BM25 search against one index
- GET  /v1/index/download/{name}     the index artifact, byte-for-byte

Architecture:
- One IndexRegistry per process, created in the lifespan handler and shared
  through app.state (no module-level globals)
- Index builds run on a bounded worker pool, searches on the default thread
  pool, so the event loop only does I/O
- Indexes are immutable after publication; reads never lock

Run with `keyword-search serve`, or `uvicorn --factory keyword_search.main:create_app`
(settings from environment).
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field, ValidationError
from starlette.datastructures import UploadFile

from . import __version__
from .artifact import ARTIFACT_EXTENSION, ARTIFACT_MEDIA_TYPE
from .bm25.scorer import BM25Scorer
from .config import Settings, load_environment
from .errors import (
    EmptyIndex,
    IndexAlreadyExists,
    IndexNotFound,
    InvalidQuery,
    KeywordSearchError,
    PersistenceFailure,
    ResourceExhausted,
)
from .file_validator import FileValidator
from .indexing import BuildWorkerPool, IndexingReport, IndexingService
from .ingestion import ChunkBatch, ChunkInput, FileBatch, IndexingInput, UploadedFile
from .registry import IndexRegistry
from .search import Query, QueryEngine
from .storage import ArtifactStorage, create_storage

logger = logging.getLogger(__name__)

APP_VERSION = __version__

# Most specific class wins (checked along the exception's MRO)
ERROR_STATUS = {
    IndexNotFound: status.HTTP_404_NOT_FOUND,
    InvalidQuery: status.HTTP_400_BAD_REQUEST,
    IndexAlreadyExists: status.HTTP_409_CONFLICT,
    ResourceExhausted: status.HTTP_503_SERVICE_UNAVAILABLE,
    PersistenceFailure: status.HTTP_500_INTERNAL_SERVER_ERROR,
    EmptyIndex: status.HTTP_400_BAD_REQUEST,
}


# Request/Response models
class DocumentInput(BaseModel):
    content: str = Field(..., description="Chunk text to index")
    title: Optional[str] = Field(None, description="Chunk title, returned with search hits")


class IndexRequest(BaseModel):
    documents: List[DocumentInput] = Field(..., description="Pre-chunked documents")
    name: Optional[str] = Field(
        None,
        description="Index name (letters, digits, '.', '_', '-'). Generated when omitted.",
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "documents": [
                    {"title": "paris.md", "content": "Paris is the capital of France."},
                    {"title": "rome.md", "content": "Rome is the capital of Italy."},
                ]
            }
        }
    }


class DocumentResult(BaseModel):
    filename: str
    status: str = Field(..., description="'indexed' or 'error'")
    error: Optional[str] = None


class IndexResponse(BaseModel):
    results: List[DocumentResult]
    index_name: Optional[str] = None
    download_url: Optional[str] = None


class SearchRequest(BaseModel):
    query: str = Field(..., description="Query text")
    top_k: Optional[int] = Field(None, description="Number of hits (default from server config)")
    index: str = Field(..., description="Index name returned by /v1/index/create")


class SearchHit(BaseModel):
    title: str
    content: str
    score: float


class SearchResponse(BaseModel):
    hits: List[SearchHit]


class HealthResponse(BaseModel):
    status: str
    version: str
    started_at: str
    uptime_seconds: float
    indexes: int
    builds_in_flight: int


@dataclass
class AppServices:
    """Everything request handlers need, created once per application"""
    settings: Settings
    storage: ArtifactStorage
    registry: IndexRegistry
    pool: BuildWorkerPool
    indexing: IndexingService
    engine: QueryEngine
    started_at: datetime


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def _report_response(report: IndexingReport, settings: Settings) -> IndexResponse:
    return IndexResponse(
        results=[
            DocumentResult(filename=r.filename, status=r.status, error=r.error)
            for r in report.results
        ],
        index_name=report.index_name,
        download_url=settings.download_url(report.index_name) if report.index_name else None,
    )


async def _read_multipart(request: Request) -> Tuple[IndexingInput, Optional[str]]:
    """Every file part becomes one document; an optional `name` text field names the index"""
    form = await request.form()
    files = []
    name_hint = None
    try:
        for field_name, value in form.multi_items():
            if isinstance(value, UploadFile):
                content = await value.read()
                logger.debug(f"Received file part '{field_name}': {value.filename} ({len(content)} bytes)")
                files.append(UploadedFile(filename=value.filename or "", content=content))
            elif field_name == "name" and value:
                name_hint = value
    finally:
        await form.close()
    return FileBatch(files=files), name_hint


async def _read_json(request: Request) -> Tuple[IndexingInput, Optional[str]]:
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail=f"Failed to parse JSON request: {e}",
        )
    try:
        body = IndexRequest.model_validate(payload)
    except ValidationError as e:
        raise RequestValidationError(e.errors())

    chunks = [ChunkInput(content=doc.content, title=doc.title) for doc in body.documents]
    # An empty name means "generate one", same as a missing field
    return ChunkBatch(chunks=chunks), body.name or None


def create_app(settings: Optional[Settings] = None, storage: Optional[ArtifactStorage] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Service settings (default: from environment)
        storage: Artifact storage override (default: from settings)
    """
    if settings is None:
        load_environment()
        settings = Settings.from_env()
    settings.validate()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize and cleanup resources"""
        artifact_storage = storage or create_storage(settings)
        registry = IndexRegistry(artifact_storage)
        if settings.reload_on_startup:
            await asyncio.to_thread(registry.load_persisted)

        pool = BuildWorkerPool(
            max_workers=settings.build_workers,
            max_pending=settings.max_pending_builds,
        )
        app.state.services = AppServices(
            settings=settings,
            storage=artifact_storage,
            registry=registry,
            pool=pool,
            indexing=IndexingService(
                registry,
                validator=FileValidator(max_file_size=settings.max_file_size),
                pool=pool,
            ),
            engine=QueryEngine(registry, BM25Scorer(k1=settings.bm25_k1, b=settings.bm25_b)),
            started_at=datetime.now(timezone.utc),
        )
        logger.info(
            f"Keyword search server ready: {len(registry)} indexes, "
            f"download prefix {settings.resolve_download_url_prefix()}"
        )

        yield

        logger.info("Shutting down...")
        await asyncio.to_thread(pool.shutdown)

    app = FastAPI(
        title="Keyword Search API",
        description="BM25 keyword search over uploaded documents",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Downloads are fetched cross-origin by browser clients
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(EmptyIndex)
    async def empty_index_handler(request: Request, exc: EmptyIndex):
        """All items failed: still report why, per item"""
        body = {"error": exc.kind, "detail": exc.message}
        if exc.report is not None:
            body.update(_report_response(exc.report, settings).model_dump())
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body)

    @app.exception_handler(KeywordSearchError)
    async def service_error_handler(request: Request, exc: KeywordSearchError):
        status_code = next(
            (ERROR_STATUS[cls] for cls in type(exc).__mro__ if cls in ERROR_STATUS),
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected ({status_code}): {exc}")
        return JSONResponse(
            status_code=status_code,
            content={"error": exc.kind, "detail": exc.message},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler"""
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "detail": str(exc),
            },
        )

    # Routes
    @app.get("/", response_model=dict)
    async def root():
        """Root endpoint"""
        return {
            "service": "Keyword Search API",
            "version": APP_VERSION,
            "status": "running",
            "docs": "/docs",
        }

    @app.get("/health", response_model=HealthResponse)
    async def health(services: AppServices = Depends(get_services)):
        """Liveness/readiness probe"""
        now = datetime.now(timezone.utc)
        return HealthResponse(
            status="healthy",
            version=APP_VERSION,
            started_at=services.started_at.isoformat(),
            uptime_seconds=round((now - services.started_at).total_seconds(), 2),
            indexes=len(services.registry),
            builds_in_flight=services.pool.in_flight,
        )

    @app.post("/v1/index/create", response_model=IndexResponse)
    async def create_index(request: Request, services: AppServices = Depends(get_services)):
        """
        Create an index from uploaded files or pre-chunked JSON.

        multipart/form-data:
            one or more file parts (.txt, .md); optional text field `name`

        application/json:
            {"documents": [{"content": "...", "title": "..."}], "name": "optional"}

        Each item is validated independently. The response lists one result per
        item; the index is published if at least one item was indexed. If every
        item fails, nothing is published and the response is 400.
        """
        content_type = request.headers.get("content-type", "")
        logger.info(f"Received index creation request ({content_type or 'no content type'})")

        if content_type.startswith("multipart/form-data"):
            batch, name_hint = await _read_multipart(request)
        elif content_type.startswith("application/json"):
            batch, name_hint = await _read_json(request)
        else:
            raise HTTPException(
                status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
                detail="Unsupported content type. Use multipart/form-data or application/json",
            )

        report = await services.indexing.submit(batch, name_hint)
        response = _report_response(report, services.settings)

        logger.info(
            f"Index {report.index_name} created: {report.indexed_count} indexed, "
            f"{report.failed_count} failed"
        )
        return response

    @app.post("/v1/search", response_model=SearchResponse)
    async def search(payload: SearchRequest, services: AppServices = Depends(get_services)):
        """Top-k BM25 search. Hits are ordered by descending score."""
        settings = services.settings
        top_k = payload.top_k if payload.top_k is not None else settings.default_top_k
        top_k = min(top_k, settings.max_top_k)

        logger.info(f"Received search request: index={payload.index}, top_k={top_k}")
        query = Query(text=payload.query, top_k=top_k, index_name=payload.index)
        hits = await asyncio.to_thread(services.engine.search, query)

        logger.info(f"Search completed: {len(hits)} hits")
        return SearchResponse(
            hits=[SearchHit(title=h.title, content=h.content, score=h.score) for h in hits]
        )

    @app.get("/v1/index/download/{index_name}")
    async def download_index(index_name: str, services: AppServices = Depends(get_services)):
        """Stream the artifact written when the index was created"""
        logger.info(f"Received index download request: {index_name}")

        entry = services.registry.get_entry(index_name)
        if entry is None:
            raise IndexNotFound(index_name)

        chunks = await asyncio.to_thread(services.registry.open_download, index_name)
        if chunks is None:
            raise IndexNotFound(index_name)

        filename = f"{index_name}{ARTIFACT_EXTENSION}"
        return StreamingResponse(
            chunks,
            media_type=ARTIFACT_MEDIA_TYPE,
            headers={
                "Content-Disposition": f'attachment; filename="{filename}"',
                "Content-Length": str(entry.artifact_size),
                "ETag": f'"{entry.artifact_sha256}"',
            },
        )

    return app
