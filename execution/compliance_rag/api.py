"""
FastAPI Backend for the Compliance RAG Service

REST endpoints for policy document upload, grounded compliance queries,
general chat, index statistics and health.

Provider outages never produce an error status: queries degrade to the
fallback answer and still return 200.

Run with: uvicorn execution.compliance_rag.api:app --host 0.0.0.0 --port 8000
"""

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, UploadFile, File, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from dotenv import load_dotenv

from .api_models import (
    QueryRequest, QueryResponse,
    ChatRequest, ChatResponse,
    UploadResponse, StatsResponse, HealthResponse, DeleteResponse,
    ErrorResponse,
)
from .chunker import PolicyChunker, ChunkConfig
from .citation import ReferenceExtractor
from .config import RAGConfig
from .document_parser import DocumentTextExtractor, ExtractionEmpty, UnsupportedDocument
from .embeddings import ResilientEmbeddingService, get_embedding_service
from .generation import ResilientGenerationService, get_generation_service
from .metrics import get_metrics_collector
from .pipeline import IngestPipeline, QueryPipeline
from .vector_store import InMemoryVectorStore, DocumentIdAllocator

# Load environment variables
load_dotenv()
logger = logging.getLogger(__name__)

SERVICE_NAME = "Legal Compliance Checker"
API_PREFIX = "/api/compliance"


# =============================================================================
# Service Container - one index and one set of providers per process
# =============================================================================

class ServiceContainer:
    """
    Lazily builds and holds the process-wide services.

    Tests construct their own container with stub providers and swap it in
    for the module-level instance.
    """

    def __init__(
        self,
        config: Optional[RAGConfig] = None,
        embeddings: Optional[ResilientEmbeddingService] = None,
        generator: Optional[ResilientGenerationService] = None,
    ):
        self._config = config
        self._embeddings = embeddings
        self._generator = generator
        self._store = None
        self._ingest = None
        self._query = None
        self._chunker = None
        self._extractor = None
        self._references = ReferenceExtractor()
        self._document_ids = DocumentIdAllocator()

    @property
    def config(self) -> RAGConfig:
        if self._config is None:
            self._config = RAGConfig.from_env()
        return self._config

    @property
    def embeddings(self) -> ResilientEmbeddingService:
        if self._embeddings is None:
            self._embeddings = get_embedding_service(self.config)
        return self._embeddings

    @property
    def generator(self) -> ResilientGenerationService:
        if self._generator is None:
            self._generator = get_generation_service(self.config)
        return self._generator

    @property
    def store(self) -> InMemoryVectorStore:
        if self._store is None:
            self._store = InMemoryVectorStore(dimensions=self.embeddings.dimensions)
        return self._store

    @property
    def chunker(self) -> PolicyChunker:
        if self._chunker is None:
            self._chunker = PolicyChunker(ChunkConfig(
                chunk_size_tokens=self.config.chunk_size_tokens,
                overlap_tokens=self.config.chunk_overlap_tokens,
                chars_per_token=self.config.chars_per_token,
            ))
        return self._chunker

    @property
    def extractor(self) -> DocumentTextExtractor:
        if self._extractor is None:
            self._extractor = DocumentTextExtractor(max_upload_mb=self.config.max_upload_mb)
        return self._extractor

    @property
    def ingest(self) -> IngestPipeline:
        if self._ingest is None:
            self._ingest = IngestPipeline(
                self.store,
                self.embeddings,
                extractor=self._references,
                metrics=get_metrics_collector(),
                workers=self.config.ingest_workers,
            )
        return self._ingest

    @property
    def query(self) -> QueryPipeline:
        if self._query is None:
            self._query = QueryPipeline(
                self.store,
                self.embeddings,
                self.generator,
                extractor=self._references,
                metrics=get_metrics_collector(),
                default_top_k=self.config.default_top_k,
            )
        return self._query

    def next_document_id(self) -> int:
        return self._document_ids.next_id()


_container = ServiceContainer()


def _cors_origins() -> list[str]:
    try:
        return _container.config.cors_origins
    except ValueError as e:
        logger.error(f"Invalid configuration, CORS limited to no origins: {e}")
        return []


app = FastAPI(
    title="Compliance RAG API",
    description="Policy document question answering with clause references",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Error bodies
# =============================================================================

def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message).model_dump(by_alias=True),
    )


ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
        for err in errors
    ) or "Invalid request"
    logger.warning(f"Rejected request to {request.url.path}: {message}")
    return _error(400, message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error on {request.url.path}: {type(exc).__name__}: {exc}")
    return _error(500, "An unexpected error occurred")


# =============================================================================
# Endpoints
# =============================================================================

@app.post(f"{API_PREFIX}/upload", response_model=UploadResponse, responses=ERROR_RESPONSES)
def upload_document(file: UploadFile = File(...)):
    """Upload a PDF or DOCX policy document and index its chunks."""
    filename = file.filename
    logger.info(f"Received document upload request: {filename}")

    # One byte past the limit is enough for validation to reject it
    data = file.file.read(_container.extractor.max_upload_bytes + 1)
    try:
        text = _container.extractor.extract_text(filename, data)
    except (UnsupportedDocument, ExtractionEmpty) as e:
        logger.warning(f"Invalid upload {filename}: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    chunks = _container.chunker.chunk(text)
    if not chunks:
        logger.warning(f"No chunks created for file: {filename}")
        raise HTTPException(
            status_code=400,
            detail="Document could not be processed into searchable chunks",
        )

    document_id = _container.next_document_id()
    result = _container.ingest.ingest(document_id, filename, chunks)

    if result.total_failure:
        logger.error(f"All chunks failed to process for document: {filename}")
        raise HTTPException(status_code=500, detail="Failed to process document chunks")

    failed = len(result.failed_chunks)
    if failed:
        logger.warning(f"{failed} out of {len(chunks)} chunks failed to process for document: {filename}")

    message = f"Document uploaded and processed successfully. {result.success_count} chunks created."
    if failed:
        message += f" {failed} chunks failed to process."

    return UploadResponse(
        message=message,
        document_id=document_id,
        document_name=filename,
        chunks_created=result.success_count,
        failed_chunks=failed,
    )


@app.post(f"{API_PREFIX}/query", response_model=QueryResponse, responses=ERROR_RESPONSES)
def query_compliance(request: QueryRequest):
    """Answer a compliance question from the indexed documents."""
    logger.info(f"Received compliance query: {request.query[:200]}")

    max_top_k = _container.config.max_top_k
    if request.max_results is not None and request.max_results > max_top_k:
        raise HTTPException(
            status_code=400,
            detail=f"maxResults must not exceed {max_top_k}",
        )

    answer = _container.query.answer(request.query, request.max_results)

    return QueryResponse(
        answer=answer.text,
        referenced_clauses=answer.references,
        confidence=answer.confidence,
        mode=answer.mode.value,
    )


@app.post(f"{API_PREFIX}/chat", response_model=ChatResponse, responses=ERROR_RESPONSES)
def chat(request: ChatRequest):
    """Conversational endpoint; uses the top document chunk when there is one."""
    logger.info("Received chat request")

    answer = _container.query.answer(request.message, 1)

    return ChatResponse(
        response=answer.text,
        model=_container.generator.model,
    )


@app.get(
    f"{API_PREFIX}/stats",
    response_model=StatsResponse,
    response_model_exclude_none=True,
)
def get_stats():
    """Vector store statistics (for monitoring/debugging)."""
    stats = _container.store.stats()
    return StatsResponse(
        total_chunks=stats.total_chunks,
        total_documents=stats.total_documents,
        average_chunks_per_document=stats.average_chunks_per_document,
    )


@app.get(f"{API_PREFIX}/health", response_model=HealthResponse)
def health_check():
    """Health check endpoint."""
    stats = _container.store.stats()
    return HealthResponse(
        status="healthy",
        service=SERVICE_NAME,
        documents_processed=stats.total_documents,
        chunks_stored=stats.total_chunks,
        embedding_mode=_container.embeddings.mode,
        generation_mode=_container.generator.mode,
    )


@app.get(f"{API_PREFIX}/metrics")
def get_metrics():
    """Query, fallback and ingestion counters."""
    return get_metrics_collector().get_metrics_dict()


@app.delete(f"{API_PREFIX}/documents", response_model=DeleteResponse)
def clear_all_documents():
    """Clear all documents (for testing purposes)."""
    removed = _container.store.stats().total_chunks
    _container.store.clear()
    logger.info("Cleared all documents from vector store")
    return DeleteResponse(message="All documents cleared successfully", chunks_removed=removed)


@app.delete(
    f"{API_PREFIX}/documents/{{document_id}}",
    response_model=DeleteResponse,
    responses={404: {"model": ErrorResponse}},
)
def delete_document(document_id: int):
    """Remove one document's chunks from the index."""
    removed = _container.store.remove_by_document(document_id)
    if removed == 0:
        raise HTTPException(status_code=404, detail="Document not found")

    return DeleteResponse(
        message=f"Document {document_id} removed",
        document_id=document_id,
        chunks_removed=removed,
    )
