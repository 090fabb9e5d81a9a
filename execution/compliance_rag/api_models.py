"""
Pydantic models for the Compliance RAG FastAPI backend.

JSON field names are camelCase; Python attributes stay snake_case.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serializing to and accepting camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QueryRequest(CamelModel):
    """Request body for the compliance query endpoint."""
    query: str = Field(..., min_length=1, max_length=2000)
    # None means the configured default_top_k; the upper bound is max_top_k
    max_results: Optional[int] = Field(default=None, ge=1)

    @field_validator("query")
    @classmethod
    def query_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Query cannot be empty")
        return value


class QueryResponse(CamelModel):
    """Response body for the compliance query endpoint."""
    answer: str
    referenced_clauses: list[str]
    confidence: Optional[float] = None
    mode: str
    status: str = "success"


class ChatRequest(CamelModel):
    """Request body for the chat endpoint."""
    message: str = Field(..., min_length=1, max_length=2000)

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Message cannot be empty")
        return value


class ChatResponse(CamelModel):
    """Response body for the chat endpoint."""
    response: str
    status: str = "success"
    model: str


class UploadResponse(CamelModel):
    """Response body for document upload."""
    message: str
    document_id: int
    document_name: str
    chunks_created: int
    failed_chunks: int
    status: str = "success"


class StatsResponse(CamelModel):
    """Index size snapshot."""
    total_chunks: int
    total_documents: int
    average_chunks_per_document: Optional[float] = None


class HealthResponse(CamelModel):
    """Response body for health check."""
    status: str
    service: str
    documents_processed: int
    chunks_stored: int
    embedding_mode: str
    generation_mode: str


class DeleteResponse(CamelModel):
    """Response body for removal endpoints."""
    message: str
    status: str = "success"
    document_id: Optional[int] = None
    chunks_removed: int = 0


class ErrorResponse(CamelModel):
    """Error body returned for 4xx/5xx responses."""
    status: str = "error"
    message: str
