"""
Compliance RAG - Question Answering over Policy Documents

This module provides:
- Sentence-aware chunking with overlap
- Clause/section reference extraction
- Embeddings with a deterministic fallback when the provider is down
- An in-memory, thread-safe vector index
- Grounded answers that degrade to canned responses instead of failing
"""

from .chunker import PolicyChunker
from .citation import ReferenceExtractor
from .embeddings import ResilientEmbeddingService, get_embedding_service
from .generation import ResilientGenerationService, get_generation_service
from .vector_store import InMemoryVectorStore
from .pipeline import IngestPipeline, QueryPipeline

__all__ = [
    "PolicyChunker",
    "ReferenceExtractor",
    "ResilientEmbeddingService",
    "get_embedding_service",
    "ResilientGenerationService",
    "get_generation_service",
    "InMemoryVectorStore",
    "IngestPipeline",
    "QueryPipeline",
]

__version__ = "0.1.0"
