"""
In-Memory Vector Store

Process-lifetime index of embedded policy chunks with full-scan cosine
similarity search. Nothing is persisted: the index starts empty, grows
through ingestion, and shrinks only through explicit removal or clear.

Two mappings are kept in sync under one lock:
- chunks:      chunk_id -> StoredChunk
- by_document: document_id -> set of chunk_ids
"""

import itertools
import logging
import threading
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)


class DimensionMismatch(ValueError):
    """Two vectors that must share a dimension do not."""


def make_chunk_id(document_id: int, index: int) -> str:
    """Stable storage key for a chunk position within a document."""
    return f"doc_{document_id}_chunk_{index}"


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """
    Compute cosine similarity between two vectors.

    Returns 0.0 when either vector has zero norm. Raises DimensionMismatch
    instead of truncating when lengths differ.
    """
    if len(a) != len(b):
        raise DimensionMismatch(f"Vectors must be of same length ({len(a)} != {len(b)})")

    a_arr = np.asarray(a, dtype=float)
    b_arr = np.asarray(b, dtype=float)
    norm_a = np.linalg.norm(a_arr)
    norm_b = np.linalg.norm(b_arr)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = float(np.dot(a_arr, b_arr) / (norm_a * norm_b))
    # Rounding can push |similarity| a hair past 1
    return max(-1.0, min(1.0, similarity))


@dataclass
class StoredChunk:
    """An embedded chunk owned by the vector store."""
    chunk_id: str
    document_id: int
    text: str
    embedding: list[float]
    index: int
    references: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "chunk_id": self.chunk_id,
            "document_id": self.document_id,
            "text": self.text,
            "index": self.index,
            "references": self.references,
            "dimensions": len(self.embedding),
        }


@dataclass
class SearchResult:
    """A single search result with score."""
    chunk: StoredChunk
    score: float

    @property
    def chunk_id(self) -> str:
        return self.chunk.chunk_id

    @property
    def document_id(self) -> int:
        return self.chunk.document_id

    @property
    def text(self) -> str:
        return self.chunk.text

    @property
    def references(self) -> list[str]:
        return self.chunk.references

    def to_dict(self) -> dict:
        return {
            "chunk_id": self.chunk_id,
            "document_id": self.document_id,
            "text": self.text,
            "references": self.references,
            "score": self.score,
        }


@dataclass
class IndexStats:
    """Point-in-time snapshot of index size."""
    total_chunks: int
    total_documents: int
    average_chunks_per_document: Optional[float] = None

    def to_dict(self) -> dict:
        stats = {
            "totalChunks": self.total_chunks,
            "totalDocuments": self.total_documents,
        }
        if self.average_chunks_per_document is not None:
            stats["averageChunksPerDocument"] = self.average_chunks_per_document
        return stats


class DocumentIdAllocator:
    """Hands out process-unique, increasing document ids."""

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            return next(self._counter)


class InMemoryVectorStore:
    """
    Thread-safe in-memory vector store.

    Features:
    - Insert/overwrite by chunk id
    - Bulk removal by document id
    - Full-scan cosine similarity search
    - Optional fixed embedding dimension enforced on insert
    """

    def __init__(self, dimensions: Optional[int] = None):
        """
        Initialize an empty store.

        Args:
            dimensions: If set, inserts with any other embedding length are rejected
        """
        self._dimensions = dimensions
        self._chunks: dict[str, StoredChunk] = {}
        self._by_document: dict[int, set[str]] = {}
        self._lock = threading.RLock()

    @property
    def dimensions(self) -> Optional[int]:
        return self._dimensions

    def insert(self, chunk: StoredChunk) -> None:
        """
        Add or overwrite a chunk and register it under its document.

        Raises:
            DimensionMismatch: embedding length differs from the store's dimension
            ValueError: embedding is empty
        """
        if not chunk.embedding:
            raise ValueError(f"Chunk {chunk.chunk_id} has an empty embedding")
        if self._dimensions is not None and len(chunk.embedding) != self._dimensions:
            raise DimensionMismatch(
                f"Chunk {chunk.chunk_id} has {len(chunk.embedding)} dimensions, "
                f"store expects {self._dimensions}"
            )

        with self._lock:
            previous = self._chunks.get(chunk.chunk_id)
            if previous is not None and previous.document_id != chunk.document_id:
                self._unregister(previous.document_id, chunk.chunk_id)

            self._chunks[chunk.chunk_id] = chunk
            self._by_document.setdefault(chunk.document_id, set()).add(chunk.chunk_id)

    def remove_by_document(self, document_id: int) -> int:
        """
        Remove every chunk registered under a document.

        Returns:
            Number of chunks removed (0 for an unknown document)
        """
        with self._lock:
            chunk_ids = self._by_document.pop(document_id, None)
            if not chunk_ids:
                return 0
            for chunk_id in chunk_ids:
                self._chunks.pop(chunk_id, None)

        logger.info(f"Removed {len(chunk_ids)} chunks for document {document_id}")
        return len(chunk_ids)

    def retrieve(self, query_vector: list[float], top_k: int = 5) -> list[SearchResult]:
        """
        Return the top_k chunks most similar to the query vector.

        Args:
            query_vector: Embedded query
            top_k: Maximum number of results

        Returns:
            SearchResults sorted by descending similarity (ties keep store order)

        Raises:
            DimensionMismatch: query length differs from a stored embedding
        """
        if top_k <= 0:
            return []

        with self._lock:
            snapshot = list(self._chunks.values())

        if not snapshot:
            logger.warning("Vector store is empty. No chunks to search.")
            return []

        scored = [
            SearchResult(chunk=chunk, score=cosine_similarity(query_vector, chunk.embedding))
            for chunk in snapshot
        ]
        scored.sort(key=lambda r: r.score, reverse=True)
        top = scored[:top_k]

        logger.debug(
            f"Retrieved {len(top)} similar chunks with similarities: "
            f"{', '.join(f'{r.score:.3f}' for r in top)}"
        )
        return top

    def get(self, chunk_id: str) -> Optional[StoredChunk]:
        with self._lock:
            return self._chunks.get(chunk_id)

    def get_document_chunks(self, document_id: int) -> list[StoredChunk]:
        """Chunks of one document ordered by position."""
        with self._lock:
            chunk_ids = self._by_document.get(document_id, set())
            chunks = [self._chunks[cid] for cid in chunk_ids if cid in self._chunks]
        return sorted(chunks, key=lambda c: c.index)

    def has_document(self, document_id: int) -> bool:
        with self._lock:
            return document_id in self._by_document

    def is_empty(self) -> bool:
        with self._lock:
            return not self._chunks

    def stats(self) -> IndexStats:
        """Consistent snapshot of chunk and document counts."""
        with self._lock:
            total_chunks = len(self._chunks)
            sizes = [len(ids) for ids in self._by_document.values()]

        average = sum(sizes) / len(sizes) if sizes else None
        return IndexStats(
            total_chunks=total_chunks,
            total_documents=len(sizes),
            average_chunks_per_document=average,
        )

    def clear(self) -> None:
        """Drop every chunk and document registration."""
        with self._lock:
            self._chunks.clear()
            self._by_document.clear()
        logger.info("Cleared all vectors from store")

    def _unregister(self, document_id: int, chunk_id: str) -> None:
        ids = self._by_document.get(document_id)
        if ids is None:
            return
        ids.discard(chunk_id)
        if not ids:
            del self._by_document[document_id]
