"""
Ingest and Query Pipelines

IngestPipeline: chunk texts -> embeddings + references -> vector store
QueryPipeline:  query -> retrieval -> grounded (compliance) or open (general) answer

Provider failures never escape either pipeline. Embedding outages are
absorbed by the resilient embedding service; generation outages become
the canned fallback message. Per-chunk indexing errors are collected in
the IngestResult instead of aborting the batch. Only structural misuse
(blank query, non-positive top_k, dimension mismatch) raises.
"""

import time
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional

from .citation import ReferenceExtractor
from .embeddings import EmbeddingRole, ResilientEmbeddingService
from .generation import GenerationMode, ResilientGenerationService
from .metrics import MetricsCollector, get_metrics_collector
from .vector_store import InMemoryVectorStore, StoredChunk, make_chunk_id

logger = logging.getLogger(__name__)


class ChunkIndexingFailed(Exception):
    """One chunk could not be embedded or stored."""

    def __init__(self, index: int, text: str, reason: str):
        super().__init__(f"Chunk {index} failed: {reason}")
        self.index = index
        self.text = text
        self.reason = reason


@dataclass
class IngestResult:
    """Outcome of ingesting one document's chunks."""
    document_id: int
    document_name: str
    total_chunks: int
    stored_chunk_ids: list[str] = field(default_factory=list)
    errors: list[ChunkIndexingFailed] = field(default_factory=list)
    embedding_fallbacks: int = 0

    @property
    def failed_chunks(self) -> list[str]:
        """Texts of the chunks that were not indexed, in input order."""
        return [e.text for e in self.errors]

    @property
    def success_count(self) -> int:
        return len(self.stored_chunk_ids)

    @property
    def total_failure(self) -> bool:
        return self.success_count == 0


@dataclass
class QueryAnswer:
    """Answer plus the citations and signals the caller reports."""
    text: str
    references: list[str]
    mode: GenerationMode
    confidence: Optional[float] = None
    results_count: int = 0
    embedding_fallback: bool = False
    generation_fallback: bool = False


class IngestPipeline:
    """
    Embeds and indexes the chunks of one document.

    Chunks are processed independently on a small thread pool; the store
    is safe for concurrent inserts. The set of stored chunks depends only
    on the inputs, not on completion order.
    """

    def __init__(
        self,
        store: InMemoryVectorStore,
        embeddings: ResilientEmbeddingService,
        extractor: Optional[ReferenceExtractor] = None,
        metrics: Optional[MetricsCollector] = None,
        workers: int = 4,
    ):
        self.store = store
        self.embeddings = embeddings
        self.extractor = extractor or ReferenceExtractor()
        self.metrics = metrics or get_metrics_collector()
        self.workers = max(1, workers)

    def ingest(self, document_id: int, document_name: str, chunks: list[str]) -> IngestResult:
        """
        Embed, annotate and store every chunk of a document.

        Args:
            document_id: Unique id for the document
            document_name: Original filename (for logging)
            chunks: Chunk texts in document order

        Returns:
            IngestResult listing stored chunk ids and per-chunk failures
        """
        start = time.time()
        result = IngestResult(
            document_id=document_id,
            document_name=document_name,
            total_chunks=len(chunks),
        )
        if not chunks:
            logger.warning(f"No chunks to ingest for document {document_id} ({document_name})")
            return result

        max_workers = min(self.workers, len(chunks))
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [
                executor.submit(self._index_chunk, document_id, i, text)
                for i, text in enumerate(chunks)
            ]

        # Futures are read in submission order so failures keep input order
        for i, future in enumerate(futures):
            try:
                chunk_id, used_fallback = future.result()
                result.stored_chunk_ids.append(chunk_id)
                if used_fallback:
                    result.embedding_fallbacks += 1
            except ChunkIndexingFailed as e:
                logger.error(f"Document {document_id}: {e}")
                result.errors.append(e)
            except Exception as e:
                logger.error(f"Document {document_id}: chunk {i} raised {type(e).__name__}: {e}")
                result.errors.append(ChunkIndexingFailed(i, chunks[i], f"{type(e).__name__}: {e}"))

        duration_ms = (time.time() - start) * 1000
        self.metrics.record_ingestion(
            document_id,
            chunks_stored=result.success_count,
            chunks_failed=len(result.errors),
            duration_ms=duration_ms,
            embedding_fallbacks=result.embedding_fallbacks,
        )

        if result.embedding_fallbacks:
            logger.warning(
                f"Document {document_id}: {result.embedding_fallbacks}/{len(chunks)} chunks "
                f"embedded with the fallback provider"
            )
        logger.info(
            f"Ingested '{document_name}' as document {document_id}: "
            f"{result.success_count} chunks stored, {len(result.errors)} failed "
            f"in {duration_ms:.0f}ms"
        )
        return result

    def _index_chunk(self, document_id: int, index: int, text: str) -> tuple[str, bool]:
        embedding = self.embeddings.embed(text, EmbeddingRole.DOCUMENT)
        if not embedding.ok:
            raise ChunkIndexingFailed(index, text, embedding.error or "empty embedding")

        chunk = StoredChunk(
            chunk_id=make_chunk_id(document_id, index),
            document_id=document_id,
            text=text,
            embedding=embedding.vector,
            index=index,
            references=self.extractor.extract(text),
        )
        self.store.insert(chunk)
        logger.debug(f"Stored {chunk.chunk_id} with references {chunk.references}")
        return chunk.chunk_id, embedding.fallback


class QueryPipeline:
    """
    Answers questions from the indexed policy documents.

    Retrieval hits -> compliance mode, grounded in the hits.
    No hits (or empty index) -> general mode, no context.
    """

    def __init__(
        self,
        store: InMemoryVectorStore,
        embeddings: ResilientEmbeddingService,
        generator: ResilientGenerationService,
        extractor: Optional[ReferenceExtractor] = None,
        metrics: Optional[MetricsCollector] = None,
        default_top_k: int = 5,
    ):
        self.store = store
        self.embeddings = embeddings
        self.generator = generator
        self.extractor = extractor or ReferenceExtractor()
        self.metrics = metrics or get_metrics_collector()
        self.default_top_k = default_top_k

    def answer(self, query: str, top_k: Optional[int] = None) -> QueryAnswer:
        """
        Answer a query.

        Args:
            query: Non-blank user question
            top_k: Number of chunks to retrieve (defaults to default_top_k)

        Returns:
            QueryAnswer; provider outages yield a fallback answer, not an error

        Raises:
            ValueError: blank query or non-positive top_k
        """
        if query is None or not query.strip():
            raise ValueError("Query must not be empty")
        top_k = self.default_top_k if top_k is None else top_k
        if top_k < 1:
            raise ValueError("top_k must be at least 1")

        with self.metrics.track_query(query) as tracker:
            answer = self._answer(query, top_k)
            tracker.set_outcome(
                mode=answer.mode.value,
                results_count=answer.results_count,
                embedding_fallback=answer.embedding_fallback,
                generation_fallback=answer.generation_fallback,
            )

        logger.info(
            f"Answered query '{query[:50]}' in {answer.mode.value} mode "
            f"({answer.results_count} chunks, {len(answer.references)} references)"
        )
        return answer

    def _answer(self, query: str, top_k: int) -> QueryAnswer:
        if self.store.is_empty():
            logger.info("Index is empty; answering in general mode")
            return self._general(query)

        embedding = self.embeddings.embed(query, EmbeddingRole.QUERY)
        results = self.store.retrieve(embedding.vector, top_k)
        if not results:
            return self._general(query, embedding_fallback=embedding.fallback)

        generation = self.generator.compose(
            query, [r.text for r in results], GenerationMode.COMPLIANCE
        )

        references = self.extractor.merge([r.references for r in results])
        if not references:
            references = self.extractor.extract(generation.text)

        # Fallback query vectors make similarity scores meaningless
        confidence = None if embedding.fallback else round(results[0].score, 4)

        return QueryAnswer(
            text=generation.text,
            references=references,
            mode=GenerationMode.COMPLIANCE,
            confidence=confidence,
            results_count=len(results),
            embedding_fallback=embedding.fallback,
            generation_fallback=generation.fallback,
        )

    def _general(self, query: str, embedding_fallback: bool = False) -> QueryAnswer:
        generation = self.generator.compose(query, [], GenerationMode.GENERAL)
        return QueryAnswer(
            text=generation.text,
            references=[],
            mode=GenerationMode.GENERAL,
            embedding_fallback=embedding_fallback,
            generation_fallback=generation.fallback,
        )


# CLI for testing
if __name__ == "__main__":
    import sys
    from dotenv import load_dotenv

    from .chunker import PolicyChunker
    from .config import RAGConfig
    from .embeddings import get_embedding_service
    from .generation import get_generation_service

    load_dotenv()
    logging.basicConfig(level=logging.INFO)

    if len(sys.argv) < 3:
        print("Usage: python -m execution.compliance_rag.pipeline <text_file> <question>")
        sys.exit(1)

    config = RAGConfig.from_env()
    embedding_service = get_embedding_service(config)
    vector_store = InMemoryVectorStore(dimensions=embedding_service.dimensions)

    with open(sys.argv[1], encoding="utf-8") as f:
        pieces = PolicyChunker().chunk(f.read())

    ingest = IngestPipeline(vector_store, embedding_service, workers=config.ingest_workers)
    ingest.ingest(1, sys.argv[1], pieces)

    querier = QueryPipeline(vector_store, embedding_service, get_generation_service(config))
    reply = querier.answer(" ".join(sys.argv[2:]))
    print(f"\nMode: {reply.mode.value}  Confidence: {reply.confidence}")
    print(f"References: {reply.references}")
    print(f"\n{reply.text}")
