"""
Tests for execution/compliance_rag/vector_store.py

Covers: cosine_similarity properties, chunk id format, DocumentIdAllocator,
        InMemoryVectorStore insert/overwrite, remove_by_document, retrieve
        ordering and limits, stats snapshots, clear, and concurrent access.
"""

import threading

import pytest


def _chunk(document_id, index, embedding, text=None, references=None):
    from execution.compliance_rag.vector_store import StoredChunk, make_chunk_id
    return StoredChunk(
        chunk_id=make_chunk_id(document_id, index),
        document_id=document_id,
        text=text or f"doc {document_id} chunk {index}",
        embedding=embedding,
        index=index,
        references=references or [],
    )


# ---------------------------------------------------------------------------
# Cosine similarity
# ---------------------------------------------------------------------------

class TestCosineSimilarity:

    def test_self_similarity_is_one(self):
        from execution.compliance_rag.vector_store import cosine_similarity
        assert cosine_similarity([0.3, -1.2, 4.0], [0.3, -1.2, 4.0]) == pytest.approx(1.0)

    def test_symmetric(self):
        from execution.compliance_rag.vector_store import cosine_similarity
        a, b = [1.0, 2.0, 3.0], [-2.0, 0.5, 1.0]
        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    def test_orthogonal_and_opposite(self):
        from execution.compliance_rag.vector_store import cosine_similarity
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
        assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(-1.0)

    def test_zero_vector_gives_zero(self):
        from execution.compliance_rag.vector_store import cosine_similarity
        assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0
        assert cosine_similarity([1.0, 2.0], [0.0, 0.0]) == 0.0

    def test_bounded(self):
        from execution.compliance_rag.embeddings import FallbackEmbeddingService
        from execution.compliance_rag.vector_store import cosine_similarity
        svc = FallbackEmbeddingService(dimensions=32)
        vectors = [svc.embed(f"text {i}") for i in range(10)]
        for a in vectors:
            for b in vectors:
                assert -1.0 <= cosine_similarity(a, b) <= 1.0

    def test_length_mismatch_raises(self):
        from execution.compliance_rag.vector_store import cosine_similarity, DimensionMismatch
        with pytest.raises(DimensionMismatch):
            cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])


# ---------------------------------------------------------------------------
# Identity helpers
# ---------------------------------------------------------------------------

class TestIdentity:

    def test_chunk_id_format(self):
        from execution.compliance_rag.vector_store import make_chunk_id
        assert make_chunk_id(42, 3) == "doc_42_chunk_3"

    def test_allocator_monotonic(self):
        from execution.compliance_rag.vector_store import DocumentIdAllocator
        allocator = DocumentIdAllocator()
        assert [allocator.next_id() for _ in range(3)] == [1, 2, 3]

    def test_allocator_unique_across_threads(self):
        from execution.compliance_rag.vector_store import DocumentIdAllocator
        allocator = DocumentIdAllocator(start=100)
        ids = []
        lock = threading.Lock()

        def take():
            for _ in range(50):
                value = allocator.next_id()
                with lock:
                    ids.append(value)

        threads = [threading.Thread(target=take) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(ids) == 400
        assert len(set(ids)) == 400
        assert min(ids) == 100


# ---------------------------------------------------------------------------
# Insert / remove
# ---------------------------------------------------------------------------

class TestInsertAndRemove:

    def test_insert_registers_document(self, vector_store):
        vector_store.insert(_chunk(1, 0, [1.0] * 8))
        assert vector_store.has_document(1)
        assert vector_store.get("doc_1_chunk_0").document_id == 1

    def test_insert_same_id_overwrites(self, vector_store):
        vector_store.insert(_chunk(1, 0, [1.0] * 8, text="old"))
        vector_store.insert(_chunk(1, 0, [2.0] * 8, text="new"))
        stats = vector_store.stats()
        assert stats.total_chunks == 1
        assert vector_store.get("doc_1_chunk_0").text == "new"

    def test_insert_wrong_dimension_raises(self, vector_store):
        from execution.compliance_rag.vector_store import DimensionMismatch
        with pytest.raises(DimensionMismatch):
            vector_store.insert(_chunk(1, 0, [1.0] * 3))
        assert vector_store.is_empty()

    def test_insert_empty_embedding_raises(self, vector_store):
        with pytest.raises(ValueError):
            vector_store.insert(_chunk(1, 0, []))
        assert not vector_store.has_document(1)

    def test_store_without_fixed_dimension_accepts_any_length(self):
        from execution.compliance_rag.vector_store import InMemoryVectorStore
        store = InMemoryVectorStore()
        store.insert(_chunk(1, 0, [1.0, 2.0]))
        assert store.dimensions is None
        assert store.stats().total_chunks == 1

    def test_remove_by_document(self, vector_store):
        for i in range(3):
            vector_store.insert(_chunk(1, i, [1.0] * 8))
        vector_store.insert(_chunk(2, 0, [1.0] * 8))

        assert vector_store.remove_by_document(1) == 3
        assert not vector_store.has_document(1)
        assert vector_store.stats().total_chunks == 1
        assert [c.document_id for c in vector_store.get_document_chunks(2)] == [2]

    def test_remove_unknown_document_is_noop(self, vector_store):
        vector_store.insert(_chunk(1, 0, [1.0] * 8))
        assert vector_store.remove_by_document(999) == 0
        assert vector_store.stats().total_chunks == 1

    def test_removed_document_never_retrieved(self, vector_store):
        query = [1.0] + [0.0] * 7
        vector_store.insert(_chunk(1, 0, query))
        vector_store.insert(_chunk(2, 0, [0.5] * 8))
        vector_store.remove_by_document(1)

        results = vector_store.retrieve(query, top_k=10)
        assert all(r.document_id != 1 for r in results)
        assert len(results) == 1

    def test_get_document_chunks_ordered_by_index(self, vector_store):
        for i in (2, 0, 1):
            vector_store.insert(_chunk(5, i, [1.0] * 8))
        assert [c.index for c in vector_store.get_document_chunks(5)] == [0, 1, 2]

    def test_clear(self, vector_store):
        vector_store.insert(_chunk(1, 0, [1.0] * 8))
        vector_store.insert(_chunk(2, 0, [1.0] * 8))
        vector_store.clear()
        assert vector_store.is_empty()
        assert vector_store.stats().total_documents == 0


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------

class TestRetrieve:

    def test_empty_index_returns_empty(self, vector_store):
        from unittest.mock import patch
        with patch("execution.compliance_rag.vector_store.cosine_similarity") as sim:
            assert vector_store.retrieve([1.0] * 8, top_k=5) == []
            sim.assert_not_called()

    def test_sorted_descending_and_limited(self, vector_store):
        from execution.compliance_rag.embeddings import FallbackEmbeddingService
        svc = FallbackEmbeddingService(dimensions=8)
        for i in range(10):
            vector_store.insert(_chunk(1, i, svc.embed(f"chunk {i}")))

        results = vector_store.retrieve(svc.embed("query"), top_k=4)
        assert len(results) == 4
        scores = [r.score for r in results]
        assert scores == sorted(scores, reverse=True)

    def test_top_k_larger_than_index(self, vector_store):
        vector_store.insert(_chunk(1, 0, [1.0] * 8))
        vector_store.insert(_chunk(1, 1, [0.5] * 8))
        assert len(vector_store.retrieve([1.0] * 8, top_k=20)) == 2

    def test_non_positive_top_k(self, vector_store):
        vector_store.insert(_chunk(1, 0, [1.0] * 8))
        assert vector_store.retrieve([1.0] * 8, top_k=0) == []

    def test_exact_match_ranks_first(self, vector_store):
        target = [0.0, 1.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0]
        vector_store.insert(_chunk(1, 0, [1.0] + [0.0] * 7))
        vector_store.insert(_chunk(1, 1, target, references=["Clause 7.1"]))
        vector_store.insert(_chunk(1, 2, [0.5, 0.5] + [0.0] * 6))

        results = vector_store.retrieve(target, top_k=3)
        assert results[0].chunk_id == "doc_1_chunk_1"
        assert results[0].score == pytest.approx(1.0)
        assert results[0].references == ["Clause 7.1"]

    def test_query_dimension_mismatch_raises(self, vector_store):
        from execution.compliance_rag.vector_store import DimensionMismatch
        vector_store.insert(_chunk(1, 0, [1.0] * 8))
        with pytest.raises(DimensionMismatch):
            vector_store.retrieve([1.0] * 4, top_k=1)

    def test_search_result_to_dict(self, vector_store):
        vector_store.insert(_chunk(3, 0, [1.0] * 8, text="Clause 1 text", references=["Clause 1"]))
        result = vector_store.retrieve([1.0] * 8, top_k=1)[0].to_dict()
        assert result["chunk_id"] == "doc_3_chunk_0"
        assert result["document_id"] == 3
        assert result["references"] == ["Clause 1"]
        assert result["score"] == pytest.approx(1.0)


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------

class TestStats:

    def test_empty_stats(self, vector_store):
        stats = vector_store.stats()
        assert stats.total_chunks == 0
        assert stats.total_documents == 0
        assert stats.average_chunks_per_document is None
        assert stats.to_dict() == {"totalChunks": 0, "totalDocuments": 0}

    def test_average_chunks_per_document(self, vector_store):
        for i in range(3):
            vector_store.insert(_chunk(1, i, [1.0] * 8))
        vector_store.insert(_chunk(2, 0, [1.0] * 8))

        stats = vector_store.stats()
        assert stats.total_chunks == 4
        assert stats.total_documents == 2
        assert stats.average_chunks_per_document == pytest.approx(2.0)
        assert stats.to_dict()["averageChunksPerDocument"] == pytest.approx(2.0)


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------

class TestConcurrentAccess:

    def test_concurrent_inserts_and_retrieves(self, vector_store):
        errors = []

        def writer(document_id):
            try:
                for i in range(25):
                    vector_store.insert(_chunk(document_id, i, [float(document_id + 1)] * 8))
            except Exception as e:  # pragma: no cover
                errors.append(e)

        def reader():
            try:
                for _ in range(25):
                    vector_store.retrieve([1.0] * 8, top_k=5)
            except Exception as e:  # pragma: no cover
                errors.append(e)

        threads = [threading.Thread(target=writer, args=(d,)) for d in range(6)]
        threads += [threading.Thread(target=reader) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        stats = vector_store.stats()
        assert stats.total_chunks == 150
        assert stats.total_documents == 6
