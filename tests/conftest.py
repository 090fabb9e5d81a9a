"""
Shared fixtures and test utilities for Compliance RAG tests.

Provides stub providers, sample policy text and reusable fixtures so that
all tests run without API keys or network access.
"""

import sys
import hashlib
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Path setup - ensure the execution package is importable
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

TEST_DIMENSIONS = 8

# ---------------------------------------------------------------------------
# Sample policy document text
# ---------------------------------------------------------------------------
SAMPLE_POLICY = """
DATA PROTECTION AND RETENTION POLICY

Clause 1.1 This policy applies to all employees, contractors and temporary staff.
Clause 1.2 It covers personal data held in any format.

Section 2 Data Collection. Personal data must be collected only for specified purposes.
Clause 2.1 Consent must be recorded before any marketing data is collected.

Section 3 Retention. Customer records must be retained for seven years after account closure.
Clause 3.1 Payroll records must be retained for six years.
Clause 3.2 Records past their retention period must be securely destroyed.

Article 4 Breach Reporting. Any suspected data breach must be reported to the Data Protection Officer within 24 hours.
Paragraph 4.1 The Data Protection Officer must notify the regulator within 72 hours where required.

Section 5 Review. This policy is reviewed annually by the compliance committee.
"""


@pytest.fixture
def sample_policy_text():
    """Return the sample policy document text."""
    return SAMPLE_POLICY


# ---------------------------------------------------------------------------
# Stub providers
# ---------------------------------------------------------------------------

class StubEmbeddingService:
    """
    Deterministic stand-in for a remote embedding provider.

    Texts listed in `vectors` get that exact vector; any other text gets a
    hash-derived vector. Texts in `fail_on` raise EmbeddingUnavailable.
    """

    def __init__(self, dimensions=TEST_DIMENSIONS, vectors=None, fail_on=None, fail_all=False):
        self._dimensions = dimensions
        self.vectors = dict(vectors or {})
        self.fail_on = set(fail_on or ())
        self.fail_all = fail_all
        self.calls = []

    @property
    def dimensions(self):
        return self._dimensions

    @property
    def is_configured(self):
        return True

    def embed(self, text, role=None):
        from execution.compliance_rag.embeddings import EmbeddingUnavailable

        self.calls.append((text, role))
        if self.fail_all or text in self.fail_on:
            raise EmbeddingUnavailable(f"stub failure for {text[:20]}")
        if text in self.vectors:
            return list(self.vectors[text])
        digest = hashlib.sha256(text.encode()).digest()
        return [(digest[i] + 1) / 256.0 for i in range(self._dimensions)]


class StubGenerationService:
    """Records compose calls and echoes the mode; optionally always fails."""

    model = "stub-model"
    is_configured = True

    def __init__(self, answer=None, fail=False):
        self.answer = answer
        self.fail = fail
        self.calls = []

    def compose(self, query, passages, mode):
        from execution.compliance_rag.generation import GenerationUnavailable

        self.calls.append({"query": query, "passages": list(passages), "mode": mode})
        if self.fail:
            raise GenerationUnavailable("stub generation failure")
        if self.answer is not None:
            return self.answer
        return f"[{mode.value}] answer to: {query}"


@pytest.fixture
def stub_embedding_service():
    return StubEmbeddingService()


@pytest.fixture
def stub_generation_service():
    return StubGenerationService()


@pytest.fixture
def resilient_embeddings(stub_embedding_service):
    """Resilient wrapper around the stub provider."""
    from execution.compliance_rag.embeddings import (
        ResilientEmbeddingService, FallbackEmbeddingService,
    )
    return ResilientEmbeddingService(
        stub_embedding_service,
        FallbackEmbeddingService(dimensions=TEST_DIMENSIONS),
    )


@pytest.fixture
def resilient_generator(stub_generation_service):
    from execution.compliance_rag.generation import ResilientGenerationService
    return ResilientGenerationService(stub_generation_service)


@pytest.fixture
def vector_store():
    from execution.compliance_rag.vector_store import InMemoryVectorStore
    return InMemoryVectorStore(dimensions=TEST_DIMENSIONS)


@pytest.fixture
def ingest_pipeline(vector_store, resilient_embeddings):
    from execution.compliance_rag.pipeline import IngestPipeline
    return IngestPipeline(vector_store, resilient_embeddings, workers=2)


@pytest.fixture
def query_pipeline(vector_store, resilient_embeddings, resilient_generator):
    from execution.compliance_rag.pipeline import QueryPipeline
    return QueryPipeline(vector_store, resilient_embeddings, resilient_generator)


@pytest.fixture
def test_config():
    """RAGConfig sized for the stub providers."""
    from execution.compliance_rag.config import RAGConfig
    return RAGConfig(
        embedding_provider="fallback",
        embedding_model="deterministic-fallback",
        embedding_dimensions=TEST_DIMENSIONS,
        chunk_size_tokens=40,
        chunk_overlap_tokens=10,
    )


# ---------------------------------------------------------------------------
# Singleton resets between tests
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def reset_metrics_singleton():
    """Reset the MetricsCollector singleton between tests."""
    import execution.compliance_rag.metrics as metrics_mod
    metrics_mod.MetricsCollector._instance = None
    metrics_mod._collector = None
    yield
    metrics_mod.MetricsCollector._instance = None
    metrics_mod._collector = None
