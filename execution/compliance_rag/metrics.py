"""
Metrics Collection for Compliance RAG

Counts queries per answer mode, degraded-mode fallbacks, latency and
ingestion volume. Pipelines report into one process-wide collector;
the API exposes it at /metrics.
"""

import time
import logging
import threading
from dataclasses import dataclass, field
from collections import defaultdict
from typing import Optional
from datetime import datetime, timedelta

logger = logging.getLogger(__name__)


@dataclass
class QueryMetrics:
    """Metrics for a single query."""
    query_text: str
    start_time: float
    end_time: float = 0
    latency_ms: float = 0
    mode: Optional[str] = None
    results_count: int = 0
    embedding_fallback: bool = False
    generation_fallback: bool = False
    error: Optional[str] = None


@dataclass
class SystemMetrics:
    """Aggregated system metrics."""
    # Query metrics
    total_queries: int = 0
    failed_queries: int = 0
    queries_by_mode: dict = field(default_factory=lambda: defaultdict(int))

    # Latency tracking (in ms)
    total_latency_ms: float = 0
    max_latency_ms: float = 0
    latencies: list = field(default_factory=list)

    # Degraded-mode tracking
    embedding_fallbacks: int = 0
    generation_fallbacks: int = 0

    # Ingestion metrics
    documents_ingested: int = 0
    chunks_stored: int = 0
    chunks_failed: int = 0
    total_ingestion_time_ms: float = 0

    errors_by_type: dict = field(default_factory=lambda: defaultdict(int))

    @property
    def avg_latency_ms(self) -> float:
        if self.total_queries == 0:
            return 0
        return self.total_latency_ms / self.total_queries

    @property
    def p95_latency_ms(self) -> float:
        """Calculate 95th percentile latency."""
        if not self.latencies:
            return 0
        sorted_latencies = sorted(self.latencies)
        index = int(len(sorted_latencies) * 0.95)
        return sorted_latencies[min(index, len(sorted_latencies) - 1)]

    @property
    def chunk_failure_rate(self) -> float:
        total = self.chunks_stored + self.chunks_failed
        if total == 0:
            return 0
        return self.chunks_failed / total

    def to_dict(self) -> dict:
        """Convert to dictionary for the /metrics endpoint."""
        return {
            "queries": {
                "total": self.total_queries,
                "failed": self.failed_queries,
                "by_mode": dict(self.queries_by_mode),
            },
            "latency_ms": {
                "avg": round(self.avg_latency_ms, 2),
                "max": round(self.max_latency_ms, 2),
                "p95": round(self.p95_latency_ms, 2),
            },
            "fallbacks": {
                "embedding": self.embedding_fallbacks,
                "generation": self.generation_fallbacks,
            },
            "ingestion": {
                "documents": self.documents_ingested,
                "chunks_stored": self.chunks_stored,
                "chunks_failed": self.chunks_failed,
                "failure_rate": f"{self.chunk_failure_rate:.2%}",
                "avg_time_ms": round(
                    self.total_ingestion_time_ms / max(self.documents_ingested, 1), 2
                ),
            },
            "errors": dict(self.errors_by_type),
        }


class MetricsCollector:
    """
    Collects and aggregates system metrics.

    Usage:
        collector = get_metrics_collector()

        with collector.track_query(query_text) as tracker:
            answer = pipeline.answer(query_text)
            tracker.set_outcome(mode="compliance", results_count=3)

        collector.get_metrics_dict()
    """

    _instance = None

    def __new__(cls):
        """Singleton pattern for global metrics collection."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self.metrics = SystemMetrics()
        self._lock = threading.Lock()
        self._max_history = 1000  # Latency samples kept for p95
        self._start_time = datetime.now()
        self._initialized = True

    def reset(self):
        """Reset all metrics (for testing)."""
        with self._lock:
            self.metrics = SystemMetrics()
            self._start_time = datetime.now()

    class QueryTracker:
        """Context manager for tracking query metrics."""

        def __init__(self, collector: 'MetricsCollector', query_text: str):
            self.collector = collector
            self.query = QueryMetrics(
                query_text=query_text[:200],
                start_time=time.time(),
            )

        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            self.query.end_time = time.time()
            self.query.latency_ms = (self.query.end_time - self.query.start_time) * 1000

            if exc_type:
                self.query.error = str(exc_val)
                self.collector.record_error(exc_type.__name__)

            self.collector._record_query(self.query)
            return False  # Don't suppress exceptions

        def set_outcome(
            self,
            mode: str,
            results_count: int = 0,
            embedding_fallback: bool = False,
            generation_fallback: bool = False,
        ):
            """Set query result metadata."""
            self.query.mode = mode
            self.query.results_count = results_count
            self.query.embedding_fallback = embedding_fallback
            self.query.generation_fallback = generation_fallback

    def track_query(self, query_text: str) -> QueryTracker:
        """Create a query tracker context manager."""
        return self.QueryTracker(self, query_text)

    def _record_query(self, query: QueryMetrics):
        with self._lock:
            m = self.metrics
            m.total_queries += 1
            if query.error:
                m.failed_queries += 1
            if query.mode:
                m.queries_by_mode[query.mode] += 1

            m.total_latency_ms += query.latency_ms
            m.max_latency_ms = max(m.max_latency_ms, query.latency_ms)
            m.latencies.append(query.latency_ms)
            if len(m.latencies) > self._max_history:
                m.latencies = m.latencies[-self._max_history:]

            if query.embedding_fallback:
                m.embedding_fallbacks += 1
            if query.generation_fallback:
                m.generation_fallbacks += 1

    def record_error(self, error_type: str):
        """Record an error by type."""
        with self._lock:
            self.metrics.errors_by_type[error_type] += 1

    def record_ingestion(
        self,
        document_id: int,
        chunks_stored: int,
        chunks_failed: int,
        duration_ms: float,
        embedding_fallbacks: int = 0,
    ):
        """Record one completed ingest call."""
        with self._lock:
            m = self.metrics
            m.documents_ingested += 1
            m.chunks_stored += chunks_stored
            m.chunks_failed += chunks_failed
            m.total_ingestion_time_ms += duration_ms
            m.embedding_fallbacks += embedding_fallbacks

        logger.debug(
            f"Ingestion recorded for document {document_id}: "
            f"{chunks_stored} stored, {chunks_failed} failed in {duration_ms:.0f}ms"
        )

    def get_metrics(self) -> SystemMetrics:
        return self.metrics

    def get_metrics_dict(self) -> dict:
        """Get metrics as a dictionary, with uptime."""
        with self._lock:
            data = self.metrics.to_dict()
        data["uptime_seconds"] = round(self.get_uptime().total_seconds(), 1)
        return data

    def get_uptime(self) -> timedelta:
        return datetime.now() - self._start_time


# Global metrics collector instance
_collector = None


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector instance."""
    global _collector
    if _collector is None:
        _collector = MetricsCollector()
    return _collector


# CLI for testing
if __name__ == "__main__":
    import json
    import random

    logging.basicConfig(level=logging.INFO)
    collector = get_metrics_collector()

    for i in range(20):
        with collector.track_query(f"Test query {i}") as tracker:
            time.sleep(random.uniform(0.01, 0.05))
            tracker.set_outcome(
                mode=random.choice(["compliance", "general"]),
                results_count=random.randint(0, 5),
                generation_fallback=random.random() > 0.8,
            )

    collector.record_ingestion(1, chunks_stored=12, chunks_failed=1, duration_ms=850.0)

    print("\n=== System Metrics ===")
    print(json.dumps(collector.get_metrics_dict(), indent=2))
