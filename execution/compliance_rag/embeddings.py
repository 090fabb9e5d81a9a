"""
Embedding Service for Compliance RAG

Provides embeddings via Voyage AI (voyage-law-2) or Cohere, with a
deterministic fallback used whenever the remote provider fails.

Architecture:
    BaseEmbeddingService      -- shared caching, role mapping, response validation
        VoyageEmbeddingService    -- Voyage AI voyage-law-2 provider
        CohereEmbeddingService    -- Cohere embed-v3 provider
    FallbackEmbeddingService  -- seeded Gaussian vectors, no semantic signal
    ResilientEmbeddingService -- primary first, fallback on any failure

Only ResilientEmbeddingService absorbs errors. Remote services raise
EmbeddingUnavailable; callers of the resilient wrapper always get a vector
plus a flag saying whether it came from the fallback path.
"""

import os
import hashlib
import logging
import threading
from enum import Enum
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .config import RAGConfig

logger = logging.getLogger(__name__)


class EmbeddingUnavailable(Exception):
    """The remote embedding provider could not produce a usable vector."""


class EmbeddingRole(str, Enum):
    """What the text is used for; providers encode documents and queries differently."""
    DOCUMENT = "document"
    QUERY = "query"


@dataclass
class EmbeddingConfig:
    """Configuration for embedding services."""
    provider: str = "voyage"
    model: str = "voyage-law-2"
    dimensions: int = 1024
    timeout_seconds: float = 60.0
    use_cache: bool = True
    max_cache_entries: int = 10000


@dataclass
class EmbeddingResult:
    """Outcome of one embedding call through the resilient wrapper."""
    vector: list[float]
    fallback: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return bool(self.vector)


class BaseEmbeddingService:
    """
    Base class for API-based embedding services.

    Provides shared functionality:
    - Memory caching keyed by model, role and text
    - Role to provider input-type mapping
    - Validation of provider responses (non-empty, expected dimension)

    Subclasses only need to implement:
    - _init_client(): Initialize the provider-specific API client
    - _request(text, input_type): Call the provider and return the raw vector

    And set these class attributes:
    - _provider_name: Human-readable provider name for error messages
    - _env_var_name: Environment variable name for the API key
    - _doc_input_type: Input type string for document embeddings
    - _query_input_type: Input type string for query embeddings
    """

    # Subclasses must override these
    _provider_name: str = "Base"
    _env_var_name: str = ""
    _doc_input_type: str = "document"
    _query_input_type: str = "query"

    def __init__(self, config: Optional[EmbeddingConfig] = None):
        """
        Initialize embedding service.

        Args:
            config: Optional configuration. Uses defaults if not provided.
        """
        self.config = config or EmbeddingConfig()
        self._client = None
        self._cache: dict[str, list[float]] = {}
        # embed() runs on the ingest thread pool
        self._cache_lock = threading.Lock()

        self._init_client()

    def _init_client(self):
        """Initialize the provider-specific API client. Must be overridden by subclasses."""
        raise NotImplementedError("Subclasses must implement _init_client()")

    def _request(self, text: str, input_type: str) -> list[float]:
        """Call the provider for a single text. Must be overridden by subclasses."""
        raise NotImplementedError("Subclasses must implement _request()")

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    @property
    def dimensions(self) -> int:
        """Return embedding dimensions."""
        return self.config.dimensions

    def embed(self, text: str, role: EmbeddingRole = EmbeddingRole.DOCUMENT) -> list[float]:
        """
        Embed a single text.

        Args:
            text: Text to embed
            role: DOCUMENT for indexed chunks, QUERY for search queries

        Returns:
            Embedding vector of length config.dimensions

        Raises:
            EmbeddingUnavailable: client missing, request failed, or response unusable
        """
        if not self._client:
            raise EmbeddingUnavailable(
                f"{self._provider_name} client not initialized. "
                f"Check {self._env_var_name}."
            )

        input_type = self._doc_input_type if role == EmbeddingRole.DOCUMENT else self._query_input_type

        cache_key = self._get_cache_key(text, input_type)
        cached = self._get_cached(cache_key)
        if cached is not None:
            return cached

        try:
            vector = self._request(text, input_type)
        except Exception as e:
            logger.error(f"{self._provider_name} embedding failed: {type(e).__name__}: {e}")
            raise EmbeddingUnavailable(f"{self._provider_name} request failed: {e}") from e

        vector = self._validate(vector)
        self._set_cached(cache_key, vector)
        return vector

    def embed_query(self, query: str) -> list[float]:
        """Embed a search query."""
        return self.embed(query, EmbeddingRole.QUERY)

    def embed_document(self, text: str) -> list[float]:
        """Embed a document chunk."""
        return self.embed(text, EmbeddingRole.DOCUMENT)

    def _validate(self, vector) -> list[float]:
        """Reject empty or wrongly-sized vectors so they never reach the index."""
        if vector is None or len(vector) == 0:
            raise EmbeddingUnavailable(f"{self._provider_name} returned an empty embedding")

        values = [float(v) for v in vector]
        if len(values) != self.config.dimensions:
            raise EmbeddingUnavailable(
                f"{self._provider_name} returned {len(values)} dimensions, "
                f"expected {self.config.dimensions}"
            )
        return values

    def _get_cache_key(self, text: str, input_type: str) -> str:
        """Generate cache key for text."""
        content = f"{self.config.model}:{input_type}:{text}"
        return hashlib.sha256(content.encode()).hexdigest()[:32]

    def _get_cached(self, key: str) -> Optional[list[float]]:
        """Get cached embedding."""
        if not self.config.use_cache:
            return None
        with self._cache_lock:
            return self._cache.get(key)

    def _set_cached(self, key: str, embedding: list[float]) -> None:
        """Cache an embedding, dropping the oldest entry when full."""
        if not self.config.use_cache:
            return
        with self._cache_lock:
            if key not in self._cache and len(self._cache) >= self.config.max_cache_entries:
                self._cache.pop(next(iter(self._cache)), None)
            self._cache[key] = embedding


class VoyageEmbeddingService(BaseEmbeddingService):
    """
    Embedding service using Voyage AI's voyage-law-2 model.

    voyage-law-2 provides:
    - 1024-dimensional embeddings
    - Better retrieval on legal and policy text than general models
    - Different input types for documents vs queries
    """

    _provider_name = "Voyage AI"
    _env_var_name = "VOYAGE_API_KEY"
    _doc_input_type = "document"
    _query_input_type = "query"

    def _init_client(self):
        """Initialize the Voyage AI client."""
        api_key = os.getenv("VOYAGE_API_KEY")

        if not api_key:
            logger.warning(
                "VOYAGE_API_KEY not found. Embeddings will use the deterministic fallback. "
                "Get your API key at https://dash.voyageai.com/"
            )
            return

        try:
            import voyageai
            self._client = voyageai.Client(
                api_key=api_key,
                timeout=self.config.timeout_seconds,
            )
            logger.info(f"Voyage AI client initialized with model {self.config.model}")
        except ImportError:
            logger.error("voyageai package not installed. Run: pip install voyageai")
            raise

    def _request(self, text: str, input_type: str) -> list[float]:
        response = self._client.embed(
            texts=[text],
            model=self.config.model,
            input_type=input_type,
        )
        return response.embeddings[0] if response.embeddings else []


class CohereEmbeddingService(BaseEmbeddingService):
    """
    Generates embeddings using Cohere's embed-v3 model.

    Cohere embed-v3 provides:
    - 1024-dimensional embeddings
    - Different input types for documents vs queries
    """

    _provider_name = "Cohere"
    _env_var_name = "COHERE_API_KEY"
    _doc_input_type = "search_document"
    _query_input_type = "search_query"

    def _init_client(self):
        """Initialize the Cohere client."""
        api_key = os.getenv("COHERE_API_KEY")

        if not api_key:
            logger.warning(
                "COHERE_API_KEY not found. Embeddings will use the deterministic fallback."
            )
            return

        try:
            import cohere
            self._client = cohere.Client(api_key, timeout=self.config.timeout_seconds)
            logger.info(f"Cohere client initialized with model {self.config.model}")
        except ImportError:
            logger.error("Cohere package not installed. Run: pip install cohere")
            raise

    def _request(self, text: str, input_type: str) -> list[float]:
        response = self._client.embed(
            texts=[text],
            model=self.config.model,
            input_type=input_type,
        )
        return response.embeddings[0] if response.embeddings else []


class FallbackEmbeddingService:
    """
    Deterministic stand-in for a remote embedding provider.

    Seeds a PRNG with a stable hash of the text, draws small-variance
    Gaussian values and L2-normalizes them. The same text always yields
    the same vector, but similarity between fallback vectors is noise.
    """

    _provider_name = "Fallback"

    def __init__(self, dimensions: int = 1024, std_dev: float = 0.1):
        if dimensions <= 0:
            raise ValueError("dimensions must be positive")
        self._dimensions = dimensions
        self._std_dev = std_dev

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def is_configured(self) -> bool:
        return True

    def embed(self, text: str, role: EmbeddingRole = EmbeddingRole.DOCUMENT) -> list[float]:
        """Role does not affect the fallback vector."""
        seed = int(hashlib.sha256(text.encode("utf-8")).hexdigest()[:16], 16)
        rng = np.random.default_rng(seed)
        values = rng.normal(0.0, self._std_dev, self._dimensions)

        norm = np.linalg.norm(values)
        if norm > 0:
            values = values / norm
        return values.tolist()

    def embed_query(self, query: str) -> list[float]:
        return self.embed(query, EmbeddingRole.QUERY)

    def embed_document(self, text: str) -> list[float]:
        return self.embed(text, EmbeddingRole.DOCUMENT)


class ResilientEmbeddingService:
    """
    Primary embedding provider with a deterministic fallback.

    Any EmbeddingUnavailable (or other provider error) from the primary is
    logged and replaced by a fallback vector. The returned EmbeddingResult
    records which path produced the vector so callers can observe degraded
    mode without special-casing it.
    """

    def __init__(
        self,
        primary: Optional[BaseEmbeddingService],
        fallback: Optional[FallbackEmbeddingService] = None,
    ):
        self.primary = primary
        dims = primary.dimensions if primary is not None else 1024
        self.fallback = fallback or FallbackEmbeddingService(dimensions=dims)

        if primary is not None and self.fallback.dimensions != primary.dimensions:
            raise ValueError(
                f"Fallback dimensions ({self.fallback.dimensions}) must match "
                f"primary dimensions ({primary.dimensions})"
            )

        self._fallback_count = 0
        self._count_lock = threading.Lock()

    @property
    def dimensions(self) -> int:
        return self.fallback.dimensions

    @property
    def fallback_count(self) -> int:
        """Number of calls served by the fallback path since construction."""
        return self._fallback_count

    @property
    def mode(self) -> str:
        """'primary' when a configured remote provider is in front, else 'fallback'."""
        if self.primary is not None and self.primary.is_configured:
            return "primary"
        return "fallback"

    def embed(self, text: str, role: EmbeddingRole = EmbeddingRole.DOCUMENT) -> EmbeddingResult:
        """
        Embed text, degrading to the fallback vector on any primary failure.

        Args:
            text: Text to embed
            role: DOCUMENT or QUERY

        Returns:
            EmbeddingResult with the vector and a fallback flag
        """
        error = None
        if self.primary is not None:
            try:
                return EmbeddingResult(vector=self.primary.embed(text, role))
            except Exception as e:
                error = f"{type(e).__name__}: {e}"
                logger.warning(
                    f"Primary embedding failed for {role.value} text "
                    f"({len(text)} chars): {error}. Using fallback embedding."
                )
        else:
            error = "no primary embedding provider configured"

        with self._count_lock:
            self._fallback_count += 1
        return EmbeddingResult(
            vector=self.fallback.embed(text, role),
            fallback=True,
            error=error,
        )


def get_embedding_service(config: Optional[RAGConfig] = None) -> ResilientEmbeddingService:
    """
    Factory function to get the resilient embedding service for a configuration.

    Args:
        config: Service configuration; read from the environment if omitted

    Returns:
        ResilientEmbeddingService wrapping the configured primary provider
    """
    config = config or RAGConfig.from_env()

    embedding_config = EmbeddingConfig(
        provider=config.embedding_provider,
        model=config.embedding_model,
        dimensions=config.embedding_dimensions,
        timeout_seconds=config.request_timeout_seconds,
    )
    fallback = FallbackEmbeddingService(dimensions=config.embedding_dimensions)

    if config.embedding_provider == "voyage":
        primary = VoyageEmbeddingService(embedding_config)
    elif config.embedding_provider == "cohere":
        primary = CohereEmbeddingService(embedding_config)
    else:
        logger.info("Embedding provider set to 'fallback'; no remote provider will be called")
        primary = None

    return ResilientEmbeddingService(primary, fallback)


# CLI for testing
if __name__ == "__main__":
    import sys
    from dotenv import load_dotenv

    load_dotenv()
    logging.basicConfig(level=logging.INFO)

    service = get_embedding_service()
    print(f"Embedding mode: {service.mode}")

    query = " ".join(sys.argv[1:]) or "What does the data retention clause require?"
    result = service.embed(query, EmbeddingRole.QUERY)
    print(f"Query: {query}")
    print(f"Fallback: {result.fallback}")
    print(f"Embedding dimensions: {len(result.vector)}")
    print(f"First 10 values: {result.vector[:10]}")
