"""
Runtime Configuration for the Compliance RAG Service

All tunable knobs for chunking, embeddings, retrieval and generation live
in a single dataclass. Values come from defaults or environment variables
(loaded from .env by the entry point).
"""

import os
from dataclasses import dataclass, field
from typing import Optional


# Providers the embedding factory knows how to build
SUPPORTED_EMBEDDING_PROVIDERS = frozenset({"voyage", "cohere", "fallback"})

# Default model per embedding provider
DEFAULT_EMBEDDING_MODELS = {
    "voyage": "voyage-law-2",
    "cohere": "embed-english-v3.0",
    "fallback": "deterministic-fallback",
}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


def _env_optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else None


@dataclass
class RAGConfig:
    """Service-wide configuration for the retrieval-augmented answer pipeline."""
    # Embeddings
    embedding_provider: str = "voyage"
    embedding_model: str = "voyage-law-2"
    embedding_dimensions: int = 1024

    # Chunking (token counts use the chars_per_token heuristic)
    chunk_size_tokens: int = 500
    chunk_overlap_tokens: int = 50
    chars_per_token: int = 4

    # Retrieval
    default_top_k: int = 5
    max_top_k: int = 20

    # Generation
    llm_model: str = "gpt-4o-mini"
    llm_base_url: Optional[str] = None
    temperature: float = 0.1
    top_p: float = 0.8
    top_k: Optional[int] = None  # Only sent to OpenAI-compatible servers that accept it
    max_output_tokens: int = 4096

    # Request handling
    request_timeout_seconds: float = 60.0
    ingest_workers: int = 4
    max_upload_mb: int = 10
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "RAGConfig":
        """
        Build a configuration from environment variables.

        Unset variables keep their dataclass defaults. The embedding model
        default follows the selected provider unless EMBEDDING_MODEL is set.

        Returns:
            RAGConfig populated from the environment
        """
        provider = os.getenv("EMBEDDING_PROVIDER", "voyage").strip().lower()
        if provider not in SUPPORTED_EMBEDDING_PROVIDERS:
            raise ValueError(
                f"Unsupported EMBEDDING_PROVIDER '{provider}'. "
                f"Expected one of: {', '.join(sorted(SUPPORTED_EMBEDDING_PROVIDERS))}"
            )

        origins = os.getenv("CORS_ORIGINS", "*")

        config = cls(
            embedding_provider=provider,
            embedding_model=os.getenv("EMBEDDING_MODEL") or DEFAULT_EMBEDDING_MODELS[provider],
            embedding_dimensions=_env_int("EMBEDDING_DIMENSIONS", 1024),
            chunk_size_tokens=_env_int("CHUNK_SIZE_TOKENS", 500),
            chunk_overlap_tokens=_env_int("CHUNK_OVERLAP_TOKENS", 50),
            chars_per_token=_env_int("CHARS_PER_TOKEN", 4),
            default_top_k=_env_int("DEFAULT_TOP_K", 5),
            max_top_k=_env_int("MAX_TOP_K", 20),
            llm_model=os.getenv("LLM_MODEL", "gpt-4o-mini"),
            llm_base_url=os.getenv("LLM_BASE_URL") or None,
            temperature=_env_float("LLM_TEMPERATURE", 0.1),
            top_p=_env_float("LLM_TOP_P", 0.8),
            top_k=_env_optional_int("LLM_TOP_K"),
            max_output_tokens=_env_int("LLM_MAX_TOKENS", 4096),
            request_timeout_seconds=_env_float("REQUEST_TIMEOUT_SECONDS", 60.0),
            ingest_workers=_env_int("INGEST_WORKERS", 4),
            max_upload_mb=_env_int("MAX_UPLOAD_MB", 10),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Reject values that would break the algorithms rather than just tune them."""
        if self.embedding_dimensions <= 0:
            raise ValueError("embedding_dimensions must be positive")
        if self.chunk_size_tokens <= 0:
            raise ValueError("chunk_size_tokens must be positive")
        if self.chunk_overlap_tokens < 0:
            raise ValueError("chunk_overlap_tokens must not be negative")
        if self.chars_per_token <= 0:
            raise ValueError("chars_per_token must be positive")
        if not 1 <= self.default_top_k <= self.max_top_k:
            raise ValueError("default_top_k must be between 1 and max_top_k")
        if self.ingest_workers <= 0:
            raise ValueError("ingest_workers must be positive")
