"""
Answer Generation for Compliance RAG

Composes answers from a query and retrieved policy excerpts through an
OpenAI-compatible chat completions API.

Two modes:
- COMPLIANCE: strictly grounded in numbered excerpts
- GENERAL: open-domain assistant, used when nothing relevant was retrieved

OpenAIGenerationService raises GenerationUnavailable on any failure.
ResilientGenerationService turns those failures into the canned
mode-specific fallback message, so answering never raises.
"""

import os
import logging
import threading
from enum import Enum
from dataclasses import dataclass
from typing import Optional

from .config import RAGConfig
from .patterns import LLM_PROMPTS, FALLBACK_MESSAGES

logger = logging.getLogger(__name__)

# Value shipped in sample .env files; treated as "no key"
PLACEHOLDER_API_KEY = "your-openai-api-key-here"


class GenerationUnavailable(Exception):
    """The generation provider could not produce an answer."""


class GenerationMode(str, Enum):
    COMPLIANCE = "compliance"
    GENERAL = "general"


@dataclass
class GenerationConfig:
    """Configuration for the chat completions call."""
    model: str = "gpt-4o-mini"
    base_url: Optional[str] = None
    temperature: float = 0.1
    top_p: float = 0.8
    top_k: Optional[int] = None
    max_output_tokens: int = 4096
    timeout_seconds: float = 60.0


@dataclass
class GenerationResult:
    """Outcome of one compose call through the resilient wrapper."""
    text: str
    mode: GenerationMode
    fallback: bool = False
    error: Optional[str] = None


def build_compliance_prompt(query: str, passages: list[str]) -> str:
    """Number each passage as an excerpt and wrap them in the grounding instructions."""
    excerpts = "\n".join(
        LLM_PROMPTS["excerpt"].format(number=i + 1, text=passage)
        for i, passage in enumerate(passages)
    )
    return LLM_PROMPTS["compliance_user"].format(excerpts=excerpts, query=query)


def build_messages(query: str, passages: list[str], mode: GenerationMode) -> list[dict]:
    """Chat messages for the given mode."""
    if mode == GenerationMode.COMPLIANCE:
        return [
            {"role": "system", "content": LLM_PROMPTS["compliance_system"]},
            {"role": "user", "content": build_compliance_prompt(query, passages)},
        ]
    return [
        {"role": "system", "content": LLM_PROMPTS["general_system"]},
        {"role": "user", "content": query},
    ]


class OpenAIGenerationService:
    """
    Generation via any OpenAI-compatible chat completions endpoint.

    base_url may point at OpenAI itself or a compatible server
    (NVIDIA NIM, vLLM, Ollama). top_k is not part of the OpenAI API and is
    forwarded through extra_body only when configured.
    """

    def __init__(self, config: Optional[GenerationConfig] = None):
        self.config = config or GenerationConfig()
        self._client = None
        self._init_client()

    def _init_client(self):
        api_key = os.getenv("OPENAI_API_KEY")

        if not api_key or api_key == PLACEHOLDER_API_KEY:
            logger.warning(
                "OPENAI_API_KEY not configured. Answers will use the fallback message."
            )
            return

        from openai import OpenAI
        self._client = OpenAI(
            base_url=self.config.base_url,
            api_key=api_key,
            timeout=self.config.timeout_seconds,
        )
        logger.info(f"LLM client initialized with model {self.config.model}")

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    @property
    def model(self) -> str:
        return self.config.model

    def compose(
        self,
        query: str,
        passages: list[str],
        mode: GenerationMode = GenerationMode.COMPLIANCE,
    ) -> str:
        """
        Generate an answer.

        Args:
            query: User question
            passages: Retrieved chunk texts (ignored in GENERAL mode)
            mode: COMPLIANCE or GENERAL

        Returns:
            Generated answer text

        Raises:
            GenerationUnavailable: client missing, request failed, or empty response
        """
        if not self._client:
            raise GenerationUnavailable("LLM client not initialized. Check OPENAI_API_KEY.")

        kwargs = {
            "model": self.config.model,
            "messages": build_messages(query, passages, mode),
            "temperature": self.config.temperature,
            "top_p": self.config.top_p,
            "max_tokens": self.config.max_output_tokens,
        }
        if self.config.top_k is not None:
            kwargs["extra_body"] = {"top_k": self.config.top_k}

        try:
            response = self._client.chat.completions.create(**kwargs)
        except Exception as e:
            from openai import APITimeoutError
            if isinstance(e, APITimeoutError):
                logger.error(f"LLM generation timed out ({mode.value}): {query[:100]}")
            else:
                logger.error(f"LLM generation failed ({mode.value}): {type(e).__name__}: {e}")
            raise GenerationUnavailable(f"{type(e).__name__}: {e}") from e

        if not response.choices:
            raise GenerationUnavailable("LLM returned no choices")

        content = response.choices[0].message.content
        if not content or not content.strip():
            raise GenerationUnavailable("LLM returned an empty answer")

        return content.strip()


class FallbackGenerationService:
    """Returns the canned message for the requested mode."""

    model = "fallback"
    is_configured = True

    def compose(
        self,
        query: str,
        passages: list[str],
        mode: GenerationMode = GenerationMode.COMPLIANCE,
    ) -> str:
        return FALLBACK_MESSAGES[mode.value]


class ResilientGenerationService:
    """
    Primary generator with a canned-message fallback.

    compose() never raises for provider failures; the returned
    GenerationResult says whether the text is the fallback message.
    """

    def __init__(
        self,
        primary: Optional[OpenAIGenerationService],
        fallback: Optional[FallbackGenerationService] = None,
    ):
        self.primary = primary
        self.fallback = fallback or FallbackGenerationService()
        self._fallback_count = 0
        self._count_lock = threading.Lock()

    @property
    def fallback_count(self) -> int:
        return self._fallback_count

    @property
    def mode(self) -> str:
        if self.primary is not None and self.primary.is_configured:
            return "primary"
        return "fallback"

    @property
    def model(self) -> str:
        if self.primary is not None:
            return self.primary.model
        return self.fallback.model

    def compose(
        self,
        query: str,
        passages: list[str],
        mode: GenerationMode = GenerationMode.COMPLIANCE,
    ) -> GenerationResult:
        """Generate with the primary, degrading to the mode's fallback message."""
        error = None
        if self.primary is not None:
            try:
                text = self.primary.compose(query, passages, mode)
                return GenerationResult(text=text, mode=mode)
            except Exception as e:
                error = f"{type(e).__name__}: {e}"
                logger.warning(f"Generation failed in {mode.value} mode: {error}. Using fallback message.")
        else:
            error = "no generation provider configured"

        with self._count_lock:
            self._fallback_count += 1
        return GenerationResult(
            text=self.fallback.compose(query, passages, mode),
            mode=mode,
            fallback=True,
            error=error,
        )


def get_generation_service(config: Optional[RAGConfig] = None) -> ResilientGenerationService:
    """
    Factory function to get the resilient generation service for a configuration.

    Args:
        config: Service configuration; read from the environment if omitted

    Returns:
        ResilientGenerationService wrapping an OpenAI-compatible client
    """
    config = config or RAGConfig.from_env()

    generation_config = GenerationConfig(
        model=config.llm_model,
        base_url=config.llm_base_url,
        temperature=config.temperature,
        top_p=config.top_p,
        top_k=config.top_k,
        max_output_tokens=config.max_output_tokens,
        timeout_seconds=config.request_timeout_seconds,
    )
    return ResilientGenerationService(OpenAIGenerationService(generation_config))


# CLI for testing
if __name__ == "__main__":
    import sys
    from dotenv import load_dotenv

    load_dotenv()
    logging.basicConfig(level=logging.INFO)

    service = get_generation_service()
    print(f"Generation mode: {service.mode} ({service.model})")

    question = " ".join(sys.argv[1:]) or "Hello, what can you help me with?"
    result = service.compose(question, [], GenerationMode.GENERAL)
    print(f"Fallback: {result.fallback}")
    print(result.text)
