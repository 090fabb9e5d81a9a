"""
Sentence-Aware Policy Chunker

Splits extracted policy text into overlapping, token-budgeted chunks.

Strategy:
- Split on sentence boundaries (".", "!" or "?" followed by whitespace)
- Greedily pack sentences until the next one would exceed the token budget
- Seed each new chunk with up to 3 trailing sentences of the previous chunk
  (bounded by the overlap budget) so context carries across boundaries

Token counts are estimated with a fixed characters-per-token ratio; no
tokenizer is involved. Chunking is pure and deterministic.
"""

import math
import logging
from dataclasses import dataclass
from typing import Optional

from .patterns import SENTENCE_BOUNDARY

logger = logging.getLogger(__name__)

# How many preceding sentences may be carried into the next chunk
MAX_OVERLAP_SENTENCES = 3


def estimate_tokens(text: str, chars_per_token: int = 4) -> int:
    """Estimate token cost of text; never less than 1."""
    return max(1, math.ceil(len(text) / chars_per_token))


@dataclass
class ChunkConfig:
    """Configuration for chunking parameters."""
    chunk_size_tokens: int = 500
    overlap_tokens: int = 50
    chars_per_token: int = 4


class PolicyChunker:
    """
    Chunks policy text into overlapping segments.

    The same text and parameters always produce the same chunks.
    """

    def __init__(self, config: Optional[ChunkConfig] = None):
        """Initialize chunker with optional configuration."""
        self.config = config or ChunkConfig()

    def chunk(
        self,
        text: str,
        chunk_size_tokens: Optional[int] = None,
        overlap_tokens: Optional[int] = None,
    ) -> list[str]:
        """
        Split text into overlapping chunks.

        Args:
            text: Extracted document text
            chunk_size_tokens: Token budget per chunk (defaults to config)
            overlap_tokens: Token budget for carried-over sentences (defaults to config)

        Returns:
            List of trimmed chunk strings; empty for blank input
        """
        if text is None or not text.strip():
            return []

        size = self.config.chunk_size_tokens if chunk_size_tokens is None else chunk_size_tokens
        overlap = self.config.overlap_tokens if overlap_tokens is None else overlap_tokens

        sentences = self._split_sentences(text)
        if not sentences:
            return [text.strip()]

        chunks = []
        current: list[str] = []
        current_tokens = 0
        chunk_start = 0  # Index of the first sentence in the current chunk

        for i, sentence in enumerate(sentences):
            sentence_tokens = self._estimate_tokens(sentence)

            if current_tokens + sentence_tokens > size and current:
                chunks.append(" ".join(current).strip())

                carried = self._overlap_sentences(sentences, chunk_start, i, overlap)
                current = list(carried)
                current_tokens = sum(self._estimate_tokens(s) for s in carried)
                chunk_start = i - len(carried)

            current.append(sentence)
            current_tokens += sentence_tokens

        if current:
            chunks.append(" ".join(current).strip())

        logger.debug(f"Split text into {len(chunks)} chunks")
        return chunks

    def _split_sentences(self, text: str) -> list[str]:
        """Split on punctuation boundaries, dropping blank fragments."""
        parts = SENTENCE_BOUNDARY.split(text.strip())
        return [p.strip() for p in parts if p.strip()]

    def _overlap_sentences(
        self,
        sentences: list[str],
        chunk_start: int,
        boundary: int,
        overlap_tokens: int,
    ) -> list[str]:
        """
        Walk backward from the boundary collecting the tail of the closed chunk.

        Stops at the first sentence that would push the cumulative cost over
        the overlap budget, after MAX_OVERLAP_SENTENCES, or at the start of
        the closed chunk. Returns sentences in original order.
        """
        if overlap_tokens <= 0:
            return []

        carried = []
        used = 0
        lowest = max(chunk_start, boundary - MAX_OVERLAP_SENTENCES)

        for j in range(boundary - 1, lowest - 1, -1):
            cost = self._estimate_tokens(sentences[j])
            if used + cost > overlap_tokens:
                break
            carried.append(sentences[j])
            used += cost

        carried.reverse()
        return carried

    def _estimate_tokens(self, text: str) -> int:
        return estimate_tokens(text, self.config.chars_per_token)


# CLI for testing
if __name__ == "__main__":
    import sys

    logging.basicConfig(level=logging.INFO)

    if len(sys.argv) < 2:
        print("Usage: python -m execution.compliance_rag.chunker <text_file> [chunk_size] [overlap]")
        sys.exit(1)

    with open(sys.argv[1], encoding="utf-8") as f:
        source = f.read()

    chunk_size = int(sys.argv[2]) if len(sys.argv) > 2 else 500
    overlap_size = int(sys.argv[3]) if len(sys.argv) > 3 else 50

    chunker = PolicyChunker(ChunkConfig(chunk_size_tokens=chunk_size, overlap_tokens=overlap_size))
    result = chunker.chunk(source)

    print(f"\nCreated {len(result)} chunks:")
    for idx, piece in enumerate(result[:5]):
        print(f"\n--- Chunk {idx} ({estimate_tokens(piece)} tokens) ---")
        print(f"{piece[:200]}...")
