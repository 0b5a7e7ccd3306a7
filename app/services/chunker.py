# =============================================================================
# Token-Based Text Chunker — tiktoken
# =============================================================================
#
# Splits legal reference texts (Acts, notifications, circulars) into
# token-sized chunks for the knowledge base.
#
# DESIGN DECISION: Token-based chunking (not character-based) because:
# 1. Aligns with embedding token limits, no surprises at index time
# 2. tiktoken uses the same BPE tokenizer as OpenAI embedding models
# 3. Devanagari and Tamil text tokenise very differently from English;
#    character counts would give wildly uneven chunks
#
# ALGORITHM:
# 1. Encode the full text into tokens using tiktoken (cl100k_base)
# 2. Slide a window of chunk_size tokens with chunk_overlap overlap
# 3. Decode each window back to text
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass

import tiktoken

logger = logging.getLogger(__name__)


@dataclass
class ChunkResult:
    """A single chunk ready for embedding and storage."""

    content: str       # The text content of this chunk
    chunk_index: int   # 0-indexed position within the source
    token_count: int   # Exact token count (from tiktoken)


# ---------------------------------------------------------------------------
# Tiktoken Encoder — Cached
# ---------------------------------------------------------------------------
# Loading the encoder reads a ~1.7MB BPE file from disk; it is loaded once.
# cl100k_base is the encoding of text-embedding-3-small.
# ---------------------------------------------------------------------------

_encoder: tiktoken.Encoding | None = None


def _get_encoder() -> tiktoken.Encoding:
    """Lazily initialize and cache the tiktoken encoder."""
    global _encoder
    if _encoder is None:
        _encoder = tiktoken.get_encoding("cl100k_base")
    return _encoder


def count_tokens(text: str) -> int:
    return len(_get_encoder().encode(text))


def chunk_text(
    text: str,
    chunk_size: int = 512,
    chunk_overlap: int = 50,
    source: str = "",
) -> list[ChunkResult]:
    """
    Split text into token-based chunks.

    Args:
        text: The text to split.
        chunk_size: Maximum tokens per chunk (default 512).
        chunk_overlap: Token overlap between consecutive chunks (default 50).
        source: Name used in log messages only.

    Returns:
        List of ChunkResult in text order. Empty for blank text.

    Raises:
        ValueError: If chunk_overlap is not smaller than chunk_size.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if not 0 <= chunk_overlap < chunk_size:
        raise ValueError("chunk_overlap must be in [0, chunk_size)")

    encoder = _get_encoder()
    all_tokens = encoder.encode(text)
    total_tokens = len(all_tokens)

    if total_tokens == 0 or not text.strip():
        logger.warning("No tokens to chunk in '%s'", source or "<text>")
        return []

    chunks: list[ChunkResult] = []
    step = chunk_size - chunk_overlap

    for start in range(0, total_tokens, step):
        end = min(start + chunk_size, total_tokens)
        token_window = all_tokens[start:end]

        chunk = encoder.decode(token_window).strip()
        if chunk:
            chunks.append(ChunkResult(
                content=chunk,
                chunk_index=len(chunks),
                token_count=len(token_window),
            ))

        # Stop once the window has reached the end of the text
        if end >= total_tokens:
            break

    logger.info(
        "Chunked '%s' into %d chunks (%d tokens, size=%d, overlap=%d)",
        source or "<text>", len(chunks), total_tokens, chunk_size, chunk_overlap,
    )
    return chunks
