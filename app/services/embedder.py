# =============================================================================
# Embedding Service — Batch Vector Generation (Provider-Agnostic)
# =============================================================================
#
# Generates vector embeddings for the legal knowledge base using any
# OpenAI-compatible embedding API (OpenAI, DashScope, a local TEI server).
#
# DESIGN DECISION: OpenAI SDK with configurable base_url.
# Most providers expose the OpenAI embeddings endpoint, so switching is a
# config change (EMBEDDING_BASE_URL, EMBEDDING_MODEL).
#
# DESIGN DECISION: Sync client. Both consumers are synchronous at heart:
# the knowledge-base loader script, and Chroma search, which already runs
# in a worker thread (see knowledge_base.py).
#
# DESIGN DECISION: No retry logic. The OpenAI SDK retries transient HTTP
# errors itself; a persistent failure surfaces to the caller.
#
# TOKEN LIMITS:
# - Each text: max 8,191 tokens
# - We batch at 100 texts per API call (configurable via settings)
# - 100 chunks × 512 tokens = 51,200 tokens per call (well within limits)
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Sequence

from openai import OpenAI

from app.config import Settings

logger = logging.getLogger(__name__)


class Embedder:
    """
    Embedding client built from Settings.

    API key resolution order:
      1. OPENAI_API_KEY (explicit embedding key)
      2. LLM_API_KEY (shared key, e.g. one DashScope key for LLM + embeddings)
    """

    def __init__(self, settings: Settings) -> None:
        resolved_key = settings.openai_api_key or settings.llm_api_key
        if not resolved_key:
            raise ValueError(
                "No API key configured for embeddings. "
                "Set OPENAI_API_KEY or LLM_API_KEY in .env"
            )

        client_kwargs: dict = {"api_key": resolved_key}
        if settings.embedding_base_url:
            client_kwargs["base_url"] = settings.embedding_base_url

        self._client = OpenAI(**client_kwargs)
        self._model = settings.embedding_model
        self._dimensions = settings.embedding_dimensions
        self._batch_size = settings.embedding_batch_size

        logger.info(
            "Initialized embedding client (model=%s, base_url=%s)",
            self._model,
            settings.embedding_base_url or "https://api.openai.com/v1",
        )

    def embed_batch(
        self,
        texts: Sequence[str],
        batch_size: int | None = None,
    ) -> list[list[float]]:
        """
        Generate embeddings for a batch of texts.

        Processes texts in sub-batches to respect API token limits.
        Returns embeddings in the SAME ORDER as the input texts.

        Raises:
            openai.APIError: If the embeddings API call fails.
        """
        if not texts:
            return []

        _batch_size = batch_size or self._batch_size
        all_embeddings: list[list[float]] = [[] for _ in texts]

        for i in range(0, len(texts), _batch_size):
            batch = list(texts[i : i + _batch_size])
            logger.info(
                "Embedding batch %d–%d of %d texts (model=%s)",
                i + 1,
                min(i + _batch_size, len(texts)),
                len(texts),
                self._model,
            )

            create_kwargs: dict = {"model": self._model, "input": batch}
            if self._dimensions:
                create_kwargs["dimensions"] = self._dimensions

            response = self._client.embeddings.create(**create_kwargs)

            # Sort by response.data[j].index so output order matches input
            for item in sorted(response.data, key=lambda x: x.index):
                all_embeddings[i + item.index] = item.embedding

        logger.info("Generated %d embeddings (model=%s)", len(texts), self._model)
        return all_embeddings

    def embed_query(self, text: str) -> list[float]:
        """Embedding for a single query string."""
        return self.embed_batch([text], batch_size=1)[0]
