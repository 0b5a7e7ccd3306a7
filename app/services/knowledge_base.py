# =============================================================================
# Legal Knowledge Base — Retrieval of Grounding Snippets
# =============================================================================
#
# An indexed corpus of Indian legal reference material (CGST Act,
# notifications, labour codes, the DPDP Act, ...) queried for snippets that
# ground the compliance analysis and Q&A answers.
#
# DESIGN DECISION: Protocol (structural typing), two implementations.
#   KnowledgeBase (Protocol)
#   ├── ChromaKnowledgeBase — ChromaDB collection + OpenAI-compatible embeddings
#   │   ├── add_source()    — sync (loader script)
#   │   └── search()        — async via asyncio.to_thread() wrapper
#   └── NullKnowledgeBase   — knowledge base not configured; no snippets
#
# DESIGN DECISION: Cosine distance. Chroma reports distances in [0, 2];
# similarity = 1 - distance, matching what the embedding model is
# trained for.
#
# DESIGN DECISION: One collection for the whole corpus. Every chunk
# carries its source title in metadata so answers can cite it.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Protocol

from app.config import Settings
from app.services.chunker import chunk_text
from app.services.embedder import Embedder

logger = logging.getLogger(__name__)


@dataclass
class KnowledgeSnippet:
    """One retrieved passage of reference material."""

    text: str
    source: str
    score: float = 0.0  # cosine similarity, higher = more relevant

    def render(self) -> str:
        return f"[{self.source}]\n{self.text}" if self.source else self.text


class KnowledgeBase(Protocol):
    async def search(self, query: str, top_k: int = 5) -> list[KnowledgeSnippet]:
        """Snippets most relevant to `query`, best first."""
        ...


class NullKnowledgeBase:
    """Used when KNOWLEDGE_BASE_ENABLED is false."""

    async def search(self, query: str, top_k: int = 5) -> list[KnowledgeSnippet]:
        return []


def _slug(title: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-") or "source"


class ChromaKnowledgeBase:
    """
    ChromaDB-backed knowledge base.

    ChromaDB supports three modes:
    - Client/server: set CHROMA_URL (Docker deployment)
    - Persistent in-process: set CHROMA_PERSIST_DIR
    - Ephemeral in-process: neither (tests, experiments)
    """

    def __init__(
        self,
        embedder: Embedder,
        collection_name: str,
        chroma_url: str | None = None,
        persist_dir: str | None = None,
        chunk_size: int = 512,
        chunk_overlap: int = 50,
    ) -> None:
        import chromadb

        if chroma_url:
            self._client = chromadb.HttpClient(host=chroma_url)
        elif persist_dir:
            self._client = chromadb.PersistentClient(path=persist_dir)
        else:
            self._client = chromadb.Client()

        self._collection = self._client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine"},
        )
        self._embedder = embedder
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap

        logger.info("Using Chroma knowledge base (collection=%s)", collection_name)

    def add_source(self, title: str, text: str) -> int:
        """
        Chunk, embed and store one reference text. Returns the chunk count.

        Chunk ids are derived from the title, so loading the same source
        again overwrites its chunks instead of duplicating them.
        """
        chunks = chunk_text(
            text,
            chunk_size=self._chunk_size,
            chunk_overlap=self._chunk_overlap,
            source=title,
        )
        if not chunks:
            return 0

        contents = [c.content for c in chunks]
        embeddings = self._embedder.embed_batch(contents)
        slug = _slug(title)

        self._collection.upsert(
            ids=[f"{slug}-{c.chunk_index}" for c in chunks],
            documents=contents,
            embeddings=embeddings,
            metadatas=[
                {"source": title, "chunk_index": c.chunk_index, "token_count": c.token_count}
                for c in chunks
            ],
        )
        logger.info("Stored %d chunks for '%s' in knowledge base", len(chunks), title)
        return len(chunks)

    async def search(self, query: str, top_k: int = 5) -> list[KnowledgeSnippet]:
        """
        Similarity search.

        Both the embedding call and Chroma's client are synchronous, so the
        whole lookup runs in a worker thread.
        """
        if not query.strip():
            return []

        def _sync_search() -> list[KnowledgeSnippet]:
            query_embedding = self._embedder.embed_query(query)
            results = self._collection.query(
                query_embeddings=[query_embedding],
                n_results=top_k,
                include=["documents", "metadatas", "distances"],
            )

            snippets: list[KnowledgeSnippet] = []
            if not results or not results["ids"] or not results["ids"][0]:
                return snippets

            documents = results["documents"][0] if results["documents"] else []
            metadatas = results["metadatas"][0] if results["metadatas"] else []
            distances = results["distances"][0] if results["distances"] else []
            for i in range(len(results["ids"][0])):
                metadata = metadatas[i] if i < len(metadatas) else {}
                distance = distances[i] if i < len(distances) else 1.0
                snippets.append(KnowledgeSnippet(
                    text=documents[i] if i < len(documents) else "",
                    source=str((metadata or {}).get("source", "")),
                    score=round(1.0 - distance, 4),
                ))
            return snippets

        snippets = await asyncio.to_thread(_sync_search)
        logger.debug("Knowledge base returned %d snippets (top_k=%d)", len(snippets), top_k)
        return snippets


def build_knowledge_base(settings: Settings) -> KnowledgeBase:
    """ChromaKnowledgeBase when enabled in settings, NullKnowledgeBase otherwise."""
    if not settings.knowledge_base_enabled:
        logger.info("Knowledge base disabled; analysis runs without grounding snippets")
        return NullKnowledgeBase()

    return ChromaKnowledgeBase(
        embedder=Embedder(settings),
        collection_name=settings.knowledge_base_collection,
        chroma_url=settings.chroma_url,
        persist_dir=settings.chroma_persist_dir,
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
    )
