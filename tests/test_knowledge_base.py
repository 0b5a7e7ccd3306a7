# =============================================================================
# Unit Tests — Knowledge Base and Embeddings
# =============================================================================
#
# The embeddings client is mocked; Chroma runs in-process (ephemeral), so
# no API keys or servers are needed.
# =============================================================================

from __future__ import annotations

import uuid
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from fakes import _run, make_settings

from app.services.embedder import Embedder
from app.services.knowledge_base import (
    KnowledgeSnippet,
    NullKnowledgeBase,
    build_knowledge_base,
)


class KeywordEmbedder:
    """Deterministic 3-d vectors: (gst, labour, privacy) keyword hits."""

    KEYWORDS = ("gst", "wage", "personal data")

    def _vector(self, text: str) -> list[float]:
        lowered = text.lower()
        return [1.0 if word in lowered else 0.01 for word in self.KEYWORDS]

    def embed_batch(self, texts, batch_size=None):
        return [self._vector(t) for t in texts]

    def embed_query(self, text):
        return self._vector(text)


class TestKnowledgeSnippet:

    def test_render_with_source(self):
        snippet = KnowledgeSnippet(text="Tax is payable under reverse charge.", source="CGST Act 2017")
        assert snippet.render() == "[CGST Act 2017]\nTax is payable under reverse charge."

    def test_render_without_source(self):
        assert KnowledgeSnippet(text="plain").render() == "plain"


class TestNullKnowledgeBase:

    def test_returns_nothing(self):
        assert _run(NullKnowledgeBase().search("GST on legal services")) == []

    def test_built_when_disabled(self, tmp_path):
        kb = build_knowledge_base(make_settings(tmp_path, knowledge_base_enabled=False))
        assert isinstance(kb, NullKnowledgeBase)


class TestEmbedder:

    def _embedder(self, tmp_path, **overrides):
        settings = make_settings(tmp_path, openai_api_key="sk-test", **overrides)
        with patch("app.services.embedder.OpenAI") as client_cls:
            embedder = Embedder(settings)
        return embedder, client_cls.return_value

    def test_requires_an_api_key(self, tmp_path):
        settings = make_settings(tmp_path, openai_api_key="", llm_api_key=None)
        with pytest.raises(ValueError, match="API key"):
            Embedder(settings)

    def test_batches_and_preserves_order(self, tmp_path):
        embedder, client = self._embedder(tmp_path)

        def create(model, input, **kwargs):
            # Return out of order; the embedder sorts by index
            data = [SimpleNamespace(index=i, embedding=[float(len(t))]) for i, t in enumerate(input)]
            return SimpleNamespace(data=list(reversed(data)))

        client.embeddings.create = MagicMock(side_effect=create)
        vectors = embedder.embed_batch(["a", "bb", "ccc"], batch_size=2)

        assert vectors == [[1.0], [2.0], [3.0]]
        assert client.embeddings.create.call_count == 2

    def test_empty_input_skips_the_api(self, tmp_path):
        embedder, client = self._embedder(tmp_path)
        assert embedder.embed_batch([]) == []
        client.embeddings.create.assert_not_called()


class TestChromaKnowledgeBase:

    @pytest.fixture
    def kb(self):
        pytest.importorskip("chromadb")
        from app.services.knowledge_base import ChromaKnowledgeBase

        return ChromaKnowledgeBase(
            embedder=KeywordEmbedder(),
            collection_name=f"test-{uuid.uuid4().hex[:8]}",
            chunk_size=64,
            chunk_overlap=0,
        )

    def test_search_ranks_relevant_source_first(self, kb):
        kb.add_source("CGST Act 2017", "GST is levied on the supply of services.")
        kb.add_source("Code on Wages 2019", "Every employer shall pay the minimum wage.")

        snippets = _run(kb.search("What GST applies?", top_k=2))
        assert snippets[0].source == "CGST Act 2017"
        assert snippets[0].score > snippets[1].score

    def test_reloading_a_source_overwrites_it(self, kb):
        assert kb.add_source("DPDP Act 2023", "Personal data must be processed lawfully.") == 1
        kb.add_source("DPDP Act 2023", "Personal data must be processed lawfully.")
        snippets = _run(kb.search("personal data", top_k=5))
        assert [s.source for s in snippets] == ["DPDP Act 2023"]

    def test_blank_query_returns_nothing(self, kb):
        kb.add_source("CGST Act 2017", "GST is levied on the supply of services.")
        assert _run(kb.search("   ")) == []

    def test_blank_source_adds_nothing(self, kb):
        assert kb.add_source("Empty", "  ") == 0
