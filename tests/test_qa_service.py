# =============================================================================
# Unit Tests — Streaming Question Answering
# =============================================================================
#
# Covers event order, translation of the final answer, the session append
# contract (2 messages per successful exchange, none on failure or
# disconnect) and the pre-stream checks.
# =============================================================================

from __future__ import annotations

import pytest
from fakes import FakeKnowledgeBase, FakeLLM, FakeTranslator, _run, build_test_services

from app.db.models import MessageRole
from app.exceptions import AccessDeniedError, ModelError, NotFoundError
from app.services.knowledge_base import KnowledgeSnippet
from app.services.qa import GENERIC_ERROR


def _extracted_doc(services, owner="alice"):
    """A document with extracted text, ready for questions."""
    async def setup():
        doc = await services.store.create_document(owner, "c.pdf", 10, f"users/{owner}/uploads/c.pdf")
        await services.store.save_document_text(
            doc.id, owner, "The vendor is registered under GST.", "en", 1, [],
        )
        await services.store.mark_extracted(doc.id, owner, "en")
        return doc

    return _run(setup())


def _collect(services, document_id, question, owner="alice", session_id=None):
    async def consume():
        prepared = await services.qa.prepare(document_id, owner, question, session_id)
        return [event async for event in services.qa.events(prepared)]

    return _run(consume())


def _messages(services, document_id, owner="alice"):
    session = _run(services.store.get_or_create_session(document_id, owner))
    return session.messages


class TestStreaming:

    def test_fragments_then_complete_in_model_order(self, tmp_path):
        llm = FakeLLM(fragments=["GST ", "applies ", "here."])
        services = build_test_services(tmp_path, llm=llm)
        doc = _extracted_doc(services)

        events = _collect(services, doc.id, "Does GST apply?")

        assert events == [
            {"chunk": "GST ", "type": "content"},
            {"chunk": "applies ", "type": "content"},
            {"chunk": "here.", "type": "content"},
            {"chunk": "", "type": "complete", "answer": "GST applies here."},
        ]
        call = llm.stream_calls[0]
        assert call["temperature"] == 0.3
        assert call["max_tokens"] == 2048
        assert call["messages"][-1] == {"role": "user", "content": "Does GST apply?"}
        assert "The vendor is registered under GST." in call["system"]

    def test_appends_question_and_answer(self, tmp_path):
        kb = FakeKnowledgeBase(snippets=[KnowledgeSnippet("s9", "CGST Act 2017", 0.8)])
        services = build_test_services(tmp_path, knowledge_base=kb)
        doc = _extracted_doc(services)

        _collect(services, doc.id, "Does GST apply?")

        user, assistant = _messages(services, doc.id)
        assert (user.role, user.content, user.language) == (MessageRole.USER, "Does GST apply?", "en")
        assert assistant.role == MessageRole.ASSISTANT
        assert assistant.content == "The contract is compliant."
        assert assistant.citations == ["CGST Act 2017"]
        assert kb.queries == ["Does GST apply?"]

    def test_n_exchanges_give_2n_messages_and_history_is_sent(self, tmp_path):
        llm = FakeLLM()
        services = build_test_services(tmp_path, llm=llm)
        doc = _extracted_doc(services)

        for n in range(3):
            _collect(services, doc.id, f"question {n}")

        messages = _messages(services, doc.id)
        assert len(messages) == 6
        assert [m.content for m in messages[::2]] == ["question 0", "question 1", "question 2"]
        # Third call saw the two earlier exchanges plus the new question
        assert len(llm.stream_calls[2]["messages"]) == 5

    def test_hindi_question_gets_translated_answer(self, tmp_path):
        translator = FakeTranslator()
        llm = FakeLLM(fragments=["GST registration ", "is required."])
        services = build_test_services(tmp_path, llm=llm, translator=translator)
        doc = _extracted_doc(services)

        events = _collect(services, doc.id, "क्या जीएसटी लागू है?")

        content = [e["chunk"] for e in events if e["type"] == "content"]
        assert content == ["GST registration ", "is required."]
        final = events[-1]
        assert final["type"] == "complete"
        assert final["answer"] == "[hi] जीएसटी registration is required."

        user, assistant = _messages(services, doc.id)
        assert user.language == "hi"
        assert assistant.language == "hi"
        assert assistant.content == final["answer"]


class TestFailures:

    def test_model_error_yields_error_and_appends_nothing(self, tmp_path):
        llm = FakeLLM(stream_error=ModelError("overloaded"), fail_after=1)
        services = build_test_services(tmp_path, llm=llm)
        doc = _extracted_doc(services)

        events = _collect(services, doc.id, "Does GST apply?")

        assert events[0] == {"chunk": "The contract ", "type": "content"}
        assert events[-1] == {"type": "error", "error": "overloaded"}
        assert not any(e["type"] == "complete" for e in events)
        assert _messages(services, doc.id) == []

    def test_empty_answer_is_an_error(self, tmp_path):
        services = build_test_services(tmp_path, llm=FakeLLM(fragments=[]))
        doc = _extracted_doc(services)

        events = _collect(services, doc.id, "Anything?")
        assert events[-1]["type"] == "error"
        assert _messages(services, doc.id) == []

    def test_translation_failure_appends_nothing(self, tmp_path):
        services = build_test_services(tmp_path, translator=FakeTranslator(fail=True))
        doc = _extracted_doc(services)

        events = _collect(services, doc.id, "क्या जीएसटी लागू है?")
        assert events[-1] == {"type": "error", "error": "Translation service unavailable"}
        assert _messages(services, doc.id) == []

    def test_production_hides_error_details(self, tmp_path):
        llm = FakeLLM(stream_error=ModelError("api key sk-123 rejected"))
        services = build_test_services(tmp_path, llm=llm, environment="production")
        doc = _extracted_doc(services)

        events = _collect(services, doc.id, "Does GST apply?")
        assert events == [{"type": "error", "error": GENERIC_ERROR}]

    def test_disconnect_mid_stream_appends_nothing(self, tmp_path):
        llm = FakeLLM(fragments=["one ", "two ", "three"])
        services = build_test_services(tmp_path, llm=llm)
        doc = _extracted_doc(services)

        async def read_one_then_leave():
            prepared = await services.qa.prepare(doc.id, "alice", "Does GST apply?")
            stream = services.qa.events(prepared)
            first = await anext(stream)
            await stream.aclose()
            return first

        assert _run(read_one_then_leave()) == {"chunk": "one ", "type": "content"}
        assert llm.stream_closed
        assert _messages(services, doc.id) == []


class TestPrepare:

    def test_unknown_document(self, tmp_path):
        services = build_test_services(tmp_path)
        with pytest.raises(NotFoundError):
            _run(services.qa.prepare("missing", "alice", "q"))

    def test_foreign_document(self, tmp_path):
        services = build_test_services(tmp_path)
        doc = _extracted_doc(services)
        with pytest.raises(AccessDeniedError):
            _run(services.qa.prepare(doc.id, "mallory", "q"))

    def test_text_not_extracted_yet(self, tmp_path):
        services = build_test_services(tmp_path)
        doc = _run(services.store.create_document("alice", "c.pdf", 10, "users/alice/uploads/c.pdf"))
        with pytest.raises(NotFoundError, match="not extracted yet"):
            _run(services.qa.prepare(doc.id, "alice", "q"))

    def test_session_of_another_document_is_rejected(self, tmp_path):
        services = build_test_services(tmp_path)
        doc_a = _extracted_doc(services)
        doc_b = _extracted_doc(services)
        other = _run(services.store.get_or_create_session(doc_b.id, "alice"))

        with pytest.raises(NotFoundError):
            _run(services.qa.prepare(doc_a.id, "alice", "q", session_id=other.id))

    def test_supplied_session_is_used(self, tmp_path):
        services = build_test_services(tmp_path)
        doc = _extracted_doc(services)
        session = _run(services.store.get_or_create_session(doc.id, "alice"))

        prepared = _run(services.qa.prepare(doc.id, "alice", "q", session_id=session.id))
        assert prepared.session.id == session.id
