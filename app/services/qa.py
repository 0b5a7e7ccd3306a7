# =============================================================================
# Question Answering — Streaming, Grounded, Session-Recorded
# =============================================================================
#
# Answers a question about one document and streams the answer as it is
# generated. Two phases:
#
#   prepare()   runs BEFORE the HTTP stream opens, so its failures are
#               ordinary 404 / 403 responses:
#                 document exists and is owned → text extracted → session
#   events()    the stream itself, as a sequence of event dicts:
#                 {"chunk": "...", "type": "content"}          (repeated)
#                 {"chunk": "", "type": "complete", "answer": "..."}
#               or, on any failure, a final
#                 {"type": "error", "error": "..."}
#
# ORDERING: fragments are forwarded in exactly the order the model
# produces them; nothing is buffered.
#
# SESSION APPEND: the user question and the final (possibly translated)
# answer are appended together, in one transaction, only once the whole
# answer exists. A client that disconnects mid-stream closes the generator;
# the model stream is closed with it and nothing is appended.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass

from app.agents.qa import build_qa_prompt
from app.db.models import Document, DocumentText, MessageRole, QASession
from app.db.store import DocumentStore, MessageDraft
from app.exceptions import ModelError, NotFoundError
from app.services.knowledge_base import KnowledgeBase
from app.services.lifecycle import describe_error
from app.services.llm import LLMProvider
from app.services.translation import Translator

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Failed to generate an answer. Please try again."


@dataclass
class PreparedQuestion:
    """Everything validated before streaming starts."""

    document: Document
    text: DocumentText
    session: QASession
    question: str


class QAService:
    def __init__(
        self,
        store: DocumentStore,
        llm: LLMProvider,
        translator: Translator,
        knowledge_base: KnowledgeBase,
        default_language: str = "en",
        context_chars: int = 10_000,
        top_k: int = 5,
        temperature: float = 0.3,
        max_tokens: int = 2048,
        expose_errors: bool = True,
    ) -> None:
        self._store = store
        self._llm = llm
        self._translator = translator
        self._knowledge_base = knowledge_base
        self._default_language = default_language
        self._context_chars = context_chars
        self._top_k = top_k
        self._temperature = temperature
        self._max_tokens = max_tokens
        self.expose_errors = expose_errors

    async def prepare(
        self,
        document_id: str,
        owner: str,
        question: str,
        session_id: str | None = None,
    ) -> PreparedQuestion:
        """
        Raises:
            NotFoundError: unknown document or session, or text not
                extracted yet.
            AccessDeniedError: document or session owned by someone else.
        """
        document = await self._store.get_document(document_id, owner)
        text = await self._store.get_document_text(document_id, owner)

        if session_id:
            session = await self._store.get_session(session_id, owner)
            if session.document_id != document_id:
                raise NotFoundError("Session not found for this document")
        else:
            session = await self._store.get_or_create_session(document_id, owner)

        return PreparedQuestion(document=document, text=text, session=session, question=question)

    async def events(self, prepared: PreparedQuestion) -> AsyncIterator[dict]:
        document_id = prepared.document.id
        owner = prepared.document.owner_id
        question = prepared.question

        try:
            language = await self._translator.detect_language(question)
            analysis = await self._store.get_latest_analysis(document_id, owner)
            snippets = await self._knowledge_base.search(question, top_k=self._top_k)

            prompt = build_qa_prompt(
                question,
                prepared.text.extracted_text,
                analysis,
                snippets,
                list(prepared.session.messages),
                context_chars=self._context_chars,
            )

            parts: list[str] = []
            fragments = self._llm.stream(
                prompt.messages,
                system=prompt.system,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
            async with aclosing(fragments):
                async for fragment in fragments:
                    parts.append(fragment)
                    yield {"chunk": fragment, "type": "content"}

            answer = "".join(parts)
            if not answer.strip():
                raise ModelError("The model returned an empty answer")

            if language != self._default_language:
                answer = await self._translator.translate_with_glossary(answer, language)

            citations = list(dict.fromkeys(s.source for s in snippets if s.source)) or None
            await self._store.append_messages(
                prepared.session.id,
                owner,
                [
                    MessageDraft(role=MessageRole.USER, content=question, language=language),
                    MessageDraft(
                        role=MessageRole.ASSISTANT,
                        content=answer,
                        language=language,
                        citations=citations,
                    ),
                ],
            )
        except Exception as exc:
            logger.exception("Q&A failed for document %s", document_id)
            message = describe_error(exc) if self.expose_errors else GENERIC_ERROR
            yield {"type": "error", "error": message}
            return

        logger.info(
            "Answered question on document %s (%d fragments, language=%s)",
            document_id, len(parts), language,
        )
        yield {"chunk": "", "type": "complete", "answer": answer}
