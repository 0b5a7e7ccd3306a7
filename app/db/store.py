# =============================================================================
# Document Store — Owner-Scoped Persistence Operations
# =============================================================================
#
# Every read and write of an owned record goes through this class. Each
# method opens its own session, does one unit of work, and commits before
# returning, which makes every call one atomic per-record write.
#
# OWNERSHIP:
#   unknown id            → NotFoundError (404)
#   id owned by someone   → AccessDeniedError (403)
# Both are raised BEFORE any data of the record is returned or modified.
#
# STATUS TRANSITIONS (upload pipeline):
#
#   PROCESSING ──▶ EXTRACTED ──▶ COMPLETED
#        │              │
#        └──────────────┴──▶ ERROR
#
# Anything else raises InvalidTransitionError. Re-analysis is the one
# explicit recovery path and goes through record_reanalysis().
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models import (
    Analysis,
    ApiKey,
    ChatMessage,
    Document,
    DocumentStatus,
    DocumentText,
    MessageRole,
    QASession,
    utcnow,
)
from app.exceptions import AccessDeniedError, InvalidTransitionError, NotFoundError

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.PROCESSING: frozenset({DocumentStatus.EXTRACTED, DocumentStatus.ERROR}),
    DocumentStatus.EXTRACTED: frozenset({DocumentStatus.COMPLETED, DocumentStatus.ERROR}),
    DocumentStatus.COMPLETED: frozenset(),
    DocumentStatus.ERROR: frozenset(),
}

# Longest error message stored on a document
_MAX_ERROR_LENGTH = 1000

_Owned = TypeVar("_Owned", Document, Analysis, QASession)


@dataclass
class MessageDraft:
    """A chat message not yet persisted."""

    role: MessageRole
    content: str
    language: str
    citations: list[str] | None = None
    timestamp: datetime | None = None


def check_transition(current: DocumentStatus, target: DocumentStatus) -> None:
    """Raise InvalidTransitionError unless current → target is allowed."""
    if target not in _ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Cannot move document from '{current.value}' to '{target.value}'"
        )


class DocumentStore:
    """Persistence operations for documents and everything they own."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    @staticmethod
    async def _load_owned(
        session: AsyncSession,
        model: type[_Owned],
        record_id: str,
        owner: str,
        label: str,
    ) -> _Owned:
        record = await session.get(model, record_id)
        if record is None:
            raise NotFoundError(f"{label} not found")
        if record.owner_id != owner:
            logger.warning(
                "Owner mismatch on %s %s (caller=%s)", label.lower(), record_id, owner,
            )
            raise AccessDeniedError()
        return record

    async def _update_status(
        self,
        document_id: str,
        owner: str,
        target: DocumentStatus,
        **values: object,
    ) -> Document:
        async with self._session_factory() as session:
            doc = await self._load_owned(session, Document, document_id, owner, "Document")
            check_transition(doc.status, target)
            doc.status = target
            for key, value in values.items():
                setattr(doc, key, value)
            await session.commit()
            logger.info("Document %s → %s", document_id, target.value)
            return doc

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    async def create_document(
        self,
        owner: str,
        name: str,
        size: int,
        storage_path: str,
    ) -> Document:
        async with self._session_factory() as session:
            doc = Document(
                owner_id=owner,
                name=name,
                size=size,
                storage_path=storage_path,
                status=DocumentStatus.PROCESSING,
            )
            session.add(doc)
            await session.commit()
            logger.info("Created document %s for %s (%s, %d bytes)", doc.id, owner, name, size)
            return doc

    async def get_document(self, document_id: str, owner: str) -> Document:
        async with self._session_factory() as session:
            return await self._load_owned(session, Document, document_id, owner, "Document")

    async def list_documents(self, owner: str) -> list[Document]:
        """The owner's documents, newest first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Document)
                .where(Document.owner_id == owner)
                .order_by(Document.uploaded_at.desc())
            )
            return list(result.scalars().all())

    async def delete_document(self, document_id: str, owner: str) -> Document:
        """
        Delete a document with its text, analyses, session and messages.

        Returns the deleted record so the caller can remove the blob.
        """
        async with self._session_factory() as session:
            doc = await self._load_owned(session, Document, document_id, owner, "Document")

            session_ids = select(QASession.id).where(QASession.document_id == document_id)
            await session.execute(
                delete(ChatMessage).where(ChatMessage.session_id.in_(session_ids))
            )
            await session.execute(delete(QASession).where(QASession.document_id == document_id))
            await session.execute(delete(Analysis).where(Analysis.document_id == document_id))
            await session.execute(
                delete(DocumentText).where(DocumentText.document_id == document_id)
            )
            await session.delete(doc)
            await session.commit()
            logger.info("Deleted document %s", document_id)
            return doc

    async def mark_extracted(self, document_id: str, owner: str, language: str) -> Document:
        return await self._update_status(
            document_id, owner, DocumentStatus.EXTRACTED, language=language,
        )

    async def mark_completed(self, document_id: str, owner: str, analysis_id: str) -> Document:
        return await self._update_status(
            document_id, owner, DocumentStatus.COMPLETED, analysis_id=analysis_id,
        )

    async def mark_error(self, document_id: str, owner: str, message: str) -> Document:
        message = (message or "Processing failed")[:_MAX_ERROR_LENGTH]
        return await self._update_status(
            document_id, owner, DocumentStatus.ERROR, error_message=message,
        )

    async def record_reanalysis(
        self,
        document_id: str,
        owner: str,
        analysis_id: str,
    ) -> Document:
        """
        Point the document at a fresh analysis.

        The status becomes COMPLETED whatever it was, and any earlier
        error message is cleared. Never goes back to PROCESSING.
        """
        async with self._session_factory() as session:
            doc = await self._load_owned(session, Document, document_id, owner, "Document")
            previous = doc.status
            doc.status = DocumentStatus.COMPLETED
            doc.analysis_id = analysis_id
            doc.error_message = None
            await session.commit()
            logger.info(
                "Document %s re-analysed (%s → completed, analysis=%s)",
                document_id, previous.value, analysis_id,
            )
            return doc

    async def record_reanalysis_failure(
        self,
        document_id: str,
        owner: str,
        message: str,
    ) -> Document:
        """Keep the current status; only the error message is written."""
        async with self._session_factory() as session:
            doc = await self._load_owned(session, Document, document_id, owner, "Document")
            doc.error_message = (message or "Re-analysis failed")[:_MAX_ERROR_LENGTH]
            await session.commit()
            return doc

    # -------------------------------------------------------------------------
    # Extracted text
    # -------------------------------------------------------------------------

    async def save_document_text(
        self,
        document_id: str,
        owner: str,
        extracted_text: str,
        language: str,
        page_count: int,
        referenced_documents: list[str],
    ) -> DocumentText:
        async with self._session_factory() as session:
            await self._load_owned(session, Document, document_id, owner, "Document")
            if await session.get(DocumentText, document_id) is not None:
                raise InvalidTransitionError(
                    f"Text for document {document_id} was already extracted"
                )
            text = DocumentText(
                document_id=document_id,
                owner_id=owner,
                extracted_text=extracted_text,
                language=language,
                page_count=page_count,
                referenced_documents=list(referenced_documents),
            )
            session.add(text)
            await session.commit()
            return text

    async def get_document_text(self, document_id: str, owner: str) -> DocumentText:
        async with self._session_factory() as session:
            await self._load_owned(session, Document, document_id, owner, "Document")
            text = await session.get(DocumentText, document_id)
            if text is None:
                raise NotFoundError("Document text not extracted yet")
            return text

    # -------------------------------------------------------------------------
    # Analyses
    # -------------------------------------------------------------------------

    async def create_analysis(
        self,
        document_id: str,
        owner: str,
        india_law_score: int,
        risk_summary: dict,
        category_scores: list[dict],
        risks: list[dict],
        recommendations: list[dict],
        knowledge_base_citations: list[str],
        processing_time_ms: int = 0,
        model: str | None = None,
    ) -> Analysis:
        async with self._session_factory() as session:
            await self._load_owned(session, Document, document_id, owner, "Document")
            analysis = Analysis(
                document_id=document_id,
                owner_id=owner,
                india_law_score=india_law_score,
                risk_summary=risk_summary,
                category_scores=category_scores,
                risks=risks,
                recommendations=recommendations,
                knowledge_base_citations=knowledge_base_citations,
                processing_time_ms=processing_time_ms,
                model=model,
            )
            session.add(analysis)
            await session.commit()
            logger.info(
                "Stored analysis %s for document %s (score=%d, risks=%d)",
                analysis.id, document_id, india_law_score, len(risks),
            )
            return analysis

    async def get_analysis(self, analysis_id: str, owner: str) -> Analysis:
        async with self._session_factory() as session:
            return await self._load_owned(session, Analysis, analysis_id, owner, "Analysis")

    async def get_latest_analysis(self, document_id: str, owner: str) -> Analysis | None:
        async with self._session_factory() as session:
            await self._load_owned(session, Document, document_id, owner, "Document")
            result = await session.execute(
                select(Analysis)
                .where(Analysis.document_id == document_id, Analysis.owner_id == owner)
                .order_by(Analysis.created_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def list_analyses(self, document_id: str, owner: str) -> list[Analysis]:
        """All analyses of a document, oldest first."""
        async with self._session_factory() as session:
            await self._load_owned(session, Document, document_id, owner, "Document")
            result = await session.execute(
                select(Analysis)
                .where(Analysis.document_id == document_id, Analysis.owner_id == owner)
                .order_by(Analysis.created_at)
            )
            return list(result.scalars().all())

    # -------------------------------------------------------------------------
    # Q&A sessions
    # -------------------------------------------------------------------------

    async def get_or_create_session(self, document_id: str, owner: str) -> QASession:
        """The (document, owner) session, created on first access."""
        async with self._session_factory() as session:
            await self._load_owned(session, Document, document_id, owner, "Document")
            existing = await self._find_session(session, document_id, owner)
            if existing is not None:
                return existing

            qa_session = QASession(document_id=document_id, owner_id=owner, messages=[])
            session.add(qa_session)
            try:
                await session.commit()
            except IntegrityError:
                # Created concurrently by another request
                await session.rollback()
                existing = await self._find_session(session, document_id, owner)
                if existing is None:
                    raise
                return existing

            logger.info("Created Q&A session %s for document %s", qa_session.id, document_id)
            return qa_session

    @staticmethod
    async def _find_session(
        session: AsyncSession,
        document_id: str,
        owner: str,
    ) -> QASession | None:
        result = await session.execute(
            select(QASession).where(
                QASession.document_id == document_id,
                QASession.owner_id == owner,
            )
        )
        return result.scalar_one_or_none()

    async def get_session(self, session_id: str, owner: str) -> QASession:
        async with self._session_factory() as session:
            return await self._load_owned(session, QASession, session_id, owner, "Session")

    async def append_messages(
        self,
        session_id: str,
        owner: str,
        drafts: list[MessageDraft],
    ) -> QASession:
        """Append a batch of messages in one transaction, in the given order."""
        async with self._session_factory() as session:
            qa_session = await self._load_owned(session, QASession, session_id, owner, "Session")
            next_position = len(qa_session.messages)
            for offset, draft in enumerate(drafts):
                qa_session.messages.append(
                    ChatMessage(
                        position=next_position + offset,
                        role=draft.role,
                        content=draft.content,
                        language=draft.language,
                        citations=draft.citations,
                        timestamp=draft.timestamp or utcnow(),
                    )
                )
            qa_session.updated_at = utcnow()
            await session.commit()
            return qa_session

    # -------------------------------------------------------------------------
    # API keys (not owner-scoped: they define the owner)
    # -------------------------------------------------------------------------

    async def create_api_key(
        self,
        name: str,
        user_id: str,
        key_prefix: str,
        key_hash: str,
        expires_at: datetime | None = None,
    ) -> ApiKey:
        async with self._session_factory() as session:
            api_key = ApiKey(
                name=name,
                user_id=user_id,
                key_prefix=key_prefix,
                key_hash=key_hash,
                expires_at=expires_at,
            )
            session.add(api_key)
            await session.commit()
            return api_key

    async def get_api_key_by_hash(self, key_hash: str) -> ApiKey | None:
        async with self._session_factory() as session:
            result = await session.execute(select(ApiKey).where(ApiKey.key_hash == key_hash))
            return result.scalar_one_or_none()

    async def touch_api_key(self, key_id: int) -> None:
        async with self._session_factory() as session:
            api_key = await session.get(ApiKey, key_id)
            if api_key is not None:
                api_key.last_used_at = utcnow()
                await session.commit()
