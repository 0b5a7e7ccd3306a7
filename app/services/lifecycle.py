# =============================================================================
# Document Lifecycle — Upload, Extract, Analyse
# =============================================================================
#
# Orchestrates everything that happens to an uploaded document:
#
#   submit()          store blob → create Document(processing) → enqueue job
#                     → return immediately (the pipeline is NOT awaited)
#   run_pipeline()    [worker] Extract step, then Analyze step
#   trigger_reanalysis() / run_reanalysis()
#                     Analyze step again on the stored text
#
# STATE MACHINE (enforced by DocumentStore):
#
#   processing ──extract ok──▶ extracted ──analysis ok──▶ completed
#        │                          │
#        └──extract failed──────────┴──analysis failed──▶ error
#
# DESIGN DECISION: Two sequential, non-retried steps.
# Extraction failures (corrupt or unreadable file) and analysis failures
# (model or parse errors) have different remedies: re-upload versus
# re-analyse. Persisting status after each step lets a polling client
# show which one happened.
#
# DESIGN DECISION: The pipeline never raises.
# Its caller (a Celery task or an asyncio task) already returned to the
# HTTP client long ago. Every failure is logged and written to the
# document's status / error_message for the next poll to observe.
# =============================================================================

from __future__ import annotations

import logging
import time
from pathlib import PurePosixPath

from app.agents.compliance import ComplianceAnalyzer
from app.db.models import Analysis, Document, DocumentStatus
from app.db.store import DocumentStore
from app.exceptions import (
    BlobExistsError,
    ComplianceAppError,
    InvalidTransitionError,
    RequestValidationFailed,
    UpstreamServiceError,
)
from app.models.jobs import Job, ProcessDocumentJob, ReanalyzeDocumentJob
from app.services.extraction import TextExtractor
from app.services.knowledge_base import KnowledgeBase
from app.services.storage import BlobStore
from app.workers.queue import JobQueue

logger = logging.getLogger(__name__)

# Same-millisecond uploads of one file name move on to the next millisecond
UPLOAD_NAME_ATTEMPTS = 5


def describe_error(exc: BaseException) -> str:
    """Human-readable message for a captured failure."""
    if isinstance(exc, ComplianceAppError):
        return exc.message
    return str(exc) or exc.__class__.__name__


def report_path_for(owner: str, analysis_id: str) -> str:
    return f"users/{owner}/reports/report-{analysis_id}.pdf"


class DocumentLifecycle:
    """The only component that changes a document's status."""

    def __init__(
        self,
        store: DocumentStore,
        blobs: BlobStore,
        extractor: TextExtractor,
        analyzer: ComplianceAnalyzer,
        knowledge_base: KnowledgeBase,
        jobs: JobQueue,
        max_upload_bytes: int = 15 * 1024 * 1024,
        knowledge_base_query_chars: int = 1000,
        knowledge_base_top_k: int = 5,
    ) -> None:
        self._store = store
        self._blobs = blobs
        self._extractor = extractor
        self._analyzer = analyzer
        self._knowledge_base = knowledge_base
        self._jobs = jobs
        self._max_upload_bytes = max_upload_bytes
        self._kb_query_chars = knowledge_base_query_chars
        self._kb_top_k = knowledge_base_top_k

    # -------------------------------------------------------------------------
    # Submit
    # -------------------------------------------------------------------------

    async def submit(
        self,
        data: bytes,
        file_name: str,
        owner: str,
        content_type: str = "application/octet-stream",
    ) -> Document:
        """
        Validate, store, record and enqueue an upload.

        Returns the new Document (status=processing) without waiting for
        any processing.

        Raises:
            RequestValidationFailed: no file name, empty file, or over the
                size limit (nothing is stored).
            StorageError: the blob could not be written.
        """
        name = PurePosixPath((file_name or "").replace("\\", "/")).name
        if not name:
            raise RequestValidationFailed("No file provided")
        if not data:
            raise RequestValidationFailed("Uploaded file is empty")
        if len(data) > self._max_upload_bytes:
            limit_mb = self._max_upload_bytes // (1024 * 1024)
            raise RequestValidationFailed(f"File size exceeds {limit_mb}MB limit")

        storage_path = await self._store_upload(data, name, owner, content_type)
        doc = await self._store.create_document(owner, name, len(data), storage_path)

        job = ProcessDocumentJob(document_id=doc.id, owner=owner, storage_path=storage_path)
        try:
            await self._jobs.enqueue(job)
        except Exception as exc:
            logger.exception("Could not enqueue processing for document %s", doc.id)
            await self._store.mark_error(doc.id, owner, "Processing could not be scheduled")
            raise UpstreamServiceError(f"Could not schedule processing: {exc}") from exc

        logger.info("Submitted document %s (%s) for %s", doc.id, name, owner)
        return doc

    async def _store_upload(
        self, data: bytes, name: str, owner: str, content_type: str,
    ) -> str:
        """Write the upload to a path no other upload holds."""
        stamp = int(time.time() * 1000)
        for attempt in range(UPLOAD_NAME_ATTEMPTS):
            try:
                return await self._blobs.upload(
                    data,
                    f"{stamp + attempt}-{name}",
                    owner,
                    folder="uploads",
                    content_type=content_type,
                    overwrite=False,
                )
            except BlobExistsError:
                logger.info("Upload path for %s taken, trying the next millisecond", name)
        raise BlobExistsError(f"No free upload path for {name}")

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    async def run_pipeline(self, job: ProcessDocumentJob) -> None:
        """Extract, then analyse. Never raises."""
        document_id, owner = job.document_id, job.owner
        logger.info("[%s] Pipeline started", document_id)

        # --- Step 1/2: Extract ---
        try:
            data = await self._blobs.download(job.storage_path)
            extracted = await self._extractor.extract(
                data, PurePosixPath(job.storage_path).name,
            )
            await self._store.save_document_text(
                document_id,
                owner,
                extracted_text=extracted.text,
                language=extracted.language,
                page_count=extracted.page_count,
                referenced_documents=extracted.referenced_documents,
            )
            await self._store.mark_extracted(document_id, owner, extracted.language)
        except Exception as exc:
            logger.exception("[%s] Extraction failed", document_id)
            await self._record_failure(document_id, owner, exc)
            return

        logger.info(
            "[%s] Step 1/2 done: %d chars, %d pages, language=%s",
            document_id, len(extracted.text), extracted.page_count, extracted.language,
        )

        # --- Step 2/2: Analyze ---
        try:
            analysis = await self._analyze(
                document_id, owner, extracted.text, extracted.referenced_documents,
            )
            await self._store.mark_completed(document_id, owner, analysis.id)
        except Exception as exc:
            logger.exception("[%s] Analysis failed", document_id)
            await self._record_failure(document_id, owner, exc)
            return

        logger.info(
            "[%s] Step 2/2 done: analysis=%s score=%d",
            document_id, analysis.id, analysis.india_law_score,
        )

    async def _analyze(
        self,
        document_id: str,
        owner: str,
        text: str,
        referenced_documents: list[str],
    ) -> Analysis:
        started = time.perf_counter()

        snippets = await self._knowledge_base.search(
            text[: self._kb_query_chars], top_k=self._kb_top_k,
        )
        result = await self._analyzer.analyze(
            text, referenced_documents, [snippet.render() for snippet in snippets],
        )
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        report = result.report
        return await self._store.create_analysis(
            document_id,
            owner,
            india_law_score=int(report.india_law_score),
            risk_summary=report.risk_summary.model_dump(mode="json", by_alias=True),
            category_scores=[
                c.model_dump(mode="json", by_alias=True) for c in report.category_scores
            ],
            risks=[r.model_dump(mode="json", by_alias=True) for r in report.risks],
            recommendations=[
                r.model_dump(mode="json", by_alias=True) for r in report.recommendations
            ],
            knowledge_base_citations=list(report.knowledge_base_citations),
            processing_time_ms=elapsed_ms,
            model=result.model,
        )

    async def _record_failure(self, document_id: str, owner: str, exc: Exception) -> None:
        try:
            await self._store.mark_error(document_id, owner, describe_error(exc))
        except Exception:
            # Document deleted meanwhile, or already terminal
            logger.exception("[%s] Could not record pipeline failure", document_id)

    # -------------------------------------------------------------------------
    # Status and re-analysis
    # -------------------------------------------------------------------------

    async def get_status(self, document_id: str, owner: str) -> Document:
        return await self._store.get_document(document_id, owner)

    async def trigger_reanalysis(self, document_id: str, owner: str) -> Document:
        """
        Enqueue a new analysis of an extracted document.

        Raises:
            NotFoundError: unknown document, or its text is not extracted.
            AccessDeniedError: the caller does not own the document.
            InvalidTransitionError: the first analysis is still running.
        """
        doc = await self._store.get_document(document_id, owner)
        await self._store.get_document_text(document_id, owner)
        if doc.status == DocumentStatus.EXTRACTED:
            raise InvalidTransitionError("Analysis is already in progress for this document")

        await self._jobs.enqueue(ReanalyzeDocumentJob(document_id=document_id, owner=owner))
        logger.info("Re-analysis of document %s requested by %s", document_id, owner)
        return doc

    async def run_reanalysis(self, job: ReanalyzeDocumentJob) -> None:
        """
        Analyse the stored text again. Never raises.

        Success creates a new Analysis (earlier ones are untouched) and
        marks the document completed. Failure keeps the current status
        and records the error message.
        """
        document_id, owner = job.document_id, job.owner
        try:
            text = await self._store.get_document_text(document_id, owner)
            analysis = await self._analyze(
                document_id, owner, text.extracted_text, list(text.referenced_documents),
            )
            await self._store.record_reanalysis(document_id, owner, analysis.id)
        except Exception as exc:
            logger.exception("[%s] Re-analysis failed", document_id)
            try:
                await self._store.record_reanalysis_failure(
                    document_id, owner, describe_error(exc),
                )
            except Exception:
                logger.exception("[%s] Could not record re-analysis failure", document_id)
            return

        logger.info("[%s] Re-analysis done: analysis=%s", document_id, analysis.id)

    async def handle_job(self, job: Job) -> None:
        """Entry point for job queue consumers."""
        if isinstance(job, ProcessDocumentJob):
            await self.run_pipeline(job)
        elif isinstance(job, ReanalyzeDocumentJob):
            await self.run_reanalysis(job)
        else:
            raise TypeError(f"Unknown job type: {type(job).__name__}")

    # -------------------------------------------------------------------------
    # Deletion
    # -------------------------------------------------------------------------

    async def delete(self, document_id: str, owner: str) -> None:
        """Delete the document records, then its upload and report blobs."""
        analyses = await self._store.list_analyses(document_id, owner)
        doc = await self._store.delete_document(document_id, owner)

        paths = [doc.storage_path] + [report_path_for(owner, a.id) for a in analyses]
        for path in paths:
            try:
                await self._blobs.delete(path)
            except UpstreamServiceError:
                # Records are gone; an orphaned blob is only wasted space
                logger.warning("Could not delete blob %s of document %s", path, document_id)
