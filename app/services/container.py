# =============================================================================
# Service Container — Explicitly Constructed, Injected Handles
# =============================================================================
#
# Every external client (database engine, blob store, LLM, knowledge base,
# job queue) is built exactly once per process, here, and passed by
# reference to the components that use it. Nothing reads a global client.
#
#   API process:    create_app() lifespan → build_services(settings)
#                   → app.state.services → get_services() dependency
#   Celery worker:  worker_process_init → build_services(settings)
#   Tests:          assemble_services(...) with fakes
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from app.agents.compliance import ComplianceAnalyzer
from app.config import Settings
from app.db.engine import create_engine_for, create_session_factory, init_models
from app.db.store import DocumentStore
from app.services.extraction import DoclingTextExtractor, TextExtractor
from app.services.knowledge_base import KnowledgeBase, build_knowledge_base
from app.services.lifecycle import DocumentLifecycle
from app.services.llm import LLMProvider, build_llm_provider
from app.services.qa import QAService
from app.services.storage import LocalBlobStore
from app.services.translation import LLMTranslator, Translator
from app.workers.queue import CeleryJobQueue, InProcessJobQueue, JobQueue

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    store: DocumentStore
    blobs: LocalBlobStore
    llm: LLMProvider
    translator: Translator
    knowledge_base: KnowledgeBase
    jobs: JobQueue
    lifecycle: DocumentLifecycle
    qa: QAService
    engine: AsyncEngine | None = None

    async def aclose(self) -> None:
        if isinstance(self.jobs, InProcessJobQueue):
            await self.jobs.drain()
        if self.engine is not None:
            await self.engine.dispose()


def assemble_services(
    settings: Settings,
    store: DocumentStore,
    blobs: LocalBlobStore,
    extractor: TextExtractor,
    llm: LLMProvider,
    translator: Translator,
    knowledge_base: KnowledgeBase,
    jobs: JobQueue,
    engine: AsyncEngine | None = None,
) -> Services:
    """Wire the components together from already-built handles."""
    analyzer = ComplianceAnalyzer(
        llm,
        temperature=settings.analysis_temperature,
        max_tokens=settings.analysis_max_tokens,
        char_budget=settings.analysis_char_budget,
    )
    lifecycle = DocumentLifecycle(
        store=store,
        blobs=blobs,
        extractor=extractor,
        analyzer=analyzer,
        knowledge_base=knowledge_base,
        jobs=jobs,
        max_upload_bytes=settings.max_upload_bytes,
        knowledge_base_query_chars=settings.knowledge_base_query_chars,
        knowledge_base_top_k=settings.knowledge_base_top_k,
    )
    if isinstance(jobs, InProcessJobQueue) and jobs.handler is None:
        jobs.handler = lifecycle.handle_job

    qa = QAService(
        store=store,
        llm=llm,
        translator=translator,
        knowledge_base=knowledge_base,
        default_language=settings.default_language,
        context_chars=settings.qa_context_chars,
        top_k=settings.knowledge_base_top_k,
        temperature=settings.qa_temperature,
        max_tokens=settings.qa_max_tokens,
        expose_errors=not settings.is_production,
    )
    return Services(
        settings=settings,
        store=store,
        blobs=blobs,
        llm=llm,
        translator=translator,
        knowledge_base=knowledge_base,
        jobs=jobs,
        lifecycle=lifecycle,
        qa=qa,
        engine=engine,
    )


def build_job_queue(settings: Settings) -> JobQueue:
    if settings.job_backend == "inline":
        return InProcessJobQueue()

    from app.workers.celery_app import celery_app

    return CeleryJobQueue(celery_app)


async def build_services(settings: Settings, jobs: JobQueue | None = None) -> Services:
    """Build every production handle from settings."""
    engine = create_engine_for(settings.database_url, debug=settings.debug)
    if settings.auto_create_tables:
        await init_models(engine)

    llm = build_llm_provider(settings)
    services = assemble_services(
        settings,
        store=DocumentStore(create_session_factory(engine)),
        blobs=LocalBlobStore(
            settings.storage_dir,
            signing_secret=settings.storage_signing_secret,
            public_base_url=settings.public_base_url,
        ),
        extractor=DoclingTextExtractor(
            ocr_enabled=settings.extraction_ocr_enabled,
            table_structure=settings.extraction_table_structure,
        ),
        llm=llm,
        translator=LLMTranslator(
            llm,
            default_language=settings.default_language,
            model=settings.translation_model,
        ),
        knowledge_base=build_knowledge_base(settings),
        jobs=jobs or build_job_queue(settings),
        engine=engine,
    )
    logger.info(
        "Services ready (llm=%s, jobs=%s, knowledge_base=%s)",
        settings.llm_provider,
        settings.job_backend,
        "enabled" if settings.knowledge_base_enabled else "disabled",
    )
    return services
