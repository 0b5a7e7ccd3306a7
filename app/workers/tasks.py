# =============================================================================
# Celery Task Definitions — Document Pipeline
# =============================================================================
#
# Two tasks, named after the job kinds the API dispatches (see
# app/workers/queue.py):
#
#   process_document     Extract step, then Analyze step
#   reanalyze_document   Analyze step again on the stored text
#
# Both delegate to DocumentLifecycle, the same code the in-process queue
# runs in local dev, so the worker holds no pipeline logic of its own.
#
# ASYNC INSIDE A SYNC WORKER:
# Celery tasks are synchronous, the lifecycle is async. Each worker process
# owns ONE event loop, created at worker_process_init together with its
# Services (database engine, LLM client, ...). Every task runs to completion
# on that loop. A fresh loop per task would strand the asyncpg pool, which
# is bound to the loop that created it.
#
# RETRY STRATEGY: none.
# The lifecycle records every failure in the document's status and error
# message. Retrying would repeat a slow OCR + LLM run that usually fails the
# same way; re-analysis is an explicit user action instead.
# =============================================================================

from __future__ import annotations

import asyncio
import logging

from celery.signals import worker_process_init, worker_process_shutdown

from app.config import settings
from app.models.jobs import ProcessDocumentJob, ReanalyzeDocumentJob
from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)

# Set per worker process by _init_worker()
_loop: asyncio.AbstractEventLoop | None = None
_services = None


# ---------------------------------------------------------------------------
# Worker process lifecycle
# ---------------------------------------------------------------------------


@worker_process_init.connect
def _init_worker(**_kwargs) -> None:
    global _loop, _services

    from app.services.container import build_services

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    _loop = asyncio.new_event_loop()
    asyncio.set_event_loop(_loop)
    _services = _loop.run_until_complete(build_services(settings))
    logger.info("Worker process ready")


@worker_process_shutdown.connect
def _shutdown_worker(**_kwargs) -> None:
    if _loop is None:
        return
    if _services is not None:
        _loop.run_until_complete(_services.aclose())
    _loop.close()


def _run(coro):
    if _loop is None or _services is None:
        # Solo pool / eager mode: worker_process_init never fired
        _init_worker()
    return _loop.run_until_complete(coro)


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


@celery_app.task(bind=True, name="process_document")
def process_document(self, payload: dict) -> dict:
    """
    Run the upload pipeline for one document.

    Args:
        self: Celery task instance (bound task, provides self.request.id).
        payload: ProcessDocumentJob.model_dump() from the API process.

    Returns:
        dict with the document id, for the Flower dashboard only.
    """
    job = ProcessDocumentJob.model_validate(payload)
    logger.info("[%s] process_document for %s", self.request.id, job.document_id)
    _run(_services_handle(job))
    return {"document_id": job.document_id}


@celery_app.task(bind=True, name="reanalyze_document")
def reanalyze_document(self, payload: dict) -> dict:
    """Analyse an already-extracted document again."""
    job = ReanalyzeDocumentJob.model_validate(payload)
    logger.info("[%s] reanalyze_document for %s", self.request.id, job.document_id)
    _run(_services_handle(job))
    return {"document_id": job.document_id}


async def _services_handle(job: ProcessDocumentJob | ReanalyzeDocumentJob) -> None:
    await _services.lifecycle.handle_job(job)
