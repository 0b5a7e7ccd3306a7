# =============================================================================
# Job Queue — Enqueue-and-Return for Background Processing
# =============================================================================
#
# The HTTP handlers' only contract with background work is "enqueue a typed
# job and return". Two backends implement it:
#
#   CeleryJobQueue     — production. Sends the job to Redis; a Celery worker
#                        process runs it (see workers/tasks.py).
#   InProcessJobQueue  — local dev and tests. Runs the job as an asyncio task
#                        in the API process; no Redis needed.
#
# Selected by settings.job_backend ("celery" | "inline").
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from celery import Celery

from app.models.jobs import Job

logger = logging.getLogger(__name__)

JobHandler = Callable[[Job], Awaitable[None]]


class JobQueue(Protocol):
    async def enqueue(self, job: Job) -> None:
        """Hand the job to a consumer. Must not wait for it to run."""
        ...


class CeleryJobQueue:
    """
    Dispatches jobs to Celery by task name.

    DESIGN DECISION: send_task() by name instead of importing the task
    functions, so the API process never imports worker-only code. The
    task name is the job's `kind`.
    """

    def __init__(self, app: Celery) -> None:
        self._app = app

    async def enqueue(self, job: Job) -> None:
        # The Redis round trip is blocking I/O
        result = await asyncio.to_thread(
            self._app.send_task, job.kind, kwargs={"payload": job.model_dump()},
        )
        logger.info(
            "Dispatched %s for document %s (task_id=%s)", job.kind, job.document_id, result.id,
        )


class InProcessJobQueue:
    """
    Runs each job as an asyncio task on the current event loop.

    `handler` is assigned after construction, once the lifecycle that
    consumes jobs exists (the lifecycle needs the queue, and vice versa).
    """

    def __init__(self, handler: JobHandler | None = None) -> None:
        self.handler = handler
        # Strong references: the event loop only keeps weak ones
        self._tasks: set[asyncio.Task] = set()

    async def enqueue(self, job: Job) -> None:
        if self.handler is None:
            raise RuntimeError("InProcessJobQueue has no handler")
        task = asyncio.create_task(self.handler(job), name=f"{job.kind}:{job.document_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("Started %s for document %s in-process", job.kind, job.document_id)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every started job (and any job they start) is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
