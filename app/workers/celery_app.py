# =============================================================================
# Celery Application Configuration
# =============================================================================
#
# Celery runs the document pipeline outside the API process:
#   Upload → [queue] → Extract → Analyse → status completed / error
#
# WHY CELERY OVER FASTAPI BACKGROUNDTASKS?
# ┌─────────────────────┬──────────────────────┬────────────────────────┐
# │ Feature             │ BackgroundTasks       │ Celery                 │
# ├─────────────────────┼──────────────────────┼────────────────────────┤
# │ Survives API restart│ No                    │ Yes (queued in Redis)  │
# │ Monitoring          │ None                  │ Flower dashboard       │
# │ Scalability         │ Single process        │ Multi-worker, multi-host│
# │ OCR CPU load        │ Competes with API     │ Separate workers       │
# └─────────────────────┴──────────────────────┴────────────────────────┘
#
# ARCHITECTURE:
# ┌──────────┐     ┌───────┐     ┌──────────────┐     ┌────────────┐
# │ FastAPI  │────▶│ Redis │────▶│ Celery Worker│────▶│ PostgreSQL │
# │(producer)│     │(broker)│    │ (consumer)   │     │  (status)  │
# └──────────┘     └───────┘     └──────────────┘     └────────────┘
#
# Clients never read Celery results: document status lives in the
# database and is polled through GET /api/documents/{id}.
#
# Run a worker with:
#   celery -A app.workers.celery_app worker --loglevel=info
# =============================================================================

from celery import Celery

from app.config import settings

celery_app = Celery(
    "app.workers",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    # --- Serialization ---
    # JSON, not pickle: job payloads are plain pydantic dumps, and pickle
    # can execute arbitrary code during deserialization.
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # --- Reliability ---
    # Acknowledge after the task finishes, so a crashed worker's job is
    # re-delivered. The pipeline itself is never retried on failure.
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # One long OCR + LLM job at a time per worker process
    worker_prefetch_multiplier=1,

    # --- Timeouts ---
    # Large scanned contracts can take minutes in OCR plus a long
    # analysis call; SIGKILL after 15 minutes.
    task_soft_time_limit=600,
    task_time_limit=900,

    # --- Results ---
    result_expires=3600,

    include=["app.workers.tasks"],
)
