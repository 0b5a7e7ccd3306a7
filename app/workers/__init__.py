# =============================================================================
# Workers Package — Background Document Processing
# =============================================================================
#   - queue.py: JobQueue protocol with Celery and in-process backends
#   - celery_app.py: Celery application configuration
#   - tasks.py: Task definitions (process_document, reanalyze_document)
#
# WHY BACKGROUND JOBS?
# Processing an upload involves two slow steps:
#   1. Text extraction (CPU-bound OCR, seconds to minutes for scans)
#   2. Compliance analysis (one long LLM call)
#
# The upload endpoint returns as soon as the file is stored and the job is
# queued; clients poll the document status.
# =============================================================================
