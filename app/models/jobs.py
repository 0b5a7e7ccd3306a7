# =============================================================================
# Background Job Payloads
# =============================================================================
#
# Typed messages put on the job queue by the API and consumed by the worker.
# They cross the Celery broker as JSON (model_dump() / model_validate()),
# so every field must be JSON-native.
# =============================================================================

from typing import Literal

from pydantic import BaseModel


class ProcessDocumentJob(BaseModel):
    """Extract, then analyse, a freshly uploaded document."""

    kind: Literal["process_document"] = "process_document"
    document_id: str
    owner: str
    storage_path: str


class ReanalyzeDocumentJob(BaseModel):
    """Run the analysis step again on already-extracted text."""

    kind: Literal["reanalyze_document"] = "reanalyze_document"
    document_id: str
    owner: str


Job = ProcessDocumentJob | ReanalyzeDocumentJob
