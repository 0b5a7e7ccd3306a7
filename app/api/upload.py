# =============================================================================
# Upload API — Document Submission
# =============================================================================
#
# POST /api/upload accepts one multipart file and returns as soon as the
# file is stored and a processing job is queued:
#
#   1. Read the upload (≤ max_upload_bytes)
#   2. DocumentLifecycle.submit() → blob + Document(processing) + job
#   3. Return {documentId, status: "processing", message}
#
# Extraction and analysis happen in the background; clients poll
# GET /api/documents/{id}.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, UploadFile

from app.api.deps import AuthenticatedUser, get_current_user, get_services
from app.exceptions import RequestValidationFailed
from app.models.responses import UploadResponse
from app.services.container import Services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Documents"])


@router.post(
    "/upload",
    response_model=UploadResponse,
    summary="Upload a legal document for compliance analysis",
    description=(
        "Upload a PDF, image or text file (max 15MB). The file is stored and "
        "queued for text extraction and compliance analysis. Poll "
        "GET /api/documents/{id} for progress."
    ),
)
async def upload_document(
    file: UploadFile | None = File(None),
    user: AuthenticatedUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> UploadResponse:
    if file is None or not file.filename:
        raise RequestValidationFailed("No file provided")

    # Read at most one byte past the limit; that is enough to reject
    limit = services.settings.max_upload_bytes
    data = await file.read(limit + 1)

    doc = await services.lifecycle.submit(
        data,
        file.filename,
        user.user_id,
        content_type=file.content_type or "application/octet-stream",
    )
    return UploadResponse(document_id=doc.id, status=doc.status)
