# =============================================================================
# Documents API — Status Polling, Listing, Deletion
# =============================================================================
#
#   GET    /api/documents        caller's documents, newest first
#   GET    /api/documents/{id}   one document (the polling endpoint)
#   DELETE /api/documents/{id}   document, text, analyses, session, blobs
#
# Every lookup is owner-scoped: an unknown id is 404, someone else's
# document is 403.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from app.api.deps import AuthenticatedUser, get_current_user, get_services
from app.models.responses import DocumentListResponse, DocumentResponse, MessageResponse
from app.services.container import Services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/documents", tags=["Documents"])


@router.get(
    "",
    response_model=DocumentListResponse,
    summary="List your documents",
)
async def list_documents(
    user: AuthenticatedUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> DocumentListResponse:
    docs = await services.store.list_documents(user.user_id)
    return DocumentListResponse(
        documents=[DocumentResponse.model_validate(d) for d in docs],
    )


@router.get(
    "/{document_id}",
    response_model=DocumentResponse,
    summary="Get a document and its processing status",
    description=(
        "Status moves processing → extracted → completed, or to error with "
        "errorMessage set. Poll until completed or error."
    ),
)
async def get_document(
    document_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> DocumentResponse:
    doc = await services.lifecycle.get_status(document_id, user.user_id)
    return DocumentResponse.model_validate(doc)


@router.delete(
    "/{document_id}",
    response_model=MessageResponse,
    summary="Delete a document and everything derived from it",
)
async def delete_document(
    document_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> MessageResponse:
    await services.lifecycle.delete(document_id, user.user_id)
    logger.info("Deleted document %s for %s", document_id, user.user_id)
    return MessageResponse(message="Document deleted successfully")
