# =============================================================================
# Analysis API — Latest Analysis and Re-analysis
# =============================================================================
#
#   GET  /api/analysis/{documentId}           most recent analysis
#   POST /api/analysis/{documentId}/analyze   queue a new analysis (202)
#
# Re-analysis runs the Analyze step again on the stored text and adds a new
# Analysis row; earlier analyses are kept unchanged.
# =============================================================================

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from app.api.deps import AuthenticatedUser, get_current_user, get_services
from app.exceptions import NotFoundError
from app.models.responses import AnalysisResponse, TriggerResponse
from app.services.container import Services

router = APIRouter(prefix="/api/analysis", tags=["Analysis"])


@router.get(
    "/{document_id}",
    response_model=AnalysisResponse,
    summary="Get the latest compliance analysis of a document",
)
async def get_analysis(
    document_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> AnalysisResponse:
    # Ownership first, so someone else's document is 403 rather than 404
    await services.store.get_document(document_id, user.user_id)
    analysis = await services.store.get_latest_analysis(document_id, user.user_id)
    if analysis is None:
        raise NotFoundError("Analysis not found")
    return AnalysisResponse.model_validate(analysis)


@router.post(
    "/{document_id}/analyze",
    response_model=TriggerResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Run the compliance analysis again",
    description=(
        "Queues a new analysis of the already-extracted text and returns "
        "immediately. Returns 409 while the first analysis is still running."
    ),
)
async def trigger_analysis(
    document_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> TriggerResponse:
    await services.lifecycle.trigger_reanalysis(document_id, user.user_id)
    return TriggerResponse(document_id=document_id)
