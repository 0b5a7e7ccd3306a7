# =============================================================================
# Report API — PDF Compliance Report
# =============================================================================
#
# GET /api/report/{analysisId}/pdf
#   1. Load the analysis (owner-scoped) and its document
#   2. Render the PDF (fpdf2, in a worker thread)
#   3. Store it at users/{owner}/reports/report-{analysisId}.pdf
#   4. Return a signed download URL valid for signed_url_minutes
#
# Rendering again overwrites the stored report; the URL always points at
# the latest rendering.
# =============================================================================

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends

from app.api.deps import AuthenticatedUser, get_current_user, get_services
from app.models.responses import ReportResponse
from app.services.container import Services
from app.services.report import render_compliance_report

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/report", tags=["Reports"])


@router.get(
    "/{analysis_id}/pdf",
    response_model=ReportResponse,
    summary="Generate a PDF report for an analysis",
)
async def generate_report(
    analysis_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> ReportResponse:
    analysis = await services.store.get_analysis(analysis_id, user.user_id)
    document = await services.store.get_document(analysis.document_id, user.user_id)

    pdf_bytes = await asyncio.to_thread(render_compliance_report, document, analysis)
    report_path = await services.blobs.upload(
        pdf_bytes,
        f"report-{analysis_id}.pdf",
        user.user_id,
        folder="reports",
        content_type="application/pdf",
    )
    url = services.blobs.signed_url(
        report_path, expires_minutes=services.settings.signed_url_minutes,
    )
    logger.info("Report for analysis %s stored at %s", analysis_id, report_path)
    return ReportResponse(report_url=url, report_path=report_path)
