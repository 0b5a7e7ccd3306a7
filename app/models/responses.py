# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming OUT of the API.
# They serve as the contract between backend and frontend:
# 1. Consistent camelCase field names across all endpoints
# 2. Automatically serialized to JSON by FastAPI (by alias)
# 3. OpenAPI response schemas (visible at /docs)
# 4. Internal columns (key hashes, storage internals) never leak
#
# DESIGN DECISION: Separate response models from DB models.
# Routes call Model.model_validate(orm_object); from_attributes=True (set
# on CamelModel) reads the ORM attributes directly.
# =============================================================================

from datetime import datetime

from pydantic import Field

from app.db.models import DocumentStatus, MessageRole
from app.models.analysis import CamelModel, CategoryScore, Recommendation, Risk, RiskSummary


class HealthResponse(CamelModel):
    """Response for GET /health; confirms the API is running."""

    status: str = "ok"
    timestamp: datetime


class MessageResponse(CamelModel):
    message: str


class DocumentResponse(CamelModel):
    """An uploaded document and its processing status."""

    id: str
    owner_id: str
    name: str
    size: int
    storage_path: str
    status: DocumentStatus
    language: str | None = None
    error_message: str | None = None
    analysis_id: str | None = None
    uploaded_at: datetime
    updated_at: datetime


class DocumentListResponse(CamelModel):
    documents: list[DocumentResponse]


class UploadResponse(CamelModel):
    """
    Response for POST /api/upload.

    The document is NOT analysed yet. Clients poll GET /api/documents/{id}
    until status is "completed" or "error".
    """

    document_id: str
    status: DocumentStatus = DocumentStatus.PROCESSING
    message: str = "Document uploaded successfully. Processing started."


class AnalysisResponse(CamelModel):
    """A stored compliance analysis."""

    id: str
    document_id: str
    india_law_score: int
    risk_summary: RiskSummary
    category_scores: list[CategoryScore]
    risks: list[Risk]
    recommendations: list[Recommendation]
    knowledge_base_citations: list[str] = Field(default_factory=list)
    processing_time_ms: int
    model: str | None = None
    created_at: datetime


class TriggerResponse(CamelModel):
    """Response for POST /api/analysis/{id}/analyze (202 Accepted)."""

    message: str = "Analysis triggered"
    document_id: str


class ChatMessageResponse(CamelModel):
    id: str
    role: MessageRole
    content: str
    language: str
    timestamp: datetime
    citations: list[str] | None = None


class SessionResponse(CamelModel):
    """A Q&A session with its messages in call order."""

    id: str
    document_id: str
    owner_id: str
    messages: list[ChatMessageResponse]
    created_at: datetime
    updated_at: datetime


class ReportResponse(CamelModel):
    report_url: str
    report_path: str
