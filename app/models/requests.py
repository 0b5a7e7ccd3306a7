# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming INTO the API.
#
# DESIGN DECISION: Missing fields are a 400, not FastAPI's default 422.
# The RequestValidationError handler in app.main maps body validation
# failures to 400 with the first error as the detail.
#
# Field names are camelCase on the wire (documentId, sessionId) and
# snake_case in Python, via the alias generator.
# =============================================================================

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class AskRequest(BaseModel):
    """
    Request body for POST /api/qa/ask.

    Example:
        {
            "documentId": "4f1c...",
            "question": "Is the reverse charge mechanism applicable here?",
            "sessionId": "9ab2..."
        }
    """

    document_id: str = Field(..., min_length=1)
    question: str = Field(..., min_length=1, max_length=4000)

    # Optional: continue a specific session. Omitted → the caller's
    # session for this document (created on first use).
    session_id: str | None = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )
