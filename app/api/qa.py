# =============================================================================
# Q&A API — Sessions and Streaming Answers
# =============================================================================
#
#   GET  /api/qa/session/{documentId}   the caller's session (created lazily)
#   POST /api/qa/ask                    server-sent events, one JSON per event:
#
#     data: {"chunk": "The GST", "type": "content"}
#     data: {"chunk": " clause ...", "type": "content"}
#     data: {"chunk": "", "type": "complete", "answer": "..."}
#
#   or, if anything fails after the stream opened:
#
#     data: {"type": "error", "error": "..."}
#
# Document, text and session checks run BEFORE the stream opens, so they
# are ordinary 404 / 403 responses rather than error events.
# =============================================================================

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import aclosing

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from app.api.deps import AuthenticatedUser, get_current_user, get_services
from app.models.requests import AskRequest
from app.models.responses import SessionResponse
from app.services.container import Services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/qa", tags=["Question Answering"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}


def format_sse(event: dict) -> str:
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"


@router.get(
    "/session/{document_id}",
    response_model=SessionResponse,
    summary="Get (or start) your Q&A session for a document",
)
async def get_session(
    document_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> SessionResponse:
    await services.store.get_document(document_id, user.user_id)
    session = await services.store.get_or_create_session(document_id, user.user_id)
    return SessionResponse.model_validate(session)


@router.post(
    "/ask",
    summary="Ask a question about a document (streamed)",
    description=(
        "Streams the answer as server-sent events while the model generates "
        "it. Questions in Indian languages are answered in the same language; "
        "the translated answer arrives in the final 'complete' event."
    ),
    response_class=StreamingResponse,
)
async def ask_question(
    request: AskRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> StreamingResponse:
    prepared = await services.qa.prepare(
        request.document_id, user.user_id, request.question, request.session_id,
    )

    async def event_generator() -> AsyncIterator[str]:
        # Closing this generator (client gone) closes the model stream too
        async with aclosing(services.qa.events(prepared)) as events:
            async for event in events:
                yield format_sse(event)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
