# =============================================================================
# Files API — Signed Blob Downloads
# =============================================================================
#
# GET /files/{path}?expires=...&signature=...
#
# Serves a stored blob to anyone holding a URL produced by
# LocalBlobStore.signed_url(). No Authorization header is needed (the
# link is opened in a browser); the HMAC signature is the credential.
# =============================================================================

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse

from app.api.deps import get_services
from app.exceptions import AccessDeniedError, NotFoundError
from app.services.container import Services

router = APIRouter(tags=["Files"])


@router.get("/files/{path:path}", summary="Download a blob via a signed URL")
async def download_file(
    path: str,
    expires: int = Query(...),
    signature: str = Query(...),
    services: Services = Depends(get_services),
) -> FileResponse:
    blobs = services.blobs
    if not blobs.verify_signature(path, expires, signature):
        raise AccessDeniedError("Invalid or expired download link")
    if not await blobs.exists(path):
        raise NotFoundError("File not found")

    target = blobs.local_path(path)
    media_type = "application/pdf" if target.suffix.lower() == ".pdf" else None
    return FileResponse(target, media_type=media_type, filename=target.name)
