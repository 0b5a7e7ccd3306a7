# =============================================================================
# Blob Store — Per-User File Storage with Signed Read URLs
# =============================================================================
#
# Stores uploaded documents and generated reports as opaque bytes under a
# per-user path:
#
#   users/{owner}/uploads/{epoch_ms}-{name}     ← original uploads
#   users/{owner}/extracted/...                 ← reserved for derived text
#   users/{owner}/reports/report-{id}.pdf       ← generated PDF reports
#
# DESIGN DECISION: Local disk, like the upload directory the ingestion
# pipeline always used. The Celery worker and the API share the volume.
# File I/O runs in asyncio.to_thread() so the event loop never blocks.
#
# DESIGN DECISION: HMAC-signed, expiring URLs.
# A report link must work in a browser (no Authorization header), so the
# URL itself carries the proof: signature = HMAC-SHA256(secret,
# "{path}|{expires}"). GET /files/{path} verifies it before serving.
# =============================================================================

from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
import time
from pathlib import Path, PurePosixPath
from typing import Protocol
from urllib.parse import quote, urlencode

from app.exceptions import BlobExistsError, StorageError

logger = logging.getLogger(__name__)

BLOB_FOLDERS = frozenset({"uploads", "extracted", "reports"})


class BlobStore(Protocol):
    """Byte storage keyed by relative path."""

    async def upload(
        self,
        data: bytes,
        file_name: str,
        owner: str,
        folder: str = "uploads",
        content_type: str = "application/octet-stream",
        overwrite: bool = True,
    ) -> str:
        """
        Store bytes and return their path.

        With overwrite=False an existing blob raises BlobExistsError.
        """
        ...

    async def download(self, path: str) -> bytes: ...

    async def delete(self, path: str) -> None: ...

    async def exists(self, path: str) -> bool: ...

    def signed_url(self, path: str, expires_minutes: int = 60) -> str:
        """A URL that grants read access to `path` until it expires."""
        ...


def blob_path(owner: str, folder: str, file_name: str) -> str:
    """
    Build users/{owner}/{folder}/{name}.

    Only the base name of `file_name` is kept, so "../../etc/passwd" and
    "C:\\docs\\a.pdf" cannot steer the write elsewhere.
    """
    if folder not in BLOB_FOLDERS:
        raise StorageError(f"Unknown storage folder '{folder}'")
    if not owner or "/" in owner or owner in {".", ".."}:
        raise StorageError("Invalid owner for storage path")

    base_name = PurePosixPath(file_name.replace("\\", "/")).name
    if not base_name or base_name in {".", ".."}:
        raise StorageError("Invalid file name")
    return f"users/{owner}/{folder}/{base_name}"


class LocalBlobStore:
    """BlobStore on the local filesystem."""

    def __init__(self, root: str | Path, signing_secret: str, public_base_url: str) -> None:
        self._root = Path(root).resolve()
        self._secret = signing_secret.encode()
        self._base_url = public_base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        """Absolute location of `path`; refuses anything outside the root."""
        target = (self._root / path).resolve()
        if target != self._root and self._root not in target.parents:
            raise StorageError(f"Path escapes storage root: {path}")
        return target

    async def upload(
        self,
        data: bytes,
        file_name: str,
        owner: str,
        folder: str = "uploads",
        content_type: str = "application/octet-stream",
        overwrite: bool = True,
    ) -> str:
        path = blob_path(owner, folder, file_name)
        target = self._resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            # "xb" fails instead of replacing another upload's bytes
            with target.open("wb" if overwrite else "xb") as handle:
                handle.write(data)

        try:
            await asyncio.to_thread(_write)
        except FileExistsError as exc:
            raise BlobExistsError(f"Blob already exists: {path}") from exc
        except OSError as exc:
            raise StorageError(f"Failed to store {path}: {exc}") from exc

        logger.info("Stored blob %s (%d bytes, %s)", path, len(data), content_type)
        return path

    async def download(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except FileNotFoundError as exc:
            raise StorageError(f"Blob not found: {path}") from exc
        except OSError as exc:
            raise StorageError(f"Failed to read {path}: {exc}") from exc

    async def delete(self, path: str) -> None:
        target = self._resolve(path)
        try:
            await asyncio.to_thread(target.unlink, True)
        except OSError as exc:
            raise StorageError(f"Failed to delete {path}: {exc}") from exc
        logger.info("Deleted blob %s", path)

    async def exists(self, path: str) -> bool:
        target = self._resolve(path)
        return await asyncio.to_thread(target.is_file)

    def local_path(self, path: str) -> Path:
        """Filesystem location, for serving the blob with FileResponse."""
        return self._resolve(path)

    # -------------------------------------------------------------------------
    # Signed URLs
    # -------------------------------------------------------------------------

    def _signature(self, path: str, expires: int) -> str:
        message = f"{path}|{expires}".encode()
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def signed_url(self, path: str, expires_minutes: int = 60) -> str:
        self._resolve(path)
        expires = int(time.time()) + expires_minutes * 60
        query = urlencode({"expires": expires, "signature": self._signature(path, expires)})
        return f"{self._base_url}/files/{quote(path)}?{query}"

    def verify_signature(
        self,
        path: str,
        expires: int,
        signature: str,
        now: float | None = None,
    ) -> bool:
        """True if `signature` was issued for `path` and has not expired."""
        current = time.time() if now is None else now
        if expires < current:
            return False
        return hmac.compare_digest(self._signature(path, expires), signature)
