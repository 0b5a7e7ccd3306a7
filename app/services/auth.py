# =============================================================================
# Auth Service — API Key Generation, Hashing & Validation
# =============================================================================
#
# Pure functions for API key management. No FastAPI dependency — this module
# is used by the auth dependency, the create_api_key script, and tests.
#
# Each key is bound to one user id. That id is the owner of every document,
# analysis and Q&A session created with the key.
#
# DESIGN DECISION: SHA-256 hashing (not bcrypt). API keys are 32-byte
# random tokens (256 bits of entropy). SHA-256 is deterministic, which the
# per-request lookup by hash needs, and fast enough to run on every call.
# =============================================================================

from __future__ import annotations

import hashlib
import secrets
from datetime import UTC, datetime

from app.db.models import ApiKey


def generate_api_key() -> tuple[str, str, str]:
    """
    Generate a new API key.

    Returns:
        (raw_key, key_prefix, key_hash):
        - raw_key: Full key to return to the user (only visible once)
        - key_prefix: First 8 chars for identification in logs
        - key_hash: SHA-256 hex digest for storage in the database
    """
    raw_key = f"sk-{secrets.token_hex(32)}"
    key_prefix = raw_key[:8]
    key_hash = hash_api_key(raw_key)
    return raw_key, key_prefix, key_hash


def hash_api_key(raw_key: str) -> str:
    """Hash an API key using SHA-256. Returns 64-char hex digest."""
    return hashlib.sha256(raw_key.encode()).hexdigest()


def key_rejection_reason(api_key: ApiKey | None, now: datetime | None = None) -> str | None:
    """
    Why a looked-up key cannot be used, or None if it can.

    SQLite hands back naive datetimes; those are read as UTC.
    """
    if api_key is None:
        return "Invalid API key"
    if not api_key.is_active:
        return "API key has been deactivated"
    if api_key.expires_at is not None:
        expires_at = api_key.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        if expires_at <= (now or datetime.now(UTC)):
            return "API key has expired"
    return None
