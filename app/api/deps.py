# =============================================================================
# API Dependencies — Services Handle and Authenticated Caller
# =============================================================================
#
# Two FastAPI dependencies used by every route:
#
# 1. get_services()      — the Services container built in the app lifespan
# 2. get_current_user()  — validate the Bearer token, resolve the caller's
#                          user id (the owner of everything they touch)
#
# DESIGN DECISION: FastAPI dependency (not middleware) for auth.
# - Each endpoint opts in via Depends(get_current_user)
# - The resolved user is available in route handlers
# - Testable via dependency_overrides
# - /health and the signed /files URLs stay public
#
# DESIGN DECISION: HTTPBearer(auto_error=False) so that when auth is
# disabled, missing headers don't cause errors. Every authentication failure
# (missing, unknown, inactive or expired key) is the same 401.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.exceptions import AuthenticationFailed
from app.services.auth import hash_api_key, key_rejection_reason
from app.services.container import Services

logger = logging.getLogger(__name__)

# Security scheme for OpenAPI docs (shows "Authorize" button in Swagger UI)
_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthenticatedUser:
    user_id: str
    key_prefix: str | None = None


def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    services: Services = Depends(get_services),
) -> AuthenticatedUser:
    """
    Resolve the caller from the Authorization header.

    When auth_enabled=False every request acts as settings.dev_user_id.

    Raises:
        AuthenticationFailed: missing, unknown, deactivated or expired key.
    """
    settings = services.settings
    if not settings.auth_enabled:
        return AuthenticatedUser(user_id=settings.dev_user_id)

    if credentials is None or not credentials.credentials:
        raise AuthenticationFailed("No authorization token provided")

    api_key = await services.store.get_api_key_by_hash(hash_api_key(credentials.credentials))
    reason = key_rejection_reason(api_key)
    if reason is not None:
        logger.info("Rejected API key: %s", reason)
        raise AuthenticationFailed("Invalid or expired token")

    await services.store.touch_api_key(api_key.id)
    return AuthenticatedUser(user_id=api_key.user_id, key_prefix=api_key.key_prefix)
