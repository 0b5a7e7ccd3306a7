# =============================================================================
# Domain Exceptions
# =============================================================================
#
# Every error the services raise carries the HTTP status it maps to. The API
# layer (app/main.py) registers one handler for the whole hierarchy, so
# services never import FastAPI.
#
#   ComplianceAppError
#   ├── RequestValidationFailed   400  bad input (no file, oversized, ...)
#   ├── AuthenticationFailed      401  missing / invalid / expired token
#   ├── AccessDeniedError         403  record exists, caller is not owner
#   ├── NotFoundError             404
#   ├── InvalidTransitionError    409  illegal document status change
#   └── UpstreamServiceError      500  dependency failures
#       ├── StorageError
#       ├── ExtractionError
#       ├── TranslationError
#       ├── ModelError
#       └── ParseError               model output not a valid report
# =============================================================================

from __future__ import annotations


class ComplianceAppError(Exception):
    """Base class for all application errors."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class RequestValidationFailed(ComplianceAppError):
    status_code = 400


class AuthenticationFailed(ComplianceAppError):
    status_code = 401


class AccessDeniedError(ComplianceAppError):
    status_code = 403

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message)


class NotFoundError(ComplianceAppError):
    status_code = 404


class InvalidTransitionError(ComplianceAppError):
    status_code = 409


class UpstreamServiceError(ComplianceAppError):
    """A dependency (storage, OCR, translation, model) failed."""

    status_code = 500


class StorageError(UpstreamServiceError):
    pass


class BlobExistsError(StorageError):
    """An exclusive write found a blob already at the path."""


class ExtractionError(UpstreamServiceError):
    pass


class TranslationError(UpstreamServiceError):
    pass


class ModelError(UpstreamServiceError):
    pass


class ParseError(UpstreamServiceError):
    """The model's raw output did not contain a valid compliance report."""
