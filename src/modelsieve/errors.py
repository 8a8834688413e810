"""Error taxonomy shared by services, API and CLI."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel


class ErrorBody(BaseModel):
    code: str
    message: str
    details: Dict[str, Any] = {}


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: ErrorBody


class ModelSieveError(Exception):
    """Base error. Carries a stable code and an HTTP status for the API layer."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            error=ErrorBody(code=self.code, message=self.message, details=self.details)
        )


class ValidationError(ModelSieveError):
    """Malformed clause or request. ``details["field"]`` names the offender."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, field: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, {"field": field, **(details or {})})
        self.field = field


class NotFoundError(ModelSieveError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"{resource} not found", {"id": resource_id})


class AccessDeniedError(ModelSieveError):
    code = "FORBIDDEN"
    status_code = 403

    def __init__(self, message: str = "You do not have access to this filter"):
        super().__init__(message)


class AuthenticationError(ModelSieveError):
    code = "UNAUTHORIZED"
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class CatalogUnavailableError(ModelSieveError):
    code = "CATALOG_UNAVAILABLE"
    status_code = 502

    def __init__(self, message: str = "Failed to fetch models"):
        super().__init__(message)


class PersistenceError(ModelSieveError):
    """Run insert or usage update failed; the evaluation is discarded."""

    code = "PERSISTENCE_ERROR"
    status_code = 500
