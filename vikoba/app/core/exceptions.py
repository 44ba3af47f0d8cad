"""
Custom exceptions and error handlers for consistent error responses.

Every error the ledger core raises derives from AppException so the API
layer can render it with a stable error code.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger("vikoba")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppException):
    """Malformed or out-of-range input. Always raised before any write."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION_001",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details
        )


class NotFoundError(AppException):
    """Raised when a referenced member, loan request or transaction does not exist."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class AuthorizationError(AppException):
    """Raised when the actor may not perform the action."""

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN
        )


class StateError(AppException):
    """The operation is not allowed in the entity's current state. Callers re-fetch, never retry."""

    def __init__(self, message: str, error_code: str = "ERR_STATE_001", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class InvalidStateError(StateError):
    """Raised when voting on a loan request that is already Approved or Rejected."""

    def __init__(self, request_id: str, current_status: str):
        super().__init__(
            message=f"Loan request {request_id} has already been {current_status.lower()}",
            error_code="ERR_STATE_002",
            details={"request_id": request_id, "status": current_status}
        )


class UnknownVoterError(StateError):
    """Raised when the voter was not an active admin when the request was submitted."""

    def __init__(self, request_id: str, admin_id: str):
        super().__init__(
            message=f"Admin {admin_id} is not an approver of loan request {request_id}",
            error_code="ERR_STATE_003",
            details={"request_id": request_id, "admin_id": admin_id}
        )


class NoApproversError(StateError):
    """Raised when a loan request is submitted while the group has no active admins."""

    def __init__(self):
        super().__init__(
            message="No active admins found to approve the request",
            error_code="ERR_STATE_004"
        )


class PreconditionFailed(AppException):
    """An optimistic check-then-write lost a race against another writer."""

    def __init__(self, collection: str, document_id: str):
        super().__init__(
            message=f"Precondition failed updating {collection}/{document_id}",
            error_code="ERR_CONFLICT_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"collection": collection, "id": document_id}
        )


class DocumentExistsError(AppException):
    """Raised when a document is written under an id that is already taken."""

    def __init__(self, collection: str, document_id: str):
        super().__init__(
            message=f"Document {collection}/{document_id} already exists",
            error_code="ERR_CONFLICT_002",
            status_code=status.HTTP_409_CONFLICT,
            details={"collection": collection, "id": document_id}
        )


class StoreError(AppException):
    """Generic I/O failure from the document store."""

    def __init__(self, message: str = "Document store unavailable", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_STORE_001",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details
        )


# Bulk import row errors. These never escape the importer; each one
# becomes the outcome of a single row.

class BulkRowError(ValidationError):
    """Base class for a rejected bulk import row."""

    code = "BulkRowError"


class UnknownMemberError(BulkRowError):
    code = "UnknownMemberError"


class EmptyRowError(BulkRowError):
    code = "EmptyRowError"


class FormatError(BulkRowError):
    code = "FormatError"


class DateError(BulkRowError):
    code = "DateError"


class NoBalanceError(BulkRowError):
    code = "NoBalanceError"


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": [
                    {"loc": list(error.get("loc", [])), "msg": error.get("msg"), "type": error.get("type")}
                    for error in exc.errors()
                ]
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
