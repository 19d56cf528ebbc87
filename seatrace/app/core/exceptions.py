"""
Custom exceptions and error handlers for consistent error responses.

Every response, success or failure, uses the envelope
``{"code": int, "message": str, "error_code": str, "data": ...}``
where ``code`` mirrors the HTTP status and 200 means success.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from typing import Any, Dict, Optional

logger = logging.getLogger("seatrace.errors")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class InsufficientPermissionsError(AppException):
    """Raised when the caller's role or company type does not allow the action."""

    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

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


class AuthenticationError(AppException):
    """Raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


class ValidationFailedError(AppException):
    """Raised when a request is well-formed but its content is unusable."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class InvalidGoodStateError(AppException):
    """Raised when a good is not in the status a lifecycle stage requires."""

    def __init__(self, good_id: str, expected: Optional[str], actual: Optional[str], message: str = None):
        if message is None:
            message = f"Good {good_id} must be in status '{expected}' for this operation, current status: '{actual}'"
        super().__init__(
            message=message,
            error_code="ERR_STATE_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"good_id": good_id, "expected_status": expected, "current_status": actual}
        )


class ConcurrentTransitionError(AppException):
    """Raised when a conditional status update affected no rows."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_CONFLICT_001",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class PersistenceError(AppException):
    """Raised when a database write fails; no chain call is attempted after it."""

    def __init__(self, message: str = "Failed to persist record", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERSISTENCE_001",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details
        )


class ChainGatewayError(AppException):
    """Raised when the chain gateway is unreachable, times out or rejects a call."""

    def __init__(self, message: str, function_name: Optional[str] = None, status_message: Optional[str] = None):
        self.function_name = function_name
        self.status_message = status_message
        super().__init__(
            message=message,
            error_code="ERR_CHAIN_001",
            status_code=status.HTTP_502_BAD_GATEWAY,
            details={"function": function_name, "status_message": status_message}
        )


class PendingChainConfirmationError(AppException):
    """
    Raised when a stage record was persisted but the chain did not confirm it.

    The record stays without a transaction hash and the good's status is
    unchanged. ``details`` carries the good summary so callers can retry.
    """

    def __init__(self, good_id: str, stage: str, chain_error: str, good: Dict[str, Any] = None):
        super().__init__(
            message=f"{stage} for good {good_id} is recorded but pending chain confirmation: {chain_error}",
            error_code="ERR_CHAIN_PENDING",
            status_code=status.HTTP_202_ACCEPTED,
            details={
                "good_id": good_id,
                "stage": stage,
                "chain_error": chain_error,
                "good": good,
            }
        )


def envelope(code: int, message: str, data: Any = None, error_code: Optional[str] = None) -> Dict[str, Any]:
    """Build the uniform response body."""
    body = {"code": code, "message": message, "data": data}
    if error_code:
        body["error_code"] = error_code
    return jsonable_encoder(body)


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=envelope(exc.status_code, exc.message, exc.details or None, exc.error_code)
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content=envelope(exc.status_code, str(exc.detail), None, error_code),
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=envelope(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "Validation error",
            {"errors": exc.errors()},
            "ERR_VALIDATION"
        )
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=envelope(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An internal server error occurred",
            None,
            "ERR_INTERNAL_SERVER"
        )
    )
