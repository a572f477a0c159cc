"""
Custom exceptions and error handlers for consistent error responses.

Every error leaves the API as `{"error": <message>}` with the matching
HTTP status; there are no structured error codes beyond the status.
"""

import logging

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

logger = logging.getLogger("tracker.api")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class BadRequestError(AppException):
    """Raised when a required field is missing or malformed."""

    def __init__(self, message: str):
        super().__init__(message=message, status_code=status.HTTP_400_BAD_REQUEST)


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id=None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} {resource_id} not found"
        super().__init__(message=message, status_code=status.HTTP_404_NOT_FOUND)


class AuthenticationError(AppException):
    """Raised when no admin code accompanies a protected request."""

    def __init__(self, message: str = "Admin code required"):
        super().__init__(message=message, status_code=status.HTTP_401_UNAUTHORIZED)


class InvalidAdminCodeError(AppException):
    """Raised when the supplied admin code does not match the stored secret."""

    def __init__(self, message: str = "Invalid admin code"):
        super().__init__(message=message, status_code=status.HTTP_403_FORBIDDEN)


class ServiceUnavailableError(AppException):
    """Raised when an operation needs a backend that is not configured."""

    def __init__(self, message: str):
        super().__init__(message=message, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException."""
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Pydantic validation errors are reported as plain 400s."""
    errors = exc.errors()
    fields = [".".join(str(part) for part in err.get("loc", ())[1:]) for err in errors]
    message = "Invalid request"
    if fields:
        message = f"Invalid or missing field(s): {', '.join(f for f in fields if f)}"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": str(exc) or type(exc).__name__},
    )
