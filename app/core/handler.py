"""Exception handlers for the FastAPI application."""
import logging
from datetime import datetime, timezone
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from app.core.config import settings
from app.core.constants import ErrorKind, GeneralErrorDetails
from app.core.exceptions import AppException
from app.utils.request import get_client_info

logger = logging.getLogger(__name__)


def status_for(kind: ErrorKind) -> int:
    """Map an error kind to its HTTP status code."""
    match kind:
        case ErrorKind.VALIDATION:
            return status.HTTP_400_BAD_REQUEST
        case ErrorKind.CONFLICT:
            return status.HTTP_409_CONFLICT
        case ErrorKind.RATE_LIMITED:
            return status.HTTP_429_TOO_MANY_REQUESTS
        case ErrorKind.AUTH | ErrorKind.NOT_FOUND:
            return status.HTTP_401_UNAUTHORIZED
        case ErrorKind.INTERNAL:
            return status.HTTP_500_INTERNAL_SERVER_ERROR
    raise ValueError(f"Unmapped error kind: {kind}")


def _client_context(request: Request) -> str:
    """Request line and client identity appended to every error log message."""
    client = get_client_info(request)
    return f"{request.method} {request.url.path} ip={client.ip_address} ua={client.user_agent}"


def create_error_response(
    status_code: int,
    message: str,
    error: dict | None = None,
    headers: dict | None = None
) -> JSONResponse:
    """Create a standardized error response."""
    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content={
            "success": False,
            "message": message,
            "error": error,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions with standardized response format."""
    logger.warning(f"HTTP {exc.status_code}: {exc.detail} [{_client_context(request)}]")
    return create_error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request body validation errors with standardized format."""
    error_details = []

    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        field = ".".join(loc) if loc else "body"
        message = error.get("msg", "")

        # Remove "Value error, " prefix if present
        if message.startswith("Value error, "):
            message = message[13:]

        error_details.append({"field": field, "message": message})

    logger.info(f"Request validation failed: {len(error_details)} error(s) [{_client_context(request)}]")
    return create_error_response(
        status_code=status.HTTP_400_BAD_REQUEST,
        message=GeneralErrorDetails.VALIDATION_FAILED,
        error={"kind": ErrorKind.VALIDATION.value, "validation_errors": error_details}
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle application exceptions by their error kind."""
    status_code = status_for(exc.kind)
    context = _client_context(request)
    headers = None
    message = exc.message
    error = {"kind": exc.kind.value, **exc.data}

    match exc.kind:
        case ErrorKind.INTERNAL:
            logger.error(f"Internal error: {exc.message} [{context}]")
            if not settings.is_dev:
                message = GeneralErrorDetails.INTERNAL_SERVER_ERROR
                error = {"kind": exc.kind.value}
        case ErrorKind.RATE_LIMITED:
            headers = {"Retry-After": str(exc.data.get("retry_after", 1))}
            logger.info(f"Rate limited: {exc.message} [{context}]")
        case ErrorKind.NOT_FOUND:
            # Never reveal that a record was missing
            error = {"kind": ErrorKind.AUTH.value, **exc.data}
            logger.info(f"Lookup miss reported as auth failure: {exc.message} [{context}]")
        case ErrorKind.VALIDATION | ErrorKind.CONFLICT | ErrorKind.AUTH:
            logger.info(f"{exc.kind.value}: {exc.message} [{context}]")

    return create_error_response(status_code, message, error, headers=headers)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Handle slowapi limit breaches with the standard envelope."""
    logger.info(f"IP rate limit exceeded: {exc.detail} [{_client_context(request)}]")
    return create_error_response(
        status.HTTP_429_TOO_MANY_REQUESTS,
        GeneralErrorDetails.RATE_LIMIT_EXCEEDED,
        {"kind": ErrorKind.RATE_LIMITED.value, "retry_after": 60},
        headers={"Retry-After": "60"}
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle all other unhandled exceptions with error logging."""
    logger.exception(f"Unhandled exception occurred [{_client_context(request)}]")

    message = str(exc) if settings.is_dev and str(exc) else GeneralErrorDetails.INTERNAL_SERVER_ERROR
    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message=message,
        error={"kind": ErrorKind.INTERNAL.value}
    )
