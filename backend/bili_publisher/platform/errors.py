"""
Consistent error handling for the publish bridge.

Every response, success or failure, uses the envelope
``{"code": <int>, "message": <str>, "data": <object|null>}``. For errors,
``code`` mirrors the HTTP status and ``data.error_code`` carries the
machine-readable reason. Stack traces are NEVER returned to clients.

Standard HTTP status codes:
- 400: Bad Request (validation errors)
- 401: RELOGIN_REQUIRED (no usable Bilibili cookie; scan the QR code again)
- 500: Internal Server Error (encryption, artifact recovery)
- 502: biliup rejected or garbled a call
- 503: biliup unreachable
"""

import logging
import uuid
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from bili_publisher.credentials.vault import (
    CredentialExpiredError,
    CredentialNotFoundError,
    CredentialVaultError,
)
from bili_publisher.integrations.biliup.errors import (
    BiliupError,
    UpstreamAuthError,
    UpstreamProtocolError,
    UpstreamRequestError,
    UpstreamUnavailableError,
)
from bili_publisher.services.reconciler import RecoveryFailedError
from bili_publisher.storage.artifacts import ArtifactPathError
from bili_publisher.utils.encryption import DecryptionError, EncryptionError

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


def envelope(code: int, message: str, data: Any = None) -> dict:
    """The response body shape shared by every endpoint."""
    return {"code": code, "message": message, "data": data}


class AppError(Exception):
    """
    Base application error with consistent error shape.

    All custom errors should inherit from this class.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict:
        """Convert to API error response format."""
        return envelope(
            self.status_code,
            self.message,
            {"error_code": self.code, **self.details},
        )


class ValidationError(AppError):
    """Validation error (400)."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
        )


class ReloginRequiredError(AppError):
    """The account has no usable cookie (401). The front-end should restart the QR flow."""

    def __init__(self, message: str = "Cookie 不存在或已过期，请重新登录"):
        super().__init__(
            code="RELOGIN_REQUIRED",
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
        )


class BadGatewayError(AppError):
    """biliup failed an otherwise valid request (502)."""

    def __init__(self, code: str, message: str, upstream_status: Optional[int] = None):
        details = {}
        if upstream_status is not None:
            details["upstream_status"] = upstream_status
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            details=details,
        )


class ServiceUnavailableError(AppError):
    """Service unavailable (503)."""

    def __init__(self, message: str = "biliup 服务不可用"):
        super().__init__(
            code="SERVICE_UNAVAILABLE",
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )


def translate_exception(exc: Exception) -> Optional[AppError]:
    """
    Map a domain exception onto its API error, or None if it has no mapping.

    Credential problems on any gated path become RELOGIN_REQUIRED; that
    includes a blob that fails to decrypt, since the only remedy is a new
    login.
    """
    if isinstance(exc, AppError):
        return exc
    if isinstance(exc, (CredentialNotFoundError, CredentialExpiredError, DecryptionError)):
        return ReloginRequiredError()
    if isinstance(exc, EncryptionError):
        return AppError("ENCRYPTION_ERROR", "Credential could not be stored")
    if isinstance(exc, RecoveryFailedError):
        return AppError("RECOVERY_FAILED", "Credential could not be restored for biliup")
    if isinstance(exc, UpstreamUnavailableError):
        return ServiceUnavailableError()
    if isinstance(exc, UpstreamAuthError):
        return BadGatewayError("UPSTREAM_AUTH_FAILED", "biliup authentication failed", exc.status_code)
    if isinstance(exc, UpstreamProtocolError):
        return BadGatewayError("UPSTREAM_PROTOCOL_ERROR", "biliup returned an unexpected response", exc.status_code)
    if isinstance(exc, UpstreamRequestError):
        return BadGatewayError("UPSTREAM_REQUEST_FAILED", "biliup rejected the request", exc.status_code)
    if isinstance(exc, ArtifactPathError):
        return ValidationError("Invalid userId")
    return None


def generate_correlation_id() -> str:
    """Generate a unique correlation ID for request tracing."""
    return str(uuid.uuid4())


def get_correlation_id(request: Request) -> str:
    """
    Get correlation ID from request or generate new one.

    Checks X-Correlation-ID header first, then request state.
    """
    correlation_id = request.headers.get(CORRELATION_HEADER)
    if correlation_id:
        return correlation_id

    if hasattr(request.state, "correlation_id"):
        return request.state.correlation_id

    return generate_correlation_id()


def _error_response(request: Request, error: AppError) -> JSONResponse:
    correlation_id = get_correlation_id(request)
    logger.warning(
        "Application error",
        extra={
            "correlation_id": correlation_id,
            "error_code": error.code,
            "status_code": error.status_code,
            "path": request.url.path,
            "method": request.method,
        }
    )
    body = error.to_dict()
    body["data"]["correlation_id"] = correlation_id
    return JSONResponse(
        status_code=error.status_code,
        content=body,
        headers={CORRELATION_HEADER: correlation_id},
    )


async def domain_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Exception handler for AppError and the mapped domain exceptions."""
    error = translate_exception(exc)
    if error is None:
        raise exc
    return _error_response(request, error)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Convert HTTPException (including routing 404s) to the standard envelope."""
    error = AppError(code="HTTP_ERROR", message=str(exc.detail), status_code=exc.status_code)
    return _error_response(request, error)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request body/query validation failures (400)."""
    fields = [
        ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        for err in exc.errors()
    ]
    messages = [str(err.get("msg", "")) for err in exc.errors()]
    error = ValidationError(
        "; ".join(m for m in messages if m) or "Invalid request",
        details={"fields": fields},
    )
    return _error_response(request, error)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Middleware that tags responses with a correlation ID and turns anything
    unhandled into a generic 500.

    IMPORTANT: Stack traces are NEVER returned to clients.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = get_correlation_id(request)
        request.state.correlation_id = correlation_id

        try:
            response = await call_next(request)
            response.headers[CORRELATION_HEADER] = correlation_id
            return response

        except Exception as e:
            error = translate_exception(e)
            if error is not None:
                return _error_response(request, error)

            # Log full exception for debugging (server-side only)
            logger.exception(
                "Unhandled exception",
                extra={
                    "correlation_id": correlation_id,
                    "error_type": type(e).__name__,
                    "path": request.url.path,
                    "method": request.method,
                }
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=envelope(
                    status.HTTP_500_INTERNAL_SERVER_ERROR,
                    "An unexpected error occurred",
                    {"error_code": "INTERNAL_ERROR", "correlation_id": correlation_id},
                ),
                headers={CORRELATION_HEADER: correlation_id},
            )


def register_error_handling(app: FastAPI) -> None:
    """Install the middleware and exception handlers on ``app``."""
    app.add_middleware(ErrorHandlerMiddleware)
    for exc_class in (
        AppError,
        CredentialVaultError,
        DecryptionError,
        EncryptionError,
        RecoveryFailedError,
        BiliupError,
        ArtifactPathError,
    ):
        app.add_exception_handler(exc_class, domain_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
