"""
Domain exceptions and exception handlers with request ID support
Standardized error response format: { code, message, details?, request_id }
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
from typing import Optional, Dict, Any

from .logging_config import get_request_id

logger = logging.getLogger(__name__)


ERROR_CODE_MAP = {
    400: "BAD_REQUEST",
    401: "AUTH_ERROR",
    402: "INSUFFICIENT_CREDITS",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    409: "CONFLICT",
    413: "PAYLOAD_TOO_LARGE",
    422: "VALIDATION_ERROR",
    429: "RATE_LIMITED",
    500: "INTERNAL_ERROR",
    502: "PROVIDER_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


class ContentStudioError(Exception):
    """Base class for domain errors"""


class InsufficientCreditsError(ContentStudioError):
    """Raised when a user cannot afford an action"""

    def __init__(self, action: str, required: int, remaining: int):
        self.action = action
        self.required = required
        self.remaining = remaining
        super().__init__(
            f"Insufficient credits for {action}: requires {required}, {remaining} remaining"
        )

    def to_detail(self) -> Dict[str, Any]:
        return {
            "error": "INSUFFICIENT_CREDITS",
            "message": "You don't have enough credits for this action. Please upgrade your plan or buy more credits.",
            "action": self.action,
            "required": self.required,
            "remaining": self.remaining,
        }


class ProviderError(ContentStudioError):
    """A third-party service (LLM, payment provider) call failed"""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class ProviderNotConfiguredError(ContentStudioError):
    """A third-party service is missing its credentials"""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"{provider} is not configured")


class TemplateNotFoundError(ContentStudioError):
    """Unknown template slug"""

    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f"Template not found: {slug}")


class ErrorResponse:
    """
    Standard error response format

    Schema: { code, message, details?, request_id }
    """

    @staticmethod
    def create(
        message: str,
        code: str,
        status_code: int,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        use_legacy_format: bool = False
    ) -> dict:
        """
        Create standardized error response

        Args:
            message: Human-readable error message
            code: Error code (e.g., "VALIDATION_ERROR", "AUTH_ERROR", "INSUFFICIENT_CREDITS")
            status_code: HTTP status code
            request_id: Request ID from context (auto-fetched if None)
            details: Optional additional error details
            use_legacy_format: If True, use the flat format the dashboard client expects

        Returns:
            Dictionary with error details
        """
        if request_id is None:
            request_id = get_request_id()

        if use_legacy_format:
            response = {
                "detail": message,
                "error": message,
                "status_code": status_code,
            }
            if request_id:
                response["request_id"] = request_id
            if code:
                response["error_code"] = code
            if details:
                response.update(details)
        else:
            response = {
                "code": code,
                "message": message,
                "status_code": status_code,
            }
            if request_id:
                response["request_id"] = request_id
            if details:
                response["details"] = details

        return response


def _use_legacy_format(request: Request) -> bool:
    """Dashboard routes under /api/ (but not /api/v1/) keep the flat error body"""
    return request.url.path.startswith("/api/") and not request.url.path.startswith("/api/v1/")


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions with request ID"""
    request_id = get_request_id()

    error_code = ERROR_CODE_MAP.get(exc.status_code, "HTTP_ERROR")
    detail = exc.detail
    error_message = str(detail) if detail else f"HTTP {exc.status_code} error"
    error_details = None

    if isinstance(detail, dict):
        error_message = detail.get("message", str(detail))
        error_code = detail.get("error") or detail.get("code") or error_code
        error_details = {k: v for k, v in detail.items() if k not in ["error", "message", "code"]} or None

    error_response = ErrorResponse.create(
        message=error_message,
        code=error_code,
        status_code=exc.status_code,
        request_id=request_id,
        details=error_details,
        use_legacy_format=_use_legacy_format(request)
    )

    logger.warning(
        f"HTTP {exc.status_code}: {error_message}",
        extra={"request_id": request_id, "path": request.url.path}
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=error_response,
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle validation exceptions with request ID"""
    request_id = get_request_id()

    errors = jsonable_encoder(exc.errors())
    detail = "; ".join(f"{err['loc']}: {err['msg']}" for err in errors)

    error_response = ErrorResponse.create(
        message=f"Validation error: {detail}",
        code="VALIDATION_ERROR",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        request_id=request_id,
        details={"errors": errors},
        use_legacy_format=_use_legacy_format(request)
    )

    logger.warning(
        f"Validation error: {detail}",
        extra={"request_id": request_id, "path": request.url.path}
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_response
    )


async def insufficient_credits_handler(request: Request, exc: InsufficientCreditsError) -> JSONResponse:
    """Map credit exhaustion to 402 Payment Required"""
    detail = exc.to_detail()
    error_response = ErrorResponse.create(
        message=detail["message"],
        code="INSUFFICIENT_CREDITS",
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
        details={"action": exc.action, "required": exc.required, "remaining": exc.remaining},
        use_legacy_format=_use_legacy_format(request)
    )
    logger.info(f"Insufficient credits: {exc}")
    return JSONResponse(status_code=status.HTTP_402_PAYMENT_REQUIRED, content=error_response)


async def provider_exception_handler(request: Request, exc: ContentStudioError) -> JSONResponse:
    """Map third-party failures to 502 and missing credentials to 500"""
    from .config import config

    if isinstance(exc, ProviderNotConfiguredError):
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        code = "CONFIGURATION_ERROR"
        message = "API configuration error"
    else:
        status_code = status.HTTP_502_BAD_GATEWAY
        code = "PROVIDER_ERROR"
        message = "Failed to communicate with an upstream service. Please try again later."

    details = {"provider": exc.provider}
    if config.is_dev:
        details["reason"] = str(exc)

    logger.error(f"{code}: {exc}", extra={"path": request.url.path})

    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse.create(
            message=message,
            code=code,
            status_code=status_code,
            details=details,
            use_legacy_format=_use_legacy_format(request)
        )
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle general exceptions with request ID"""
    from .config import config

    request_id = get_request_id()
    error_message = "Internal server error"
    error_details = None

    # Don't expose internal error details outside development
    if config.is_dev:
        error_message = f"Internal server error: {str(exc)}"
        error_details = {"exception_type": type(exc).__name__}

    error_response = ErrorResponse.create(
        message=error_message,
        code="INTERNAL_ERROR",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        request_id=request_id,
        details=error_details,
        use_legacy_format=_use_legacy_format(request)
    )

    logger.error(
        f"Unhandled exception: {str(exc)}",
        exc_info=True,
        extra={"request_id": request_id, "path": request.url.path}
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response
    )


def register_exception_handlers(app) -> None:
    """Attach all handlers to a FastAPI app"""
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(InsufficientCreditsError, insufficient_credits_handler)
    app.add_exception_handler(ProviderError, provider_exception_handler)
    app.add_exception_handler(ProviderNotConfiguredError, provider_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
