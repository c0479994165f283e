"""
Custom exception classes and error handlers
Provides consistent error responses across the application
"""

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)


class GoalManiaException(HTTPException):
    """Base exception class for Goal Mania application"""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
        details: Optional[Any] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code
        self.details = details


class BadRequestException(GoalManiaException):
    """400 Bad Request"""

    def __init__(self, detail: str, error_code: str = "BAD_REQUEST", details: Optional[Any] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code=error_code,
            details=details
        )


class UnauthorizedException(GoalManiaException):
    """401 Unauthorized"""

    def __init__(self, detail: str = "Unauthorized", error_code: str = "UNAUTHORIZED"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code=error_code,
            headers={"WWW-Authenticate": "Bearer"}
        )


class ForbiddenException(GoalManiaException):
    """403 Forbidden"""

    def __init__(self, detail: str = "Forbidden", error_code: str = "FORBIDDEN"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code=error_code
        )


class NotFoundException(GoalManiaException):
    """404 Not Found"""

    def __init__(self, detail: str = "Not found", error_code: str = "NOT_FOUND"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            error_code=error_code
        )


class ConflictException(GoalManiaException):
    """409 Conflict"""

    def __init__(self, detail: str, error_code: str = "CONFLICT", details: Optional[Any] = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code=error_code,
            details=details
        )


class ValidationException(GoalManiaException):
    """422 Unprocessable Entity"""

    def __init__(self, detail: str, error_code: str = "VALIDATION_ERROR", details: Optional[Any] = None):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code=error_code,
            details=details
        )


class ServiceUnavailableException(GoalManiaException):
    """503 Service Unavailable"""

    def __init__(
        self,
        detail: str = "Service temporarily unavailable",
        error_code: str = "SERVICE_UNAVAILABLE"
    ):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
            error_code=error_code
        )


# Business logic exceptions
class UsageExceededException(ConflictException):
    """Coupon or discount rule usage cap reached"""

    def __init__(self, detail: str = "Usage limit exceeded"):
        super().__init__(detail=detail, error_code="USAGE_EXCEEDED")


class InsufficientStockException(ConflictException):
    """Product stock insufficient"""

    def __init__(self, product_name: str, available: int, requested: Optional[int] = None):
        super().__init__(
            detail=f"Insufficient stock for {product_name}. Only {available} available.",
            error_code="INSUFFICIENT_STOCK",
            details={"product": product_name, "available": available, "requested": requested}
        )


class InvalidTransitionException(ConflictException):
    """Order status transition not allowed"""

    def __init__(self, current: str, target: str):
        super().__init__(
            detail=f"Cannot change order status from {current} to {target}",
            error_code="INVALID_TRANSITION",
            details={"current": current, "target": target}
        )


class AlreadyRefundedException(ConflictException):
    """Order refunded before"""

    def __init__(self, detail: str = "Order already refunded"):
        super().__init__(detail=detail, error_code="ALREADY_REFUNDED")


class DuplicateResourceException(ConflictException):
    """Resource already exists"""

    def __init__(self, resource: str, field: str, value: str):
        super().__init__(
            detail=f"{resource} with {field} '{value}' already exists",
            error_code="DUPLICATE_RESOURCE"
        )


class ProviderError(GoalManiaException):
    """Payment gateway failure"""

    status_code_default = status.HTTP_502_BAD_GATEWAY
    error_code_default = "PROVIDER_ERROR"

    def __init__(self, provider: str, detail: str):
        super().__init__(
            status_code=self.status_code_default,
            detail=f"{provider}: {detail}",
            error_code=self.error_code_default,
            details={"provider": provider}
        )
        self.provider = provider


class ProviderAuthFailure(ProviderError):
    """Bad provider credentials"""

    error_code_default = "PROVIDER_AUTH_FAILURE"


class ProviderRejected(ProviderError):
    """Payment declined by the provider"""

    status_code_default = status.HTTP_402_PAYMENT_REQUIRED
    error_code_default = "PROVIDER_REJECTED"


class ProviderUnavailable(ProviderError):
    """Network failure, timeout or provider 5xx"""

    status_code_default = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code_default = "PROVIDER_UNAVAILABLE"


def _error_body(message: str, code: Optional[str], details: Optional[Any] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"error": message, "code": code}
    if details is not None:
        body["details"] = details
    return body


async def goalmania_exception_handler(request: Request, exc: GoalManiaException) -> JSONResponse:
    """Render application errors as {error, code, details?}"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.detail, exc.error_code, exc.details),
        headers=exc.headers,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(str(exc.detail), "HTTP_ERROR"),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body("Validation failed", "VALIDATION_ERROR", details),
    )
