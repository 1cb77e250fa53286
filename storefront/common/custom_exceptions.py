from typing import Any, Optional
from fastapi import FastAPI, HTTPException, Request,status
from fastapi.exceptions import RequestValidationError
from storefront.common.utils import build_error, json_error
from storefront.common.constants import logger, request_id_ctx


class StorefrontError(Exception):
    """Base for errors the pipeline surfaces to callers with a definite status code."""
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "BAD_REQUEST"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class Unauthorized(StorefrontError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"


class Forbidden(StorefrontError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class ValidationFailed(StorefrontError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION"


class NotFound(StorefrontError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class DiscountNotFound(NotFound):
    code = "DISCOUNT_NOT_FOUND"


class DiscountNotStarted(ValidationFailed):
    code = "DISCOUNT_NOT_STARTED"


class DiscountExpired(ValidationFailed):
    code = "DISCOUNT_EXPIRED"


class MinimumNotMet(ValidationFailed):
    code = "MINIMUM_NOT_MET"


class InsufficientStock(StorefrontError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INSUFFICIENT_STOCK"


class InvalidSignature(StorefrontError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_SIGNATURE"


class Conflict(StorefrontError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class PaymentGatewayError(StorefrontError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "PAYMENT_GATEWAY_ERROR"


# the gateway breaker is open , checkout is refused before any stock is touched
class GatewayUnavailable(StorefrontError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "PAYMENT_GATEWAY_UNAVAILABLE"


# a paid order could not be settled , answered with 500 so the gateway redelivers the event
class SettlementError(StorefrontError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "SETTLEMENT_FAILED"


async def storefront_exception_handler(request: Request, exc: StorefrontError):
    rid = request_id_ctx.get(None)

    logger.info(
        "request.rejected",
        extra={
            "code": exc.code,
            "path": request.url.path,
            "reason": exc.message,
        },
    )

    details = {"message": exc.message}
    if exc.details is not None:
        details["errors"] = exc.details
    payload = build_error(code=exc.code, details=details, request_id=rid)
    return json_error(payload, status_code=exc.status_code)


async def fallback_handler(request: Request, exc: Exception):

    rid = request_id_ctx.get(None)
    body = {"message": "Internal Server Error"}

    logger.error(
        "unexpected.exception",
        extra={
            "path": request.url.path,
            "method": request.method,
        },
        exc_info=exc,
    )

    payload = build_error(code="SERVER_ERROR", details=body, request_id=rid)
    return json_error(payload, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    rid = request_id_ctx.get(None)
    logger.warning(
        "request.validation_failed",
        extra={
            "errors": exc.errors(),
            "path": request.url.path,
        },
    )

    payload = build_error(code="VALIDATION", details={"message":"invalid request"}, request_id=rid)
    return json_error(payload, status_code=status.HTTP_400_BAD_REQUEST)


async def http_exception_handler(request: Request, exc: HTTPException):

    rid = request_id_ctx.get(None)

    error_code = f"HTTP_{exc.status_code}"
    payload = build_error(code=error_code, details={"message":exc.detail}, request_id=rid)
    return json_error(payload, status_code=exc.status_code, headers=getattr(exc, "headers", None))


def register_all_exceptions(app: FastAPI):

    app.add_exception_handler(
        Exception, # catch all unidentified/unhandled exceptions
        fallback_handler
    )

    app.add_exception_handler(
        StorefrontError,
        storefront_exception_handler
    )

    app.add_exception_handler(
        RequestValidationError,
        validation_exception_handler
    )

    app.add_exception_handler(
        HTTPException,
        http_exception_handler
    )
