from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from storefront.common.logging_setup import request_id_ctx
from storefront.common.utils import build_error, json_error
from storefront.config.settings import config_settings
from storefront.middlewares.constants import logger


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Refuse requests whose declared Content-Length is over the configured cap before any handler reads them."""

    async def dispatch(self, request: Request, call_next):

        declared = request.headers.get("content-length")
        if declared is None:
            return await call_next(request)

        try:
            size = int(declared)
        except ValueError:
            payload = build_error(code="VALIDATION", details={"message": "Invalid Content-Length header"},
                                  request_id=request_id_ctx.get(None))
            return json_error(payload, status_code=status.HTTP_400_BAD_REQUEST)

        max_bytes = config_settings.MAX_REQUEST_BYTES
        if size > max_bytes:
            logger.warning("request.too_large", extra={
                "path": request.url.path,
                "method": request.method,
                "content_length": size,
                "max_bytes": max_bytes,
            })
            payload = build_error(code="REQUEST_TOO_LARGE",
                                  details={"message": "Request body too large", "max_bytes": max_bytes},
                                  request_id=request_id_ctx.get(None))
            return json_error(payload, status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE)

        return await call_next(request)
