from typing import List
from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from storefront.auth.dependencies import Authentication
from storefront.common.logging_setup import request_id_ctx
from storefront.common.utils import build_error, json_error
from storefront.middlewares.constants import logger


class AuthenticationMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, *, paths:List[str]):
        super().__init__(app)
        self.paths = paths

    async def dispatch(self, request: Request, call_next):

        if any(request.url.path.startswith(p) for p in self.paths):
            return await call_next(request)

        logger.debug("auth.middleware.attempt", extra={
            "path": request.url.path,
            "method": request.method
        })

        try:
            auth_token = await Authentication()(request)
        except Exception as e:
            reason = getattr(e, "detail", "Missing or Invalid Auth Headers")
            logger.warning("auth.middleware.failed", extra={
                "reason": reason,
                "path": request.url.path,
                "method": request.method
            })
            payload = build_error(code="INVALID_AUTH", details={"message":"Missing or Invalid Auth Headers"},
                                  request_id=request_id_ctx.get(None))
            return json_error(payload, status_code=status.HTTP_401_UNAUTHORIZED)

        # token claims , the identity provider owns the user records
        request.state.user_identifier = str(auth_token.get("sub"))
        request.state.user_email = auth_token.get("email")
        request.state.user_roles = auth_token.get("roles") or []

        logger.debug("auth.middleware.success", extra={
            "user_identifier": request.state.user_identifier,
            "path": request.url.path
        })

        return await call_next(request)
