import time
from typing import Optional
from fastapi import HTTPException, Request, status
from storefront.cache._cache import get_redis_client
from storefront.config.settings import config_settings
from storefront.rate_limiting.constants import RATE_LIMIT_PREFIX, logger
from storefront.rate_limiting.rate_limit_fixed_window import redis_allow
from storefront.rate_limiting.utils import client_ip


def ip_rate_limit(limit: Optional[int] = None, window: Optional[int] = None, route_key: Optional[str] = None):
    """Per client ip fixed window limit . Unset limit and window are read from settings on each call."""
    async def _dep(request: Request):
        max_calls = limit if limit is not None else config_settings.CHECKOUT_RATE_LIMIT
        window_seconds = window if window is not None else config_settings.CHECKOUT_RATE_WINDOW_SECONDS
        identifier = client_ip(request)
        key = f"{RATE_LIMIT_PREFIX}:ip:{identifier}:{route_key or request.url.path}"

        allowed, remaining, reset = await redis_allow(key, max_calls, window_seconds, get_redis_client())
        request.state.rate_limit = {"limit": max_calls, "remaining": remaining, "reset": reset}
        if not allowed:
            retry_after = max(1, reset - int(time.time()))
            logger.info("rate_limit.rejected", extra={"client_ip": identifier, "path": request.url.path, "retry_after": retry_after})
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many checkout attempts , try again later",
                headers={"Retry-After": str(retry_after)},
            )
    return _dep


checkout_rate_limit = ip_rate_limit(route_key="checkout")
