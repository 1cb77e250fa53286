from typing import Optional
import redis.asyncio as redis
from storefront.config.settings import config_settings
from storefront.rate_limiting.constants import REDIS_TIMEOUT_SECONDS

_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """Shared client , None when no REDIS_URL is configured and counters stay in process."""
    global _redis_client
    if _redis_client is None and config_settings.REDIS_URL:
        _redis_client = redis.Redis.from_url(
            config_settings.REDIS_URL,
            socket_timeout=REDIS_TIMEOUT_SECONDS,
            socket_connect_timeout=REDIS_TIMEOUT_SECONDS,
            decode_responses=False,
        )
    return _redis_client


async def close_redis_client():
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
