import time
from typing import Optional
from storefront.rate_limiting.constants import FAIL_OPEN, USE_IN_MEMORY_FALLBACK, logger
from storefront.rate_limiting.lua_scripts import LUA_FIXED_WINDOW_INCR_AND_PEXPIRE
from storefront.rate_limiting.utils import ensure_lua_loaded, in_memory_allow


async def redis_allow(key: str, limit: int, window: int, rc: Optional[object] = None):
    """
    Fixed window counter keyed in redis.
    Returns (allowed: bool, remaining: int, reset_ts: int)
    """
    if rc is None:
        return await in_memory_allow(key, limit, window)

    pexpire_ms = int(window * 1000)
    try:
        sha = await ensure_lua_loaded(rc)
        if sha:
            res = await rc.evalsha(sha, 1, key, pexpire_ms)
        else:
            res = await rc.eval(LUA_FIXED_WINDOW_INCR_AND_PEXPIRE, 1, key, pexpire_ms)

        now = int(time.time())
        if not res or len(res) < 2:
            # conservative fallback: allow
            return True, max(0, limit - 1), now + window
        count = int(res[0])
        ttl_ms = int(res[1])
        reset_ts = now + (ttl_ms // 1000) if ttl_ms > 0 else now + window
        allowed = count <= limit
        remaining = max(0, limit - count) if allowed else 0
        return allowed, remaining, reset_ts
    except Exception as exc:
        # timeout , network , auth
        logger.warning("rate_limit.redis_failed", extra={"key": key, "error": str(exc)})
        if USE_IN_MEMORY_FALLBACK:
            return await in_memory_allow(key, limit, window)
        now = int(time.time())
        if FAIL_OPEN:
            return True, max(0, limit - 1), now + window
        return False, 0, now + window
