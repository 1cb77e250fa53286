import time
from fastapi import Request
from storefront.rate_limiting import constants
from storefront.rate_limiting.lua_scripts import LUA_FIXED_WINDOW_INCR_AND_PEXPIRE


def client_ip(request: Request) -> str:
    # X-Forwarded-For is only trustworthy behind our own proxy
    xff = request.headers.get("X-Forwarded-For")
    if xff:
        client_host = xff.split(",")[0].strip()
    else:
        client_host = request.headers.get("X-Real-IP") or (request.client.host if request.client else None)
    return client_host or "unknown"


async def ensure_lua_loaded(rc):
    """
    Load the script into the redis script cache once and keep its sha.
    None means script_load failed , callers fall back to EVAL.
    """
    if constants._script_sha:
        return constants._script_sha
    async with constants._script_lock:
        if constants._script_sha:
            return constants._script_sha
        try:
            constants._script_sha = await rc.script_load(LUA_FIXED_WINDOW_INCR_AND_PEXPIRE)
        except Exception as exc:
            constants.logger.warning("rate_limit.script_load_failed", extra={"error": str(exc)})
            constants._script_sha = None
        return constants._script_sha


# non distributed fallback for when redis is absent or unavailable
async def in_memory_allow(key: str, limit: int, window: int):
    """
    Per process fixed window counter.
    Returns (allowed , remaining , reset_ts).
    """
    async with constants._in_memory_lock:
        now = int(time.time())
        existing = constants._in_memory_counters.get(key)
        if not existing or existing["expires_at"] <= now:
            constants._in_memory_counters[key] = {"count": 1, "expires_at": now + window}
            return True, max(0, limit - 1), now + window
        if existing["count"] >= limit:
            return False, 0, existing["expires_at"]
        existing["count"] += 1
        return True, max(0, limit - existing["count"]), existing["expires_at"]


def reset_in_memory_counters():
    constants._in_memory_counters.clear()
