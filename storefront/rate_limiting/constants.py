import asyncio
from typing import Optional
from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.rate_limiting")

RATE_LIMIT_PREFIX = "rl"    # redis key prefix
REDIS_TIMEOUT_SECONDS = 0.5
FAIL_OPEN = True                  # if redis and the local fallback both fail , allow the request
USE_IN_MEMORY_FALLBACK = True     # per process counters when redis is absent or failing , not distributed

_script_sha: Optional[str] = None
_script_lock = asyncio.Lock()

_in_memory_counters = {}
_in_memory_lock = asyncio.Lock()
