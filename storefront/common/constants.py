from storefront.common.logging_setup import get_logger, request_id_ctx

logger = get_logger("storefront.common")

API_VERSION = "v1"
VERSION_PREFIX = f"/api/{API_VERSION}"

__all__ = ["logger", "request_id_ctx", "API_VERSION", "VERSION_PREFIX"]
