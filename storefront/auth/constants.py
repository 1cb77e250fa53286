from storefront.common.logging_setup import get_logger
from storefront.config.admin_config import admin_config

logger = get_logger("storefront.auth")

PRIVILEGED_ROLES = set(admin_config.PRIVILEGED_ROLES)
