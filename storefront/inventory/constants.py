from storefront.common.logging_setup import get_logger
from storefront.config.settings import config_settings

logger = get_logger("storefront.inventory")

RESERVATION_TTL_MINUTES = config_settings.RESERVATION_TTL_MINUTES
RESERVATION_SWEEP_BATCH = config_settings.RESERVATION_SWEEP_BATCH
