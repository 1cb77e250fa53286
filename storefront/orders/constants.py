from storefront.common.circuit_breaker import CircuitBreaker
from storefront.common.logging_setup import get_logger
from storefront.config.settings import config_settings

logger = get_logger("storefront.orders")

PAYMENT_PROVIDER = "stripe"
SIGNATURE_HEADER = "Stripe-Signature"
SIGNATURE_SCHEME = "v1"

# metadata keys the webhook reads back , shared contract with the gateway session
META_USER_ID = "user_id"
META_EMAIL = "email"
META_DISCOUNT_CODE = "discount_code"
META_RESERVATION_REF = "reservation_ref"
# optional , only read when the session carries no total_details
META_SHIPPING = "shipping"

ADDRESS_FIELDS = ("line1", "line2", "city", "state", "postal_code", "country")

SUCCESS_EVENTS = ("checkout.session.completed", "checkout.session.async_payment_succeeded")
FAILURE_EVENTS = ("checkout.session.async_payment_failed", "checkout.session.expired", "payment_intent.payment_failed")
PAID_SESSION_STATUSES = ("paid", "no_payment_required")

WEBHOOK_TOLERANCE_SECONDS = config_settings.PAYMENT_WEBHOOK_TOLERANCE_SECONDS

# one breaker per process , shared by every checkout that calls the gateway
gateway_circuit = CircuitBreaker(
    "payment_gateway",
    failure_threshold=config_settings.GATEWAY_FAILURE_THRESHOLD,
    recovery_timeout=config_settings.GATEWAY_RECOVERY_TIMEOUT_SECONDS,
)
