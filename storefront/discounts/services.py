from datetime import datetime
from typing import Any, Dict, Optional
from storefront.common.custom_exceptions import DiscountExpired, DiscountNotFound, DiscountNotStarted, MinimumNotMet, ValidationFailed
from storefront.common.utils import as_utc, now
from storefront.discounts.constants import logger
from storefront.discounts.repository import get_active_discount
from storefront.schema.full_schema import DiscountCode, DiscountType


def compute_amount_off(discount_type: str, value: int, subtotal: int) -> int:
    if discount_type == DiscountType.PERCENTAGE.value:
        # round half up , amounts are non negative minor units
        return min(subtotal, (subtotal * int(value) + 50) // 100)
    return min(subtotal, int(value))


def evaluate(discount: DiscountCode, subtotal: int, as_of: Optional[datetime] = None) -> Dict[str, Any]:
    """Check the code's window and minimum against a subtotal and quote the reduction."""
    as_of = as_of or now()

    start_date = as_utc(discount.start_date)
    end_date = as_utc(discount.end_date)
    if start_date is not None and start_date > as_of:
        raise DiscountNotStarted(f"Discount code {discount.code} is not active yet")
    if end_date is not None and end_date < as_of:
        raise DiscountExpired(f"Discount code {discount.code} has expired")
    if discount.minimum_order_amount and subtotal < discount.minimum_order_amount:
        raise MinimumNotMet(
            f"Discount code {discount.code} needs a subtotal of at least {discount.minimum_order_amount}",
            details={"minimum_order_amount": discount.minimum_order_amount, "subtotal": subtotal},
        )

    amount_off = compute_amount_off(discount.type, discount.value, subtotal)
    return {
        "code": discount.code,
        "type": discount.type,
        "value": discount.value,
        "amountOff": amount_off,
        "newSubtotal": max(0, subtotal - amount_off),
    }


async def apply_discount(session, code: Optional[str], subtotal: Any) -> Dict[str, Any]:
    """Quote a discount code . Read only , quoting never consumes the code."""
    code = (code or "").strip()
    if not code:
        raise ValidationFailed("Missing code")
    if isinstance(subtotal, bool) or not isinstance(subtotal, int) or subtotal <= 0:
        raise ValidationFailed("Invalid subtotal")

    discount = await get_active_discount(session, code)
    if discount is None:
        logger.info("discount.apply.not_found", extra={"code": code})
        raise DiscountNotFound("Invalid code")

    quote = evaluate(discount, subtotal)
    logger.info("discount.apply.quoted", extra={"code": code, "subtotal": subtotal, "amount_off": quote["amountOff"]})
    return quote
